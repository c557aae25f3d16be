"""Ordered delivery of room membership notifications.

Every connection owns a :class:`Mailbox`: a FIFO queue drained by a dedicated
writer task. The gateway commits a membership change inside its critical
section and then, without awaiting anything in between, asks the
:class:`EventSequencer` to post the resulting notification into the mailboxes
of the members captured in the snapshot. Consequently every recipient observes
notifications in commit order, a notification is never posted before the
mutation it describes, and a slow or dead peer only ever stalls its own writer
task.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from fastapi.websockets import WebSocketDisconnect

from app.monitoring.metrics import (
    signaling_delivery_failures_total,
    signaling_events_total,
)

from . import events
from .errors import DeliveryFailureError

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict[str, Any]], Awaitable[Any]]
FailureCallback = Callable[[str, str], None]

_DISCONNECT_ERRORS: tuple[type[BaseException], ...] = (
    WebSocketDisconnect,
    RuntimeError,
    ConnectionError,
)


class Mailbox:
    """FIFO outbox for a single connection.

    ``on_failure`` is called once with ``(connection_id, reason)`` when a send
    fails or the backlog overflows; the mailbox is already closed by then.
    """

    def __init__(
        self,
        connection_id: str,
        send: SendCallable,
        *,
        timeout: float | None = None,
        max_size: int = 0,
        on_failure: FailureCallback | None = None,
    ) -> None:
        self.connection_id = connection_id
        self._send = send
        self._timeout = timeout if timeout and timeout > 0 else None
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max(max_size, 0))
        self._task: asyncio.Task[None] | None = None
        self._on_failure = on_failure
        self._closed = False
        self.failure: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._task is None and not self._closed:
            self._task = asyncio.get_running_loop().create_task(
                self._run(), name=f"mailbox-{self.connection_id}"
            )

    def post(self, payload: dict[str, Any]) -> None:
        """Queue *payload* without blocking; raise if the mailbox is unusable."""

        if self._closed:
            raise DeliveryFailureError(self.connection_id, self.failure or "closed")
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self._fail("backlog")
            raise DeliveryFailureError(self.connection_id, "backlog") from None

    async def drain(self) -> None:
        """Wait until every queued payload was sent or discarded."""

        if self._task is None:
            return
        await self._queue.join()

    async def close(self) -> None:
        self._closed = True
        if self.failure is None:
            self.failure = "closed"
        self._discard_pending()
        task, self._task = self._task, None
        if task is None or task.done():
            return
        # The writer also stops on its own once it sees the closed flag, since
        # wait_for may swallow this cancellation when the send has just finished.
        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "Writer for connection %s ended with %r", self.connection_id, task.exception()
            )

    async def _run(self) -> None:
        try:
            while not self._closed:
                payload = await self._queue.get()
                try:
                    if not self._closed:
                        await self._deliver(payload)
                finally:
                    self._queue.task_done()
        finally:
            self._discard_pending()

    def _discard_pending(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def _deliver(self, payload: dict[str, Any]) -> None:
        try:
            if self._timeout is not None:
                await asyncio.wait_for(self._send(payload), timeout=self._timeout)
            else:
                await self._send(payload)
        except asyncio.TimeoutError:
            self._fail("timeout")
        except _DISCONNECT_ERRORS as exc:
            logger.debug("Send to connection %s failed: %s", self.connection_id, exc)
            self._fail("disconnected")
        except Exception:
            logger.exception("Unexpected error while sending to connection %s", self.connection_id)
            self._fail("error")
        else:
            signaling_events_total.labels("out", payload.get("type", "message")).inc()

    def _fail(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        self.failure = reason
        signaling_delivery_failures_total.labels(reason).inc()
        logger.warning(
            "Delivery to connection %s failed (%s); dropping its remaining events",
            self.connection_id,
            reason,
        )
        if self._on_failure is not None:
            self._on_failure(self.connection_id, reason)


@dataclass(slots=True)
class FanOut:
    """Outcome of posting one notification to a membership snapshot."""

    event: str
    subject_id: str
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class EventSequencer:
    """Posts join/leave notifications to the members of a snapshot.

    ``resolve`` maps a participant id to the mailbox of its connection. The
    sequencer never touches room state; it only consumes the snapshots the
    room directory returned for an already committed mutation.
    """

    def __init__(self, resolve: Callable[[str], Mailbox | None]) -> None:
        self._resolve = resolve

    def announce_join(
        self, participant_id: str, recipients: Iterable[str], *, peer_id: str | None = None
    ) -> FanOut:
        return self._fan_out(
            events.USER_CONNECTED,
            participant_id,
            events.user_connected(participant_id, peer_id),
            recipients,
        )

    def announce_leave(self, participant_id: str, recipients: Iterable[str]) -> FanOut:
        return self._fan_out(
            events.USER_DISCONNECTED,
            participant_id,
            events.user_disconnected(participant_id),
            recipients,
        )

    def _fan_out(
        self,
        event_type: str,
        subject_id: str,
        payload: dict[str, Any],
        recipients: Iterable[str],
    ) -> FanOut:
        outcome = FanOut(event=event_type, subject_id=subject_id)
        seen: set[str] = set()
        for recipient_id in recipients:
            if recipient_id == subject_id or recipient_id in seen:
                continue
            seen.add(recipient_id)
            try:
                mailbox = self._resolve(recipient_id)
                if mailbox is None:
                    raise DeliveryFailureError(recipient_id, "not connected")
                mailbox.post(dict(payload))
            except DeliveryFailureError as exc:
                signaling_delivery_failures_total.labels("skipped").inc()
                logger.warning(
                    "Could not deliver %s about %s to %s: %s",
                    event_type,
                    subject_id,
                    recipient_id,
                    exc.reason,
                )
                outcome.failed.append(recipient_id)
            else:
                outcome.delivered.append(recipient_id)
        return outcome


__all__ = ["EventSequencer", "FanOut", "Mailbox"]
