"""WebSocket endpoint for room signaling."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.config import get_settings
from app.monitoring.metrics import signaling_events_total, signaling_malformed_events_total
from meshcall.signaling import events
from meshcall.signaling.errors import DuplicateIdentifierError, MalformedEventError, SignalingError
from meshcall.signaling.gateway import get_gateway

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

gateway = get_gateway()

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    send: Callable[[Dict[str, Any]], Awaitable[bool]],
    timeout_seconds: float | int | None,
    ping_interval_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver* while sending keepalive pings when idle."""

    ping_payload = ping_payload or {"type": events.PING}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    interval = float(ping_interval_seconds) if ping_interval_seconds else 0.0
    last_activity = time.monotonic()
    last_ping_sent: float | None = None

    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break

            now = time.monotonic()
            should_ping = False
            if interval <= 0:
                should_ping = True
            elif now - last_activity >= interval and (
                last_ping_sent is None or now - last_ping_sent >= interval
            ):
                should_ping = True

            if should_ping:
                if not await send(dict(ping_payload)):
                    break
                last_ping_sent = now
            continue
        except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
            raise
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            last_activity = time.monotonic()
            last_ping_sent = None
            yield message


@router.websocket("/signal")
async def websocket_signal(websocket: WebSocket) -> None:
    """Drive join/leave signaling for one browser session."""

    await websocket.accept()
    connection_id = await gateway.connect(websocket)

    async def queue_send(payload: Dict[str, Any]) -> bool:
        return gateway.send(connection_id, payload)

    def reject(detail: str) -> None:
        signaling_malformed_events_total.inc()
        gateway.send(connection_id, events.error(detail))

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            send=queue_send,
            timeout_seconds=settings.websocket_keepalive_timeout_seconds,
            ping_interval_seconds=settings.websocket_keepalive_ping_interval_seconds,
        ):
            if not gateway.is_connected(connection_id):
                # Evicted after a failed delivery; the socket is being closed.
                break

            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                reject("Invalid message format")
                continue

            try:
                event = events.parse_inbound(
                    payload, max_identifier_length=settings.signaling_max_identifier_length
                )
            except MalformedEventError as exc:
                reject(str(exc))
                continue

            if isinstance(event, events.Ping):
                signaling_events_total.labels("in", events.PING).inc()
                gateway.send(connection_id, {"type": events.PONG})
                continue

            if isinstance(event, events.Pong):
                continue

            if isinstance(event, events.JoinRoom):
                try:
                    await gateway.join_room(
                        connection_id,
                        event.room_id,
                        event.participant_id,
                        peer_id=event.peer_id,
                        stream_ready=event.stream_ready,
                    )
                except DuplicateIdentifierError as exc:
                    gateway.send(connection_id, events.error(str(exc)))
                except SignalingError as exc:
                    logger.debug("Dropping join-room on %s: %s", connection_id, exc)
                    break
                continue

            if isinstance(event, events.StreamReady):
                if await gateway.stream_ready(connection_id) is None:
                    gateway.send(connection_id, events.error("No pending join-room to complete"))
                continue

            if isinstance(event, events.LeaveRoom):
                if await gateway.leave_room(connection_id) is None:
                    gateway.send(connection_id, events.error("Not in a room"))
                continue
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.disconnect(connection_id)
