"""Signaling gateway coordinating registry, rooms and fan-out."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Protocol

from fastapi.websockets import WebSocketDisconnect

from app.config import get_settings
from app.monitoring.metrics import (
    signaling_connections,
    signaling_events_total,
    signaling_participants,
    signaling_rooms,
)

from . import events
from .errors import DuplicateIdentifierError, SignalingError
from .registry import Liveness, Participant, ParticipantRegistry
from .rooms import RoomDirectory
from .sequencer import EventSequencer, FanOut, Mailbox

logger = logging.getLogger(__name__)

# "Internal error": the server could not keep this client up to date.
EVICTION_CLOSE_CODE = 1011


class Connection(Protocol):
    async def send_json(self, data: dict[str, Any]) -> None:
        ...

    async def close(self, code: int = 1000) -> None:
        ...


@dataclass(slots=True)
class Session:
    connection_id: str
    connection: Connection
    mailbox: Mailbox
    participant_id: str | None = None
    requested_room: str | None = None


@dataclass(slots=True)
class LeaveOutcome:
    participant_id: str
    room_id: str | None
    remaining: list[str]
    fan_out: FanOut | None = None


@dataclass(slots=True)
class JoinOutcome:
    participant: Participant
    room_id: str
    ready: bool
    prior_members: list[str]
    fan_out: FanOut | None = None
    departure: LeaveOutcome | None = None


@dataclass(slots=True)
class _Detached:
    participant_id: str
    room_id: str | None
    remaining: list[str]


class SignalingGateway:
    """Boundary translating connection lifecycle events into room changes.

    Every registry and directory mutation happens inside ``self._lock`` and the
    resulting notifications are handed to the sequencer right after the lock
    is released, before any other coroutine can run. Nothing inside the
    critical section awaits network I/O.
    """

    def __init__(
        self,
        *,
        delivery_timeout: float | None = None,
        mailbox_size: int = 0,
        registry: ParticipantRegistry | None = None,
        directory: RoomDirectory | None = None,
    ) -> None:
        self._registry = registry or ParticipantRegistry()
        self._directory = directory or RoomDirectory()
        self._sequencer = EventSequencer(self._mailbox_for)
        self._sessions: Dict[str, Session] = {}
        self._evictions: set[asyncio.Task[None]] = set()
        self._delivery_timeout = delivery_timeout
        self._mailbox_size = mailbox_size
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> ParticipantRegistry:
        return self._registry

    @property
    def directory(self) -> RoomDirectory:
        return self._directory

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        logger.info("Signaling gateway started")

    async def stop(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._registry.clear()
            self._directory.clear()
            self._update_gauges_locked()
        evictions = list(self._evictions)
        # The next start may run on a different event loop.
        self._lock = asyncio.Lock()
        for session in sessions:
            await session.mailbox.close()
        if evictions:
            await asyncio.wait(evictions)
        signaling_connections.set(0)
        logger.info("Signaling gateway stopped; dropped %d connection(s)", len(sessions))

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------
    async def connect(self, connection: Connection, *, connection_id: str | None = None) -> str:
        connection_id = connection_id or uuid.uuid4().hex
        mailbox = Mailbox(
            connection_id,
            connection.send_json,
            timeout=self._delivery_timeout,
            max_size=self._mailbox_size,
            on_failure=self._on_mailbox_failure,
        )
        async with self._lock:
            self._sessions[connection_id] = Session(
                connection_id=connection_id, connection=connection, mailbox=mailbox
            )
        mailbox.start()
        signaling_connections.inc()
        return connection_id

    async def join_room(
        self,
        connection_id: str,
        room_id: str,
        participant_id: str,
        *,
        peer_id: str | None = None,
        stream_ready: bool = True,
    ) -> JoinOutcome:
        async with self._lock:
            session = self._require_session_locked(connection_id)
            existing = self._registry.lookup(participant_id)
            owned = existing is not None and existing.connection_id == connection_id
            if existing is not None and not owned and existing.state == Liveness.ACTIVE:
                raise DuplicateIdentifierError(participant_id)

            departure: _Detached | None = None
            if session.participant_id is not None and session.participant_id != participant_id:
                departure = self._detach_locked(session)
                owned = False
            elif owned and existing is not None and existing.room_id not in (None, room_id):
                departure = self._move_out_locked(existing)

            if owned and existing is not None and existing.room_id == room_id:
                # Repeated join for the room the participant is already in.
                others = [
                    member
                    for member in self._directory.members_of(room_id)
                    if member != participant_id
                ]
                return JoinOutcome(
                    participant=existing, room_id=room_id, ready=True, prior_members=others
                )

            if not owned:
                if existing is not None:
                    self._forget_participant_locked(existing)
                participant = self._registry.register(
                    participant_id, connection_id=connection_id, peer_id=peer_id
                )
            else:
                participant = existing
                if peer_id:
                    participant.peer_id = peer_id
            session.participant_id = participant_id
            session.requested_room = room_id

            prior: list[str] = []
            if stream_ready:
                prior = self._admit_locked(session, participant)
            self._update_gauges_locked()

        signaling_events_total.labels("in", events.JOIN_ROOM).inc()
        leave_outcome = self._announce_departure(departure)
        if not stream_ready:
            self._post(session, events.pending(room_id, participant_id))
            logger.info(
                "Participant %s waiting for media before joining room %s", participant_id, room_id
            )
            return JoinOutcome(
                participant=participant,
                room_id=room_id,
                ready=False,
                prior_members=[],
                departure=leave_outcome,
            )
        fan_out = self._announce_arrival(session, participant, room_id, prior)
        return JoinOutcome(
            participant=participant,
            room_id=room_id,
            ready=True,
            prior_members=prior,
            fan_out=fan_out,
            departure=leave_outcome,
        )

    async def stream_ready(self, connection_id: str) -> JoinOutcome | None:
        async with self._lock:
            session = self._sessions.get(connection_id)
            if session is None or session.participant_id is None or session.requested_room is None:
                logger.debug("Ignoring stream-ready from %s without a pending join", connection_id)
                return None
            participant = self._registry.lookup(session.participant_id)
            if participant is None or participant.connection_id != connection_id:
                session.participant_id = None
                session.requested_room = None
                return None
            room_id = session.requested_room
            prior = self._admit_locked(session, participant)
            self._update_gauges_locked()

        signaling_events_total.labels("in", events.STREAM_READY).inc()
        fan_out = self._announce_arrival(session, participant, room_id, prior)
        return JoinOutcome(
            participant=participant,
            room_id=room_id,
            ready=True,
            prior_members=prior,
            fan_out=fan_out,
        )

    async def leave_room(self, connection_id: str) -> LeaveOutcome | None:
        async with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                return None
            requested_room = session.requested_room
            detached = self._detach_locked(session)
            self._update_gauges_locked()

        signaling_events_total.labels("in", events.LEAVE_ROOM).inc()
        outcome = self._announce_departure(detached)
        if outcome is not None:
            # A join still waiting for stream-ready is acknowledged with the room it asked for.
            left_room = outcome.room_id or requested_room
            if left_room is not None:
                self._post(session, events.room_left(left_room))
        return outcome

    async def disconnect(self, connection_id: str) -> LeaveOutcome | None:
        async with self._lock:
            session = self._sessions.pop(connection_id, None)
            if session is None:
                return None
            detached = self._detach_locked(session)
            self._update_gauges_locked()

        outcome = self._announce_departure(detached)
        await session.mailbox.close()
        signaling_connections.dec()
        return outcome

    # ------------------------------------------------------------------
    # Queries and direct delivery
    # ------------------------------------------------------------------
    async def members_of(self, room_id: str) -> list[str]:
        async with self._lock:
            return self._directory.members_of(room_id)

    async def rooms_overview(self) -> dict[str, list[str]]:
        async with self._lock:
            return self._directory.rooms()

    async def get_participant(self, participant_id: str) -> Participant:
        async with self._lock:
            return self._registry.get(participant_id)

    async def participant_for(self, connection_id: str) -> Participant | None:
        async with self._lock:
            session = self._sessions.get(connection_id)
            if session is None or session.participant_id is None:
                return None
            participant = self._registry.lookup(session.participant_id)
            if participant is None or participant.connection_id != connection_id:
                return None
            return participant

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._sessions

    def send(self, connection_id: str, payload: dict[str, Any]) -> bool:
        """Queue a payload for one connection behind its pending notifications."""

        session = self._sessions.get(connection_id)
        if session is None:
            return False
        return self._post(session, payload)

    async def drain(self) -> None:
        """Wait for queued notifications and for evictions they triggered."""

        while True:
            mailboxes = [session.mailbox for session in self._sessions.values()]
            await asyncio.gather(*(mailbox.drain() for mailbox in mailboxes))
            if not self._evictions:
                return
            await asyncio.wait(list(self._evictions))

    # ------------------------------------------------------------------
    # Eviction of connections whose mailbox failed
    # ------------------------------------------------------------------
    def _on_mailbox_failure(self, connection_id: str, reason: str) -> None:
        if connection_id not in self._sessions:
            return
        task = asyncio.get_running_loop().create_task(
            self._evict(connection_id, reason), name=f"evict-{connection_id}"
        )
        self._evictions.add(task)
        task.add_done_callback(self._evictions.discard)

    async def _evict(self, connection_id: str, reason: str) -> None:
        session = self._sessions.get(connection_id)
        if session is None:
            return
        outcome = await self.disconnect(connection_id)
        logger.warning(
            "Evicted connection %s (%s); participant %s",
            connection_id,
            reason,
            outcome.participant_id if outcome is not None else None,
        )
        try:
            await asyncio.wait_for(
                session.connection.close(code=EVICTION_CLOSE_CODE), timeout=self._delivery_timeout
            )
        except asyncio.TimeoutError:
            logger.debug("Closing evicted connection %s timed out", connection_id)
        except (WebSocketDisconnect, RuntimeError, ConnectionError) as exc:
            logger.debug("Evicted connection %s already closed: %s", connection_id, exc)

    # ------------------------------------------------------------------
    # Helpers that must run while holding ``self._lock``
    # ------------------------------------------------------------------
    def _require_session_locked(self, connection_id: str) -> Session:
        session = self._sessions.get(connection_id)
        if session is None:
            raise SignalingError(f"Unknown connection '{connection_id}'")
        return session

    def _admit_locked(self, session: Session, participant: Participant) -> list[str]:
        room_id = session.requested_room
        assert room_id is not None
        self._registry.mark_active(participant.participant_id)
        self._registry.assign_room(participant.participant_id, room_id)
        session.requested_room = None
        return self._directory.join(room_id, participant.participant_id)

    def _move_out_locked(self, participant: Participant) -> _Detached:
        room_id = self._registry.assign_room(participant.participant_id, None)
        remaining = self._directory.leave(room_id, participant.participant_id) if room_id else []
        return _Detached(participant.participant_id, room_id, remaining)

    def _detach_locked(self, session: Session) -> _Detached | None:
        participant_id = session.participant_id
        session.participant_id = None
        session.requested_room = None
        if participant_id is None:
            return None
        participant = self._registry.lookup(participant_id)
        if participant is None or participant.connection_id != session.connection_id:
            return None
        room_id = self._registry.unregister(participant_id, connection_id=session.connection_id)
        remaining = self._directory.leave(room_id, participant_id) if room_id else []
        return _Detached(participant_id, room_id, remaining)

    def _forget_participant_locked(self, participant: Participant) -> None:
        # Only CONNECTING records reach this point; they are never room members.
        previous = self._sessions.get(participant.connection_id)
        if previous is not None and previous.participant_id == participant.participant_id:
            previous.participant_id = None
            previous.requested_room = None
        self._registry.unregister(participant.participant_id)
        logger.info(
            "Participant %s superseded a pending registration from connection %s",
            participant.participant_id,
            participant.connection_id,
        )

    def _update_gauges_locked(self) -> None:
        signaling_rooms.set(len(self._directory))
        signaling_participants.set(len(self._registry))

    # ------------------------------------------------------------------
    # Notification helpers; called right after the critical section
    # ------------------------------------------------------------------
    def _mailbox_for(self, participant_id: str) -> Mailbox | None:
        participant = self._registry.lookup(participant_id)
        if participant is None:
            return None
        session = self._sessions.get(participant.connection_id)
        return session.mailbox if session is not None else None

    def _post(self, session: Session, payload: dict[str, Any]) -> bool:
        try:
            session.mailbox.post(payload)
        except SignalingError as exc:
            logger.debug("Dropping %s for connection %s: %s", payload.get("type"), session.connection_id, exc)
            return False
        return True

    def _announce_arrival(
        self, session: Session, participant: Participant, room_id: str, prior: list[str]
    ) -> FanOut:
        self._post(session, events.room_joined(room_id, participant.participant_id, prior))
        fan_out = self._sequencer.announce_join(
            participant.participant_id, prior, peer_id=participant.peer_id
        )
        logger.info(
            "Participant %s joined room %s (%d prior member(s), %d undelivered)",
            participant.participant_id,
            room_id,
            len(prior),
            len(fan_out.failed),
        )
        return fan_out

    def _announce_departure(self, detached: _Detached | None) -> LeaveOutcome | None:
        if detached is None:
            return None
        fan_out = None
        if detached.room_id is not None:
            fan_out = self._sequencer.announce_leave(detached.participant_id, detached.remaining)
            logger.info(
                "Participant %s left room %s (%d remaining)",
                detached.participant_id,
                detached.room_id,
                len(detached.remaining),
            )
        return LeaveOutcome(
            participant_id=detached.participant_id,
            room_id=detached.room_id,
            remaining=list(detached.remaining),
            fan_out=fan_out,
        )


# ---------------------------------------------------------------------------
# Module level lifecycle helpers
# ---------------------------------------------------------------------------


def build_gateway() -> SignalingGateway:
    settings = get_settings()
    return SignalingGateway(
        delivery_timeout=settings.signaling_delivery_timeout_seconds,
        mailbox_size=settings.signaling_mailbox_size,
    )


gateway = build_gateway()


async def startup_signaling() -> None:
    await gateway.start()


async def shutdown_signaling() -> None:
    await gateway.stop()


def get_gateway() -> SignalingGateway:
    return gateway


__all__ = [
    "Connection",
    "JoinOutcome",
    "LeaveOutcome",
    "Session",
    "SignalingGateway",
    "get_gateway",
    "shutdown_signaling",
    "startup_signaling",
]
