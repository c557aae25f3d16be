"""Wire format of the signaling events.

Clients speak a small closed vocabulary over the websocket. Inbound payloads
are parsed into frozen dataclasses so that the gateway never deals with raw
dictionaries, and outbound envelopes are built here so the field names stay in
one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Union

from .errors import MalformedEventError

JOIN_ROOM = "join-room"
STREAM_READY = "stream-ready"
LEAVE_ROOM = "leave-room"
PING = "ping"
PONG = "pong"

USER_CONNECTED = "user-connected"
USER_DISCONNECTED = "user-disconnected"
ROOM_JOINED = "room-joined"
ROOM_LEFT = "room-left"
PENDING = "pending"
ERROR = "error"

INBOUND_TYPES = {JOIN_ROOM, STREAM_READY, LEAVE_ROOM, PING, PONG}

DEFAULT_MAX_IDENTIFIER_LENGTH = 128

# Path segments served by fixed routes; a room with one of these ids could not
# be opened from its URL.
RESERVED_ROOM_IDS = frozenset({"api", "ws", "health", "metrics", "docs", "redoc", "openapi.json"})


@dataclass(frozen=True, slots=True)
class JoinRoom:
    room_id: str
    participant_id: str
    peer_id: str | None = None
    stream_ready: bool = True


@dataclass(frozen=True, slots=True)
class StreamReady:
    pass


@dataclass(frozen=True, slots=True)
class LeaveRoom:
    pass


@dataclass(frozen=True, slots=True)
class Ping:
    pass


@dataclass(frozen=True, slots=True)
class Pong:
    pass


InboundEvent = Union[JoinRoom, StreamReady, LeaveRoom, Ping, Pong]


def normalise_identifier(
    value: Any, field_name: str, *, max_length: int = DEFAULT_MAX_IDENTIFIER_LENGTH
) -> str:
    """Return a stripped identifier or raise :class:`MalformedEventError`."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise MalformedEventError(f"{field_name} must be a string")
    cleaned = value.strip()
    if not cleaned:
        raise MalformedEventError(f"{field_name} must not be empty")
    if len(cleaned) > max_length:
        raise MalformedEventError(f"{field_name} must be at most {max_length} characters")
    return cleaned


def parse_inbound(
    payload: Any, *, max_identifier_length: int = DEFAULT_MAX_IDENTIFIER_LENGTH
) -> InboundEvent:
    """Translate a decoded JSON payload into an inbound event."""

    if not isinstance(payload, Mapping):
        raise MalformedEventError("Message payload must be a JSON object")

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEventError("Message type must be provided")

    if event_type == JOIN_ROOM:
        room_id = normalise_identifier(
            payload.get("roomId"), "roomId", max_length=max_identifier_length
        )
        if room_id in RESERVED_ROOM_IDS:
            raise MalformedEventError(f"roomId '{room_id}' is reserved")
        participant_id = normalise_identifier(
            payload.get("participantId", payload.get("userId")),
            "participantId",
            max_length=max_identifier_length,
        )
        peer_raw = payload.get("peerId")
        peer_id = (
            normalise_identifier(peer_raw, "peerId", max_length=max_identifier_length)
            if peer_raw is not None
            else None
        )
        stream_ready = payload.get("streamReady", True)
        if not isinstance(stream_ready, bool):
            raise MalformedEventError("streamReady must be a boolean")
        return JoinRoom(
            room_id=room_id,
            participant_id=participant_id,
            peer_id=peer_id,
            stream_ready=stream_ready,
        )
    if event_type == STREAM_READY:
        return StreamReady()
    if event_type == LEAVE_ROOM:
        return LeaveRoom()
    if event_type == PING:
        return Ping()
    if event_type == PONG:
        return Pong()
    raise MalformedEventError("Unsupported payload type")


def user_connected(participant_id: str, peer_id: str | None = None) -> Dict[str, Any]:
    return {
        "type": USER_CONNECTED,
        "participantId": participant_id,
        "peerId": peer_id or participant_id,
    }


def user_disconnected(participant_id: str) -> Dict[str, Any]:
    return {"type": USER_DISCONNECTED, "participantId": participant_id}


def room_joined(
    room_id: str, participant_id: str, participants: Sequence[str]
) -> Dict[str, Any]:
    return {
        "type": ROOM_JOINED,
        "roomId": room_id,
        "participantId": participant_id,
        "participants": list(participants),
    }


def pending(room_id: str, participant_id: str) -> Dict[str, Any]:
    return {"type": PENDING, "roomId": room_id, "participantId": participant_id}


def room_left(room_id: str) -> Dict[str, Any]:
    return {"type": ROOM_LEFT, "roomId": room_id}


def error(detail: str) -> Dict[str, Any]:
    return {"type": ERROR, "detail": detail}


__all__ = [
    "RESERVED_ROOM_IDS",
    "JOIN_ROOM",
    "STREAM_READY",
    "LEAVE_ROOM",
    "USER_CONNECTED",
    "USER_DISCONNECTED",
    "ROOM_JOINED",
    "ROOM_LEFT",
    "PENDING",
    "ERROR",
    "InboundEvent",
    "JoinRoom",
    "StreamReady",
    "LeaveRoom",
    "Ping",
    "Pong",
    "normalise_identifier",
    "parse_inbound",
    "user_connected",
    "user_disconnected",
    "room_joined",
    "pending",
    "room_left",
    "error",
]
