"""Client side of the mesh: turning room events into peer calls.

The media negotiation layer (offer/answer/ICE) is an external collaborator.
All this module needs from it is the ability to start a call towards a peer
and to close that call again. :class:`PeerMesh` consumes a small closed set of
events and keeps exactly one call per remote participant.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Protocol, Union

from .signaling import events

logger = logging.getLogger(__name__)


class CallHandle(Protocol):
    async def close(self) -> None:
        ...


class NegotiationLayer(Protocol):
    async def initiate_call(self, target_peer_id: str, local_stream: Any) -> CallHandle:
        ...


@dataclass(frozen=True, slots=True)
class StreamReady:
    stream: Any


@dataclass(frozen=True, slots=True)
class PeerJoined:
    participant_id: str
    peer_id: str


@dataclass(frozen=True, slots=True)
class PeerLeft:
    participant_id: str


MeshEvent = Union[StreamReady, PeerJoined, PeerLeft]


def event_from_payload(payload: Mapping[str, Any]) -> MeshEvent | None:
    """Map an outbound signaling payload to a mesh event, if it is one."""

    event_type = payload.get("type")
    participant_id = payload.get("participantId")
    if not isinstance(participant_id, str):
        return None
    if event_type == events.USER_CONNECTED:
        peer_id = payload.get("peerId")
        return PeerJoined(participant_id, peer_id if isinstance(peer_id, str) else participant_id)
    if event_type == events.USER_DISCONNECTED:
        return PeerLeft(participant_id)
    return None


class PeerMesh:
    """Tracks the calls a participant holds with the rest of its room.

    Calls are only placed once the local stream is ready; announcements that
    arrive earlier are parked until then. A departure that overtakes the call
    it refers to is remembered, and the late call is closed as soon as it is
    recorded.
    """

    def __init__(self, negotiator: NegotiationLayer) -> None:
        self._negotiator = negotiator
        self._stream: Any = None
        self._ready = False
        self._calls: Dict[str, CallHandle] = {}
        self._parked: Dict[str, str] = {}
        self._departed: set[str] = set()
        self._lock = asyncio.Lock()

    @property
    def peers(self) -> list[str]:
        return list(self._calls)

    @property
    def ready(self) -> bool:
        return self._ready

    async def handle(self, event: MeshEvent) -> None:
        if isinstance(event, StreamReady):
            await self._on_stream_ready(event.stream)
        elif isinstance(event, PeerJoined):
            await self._on_peer_joined(event.participant_id, event.peer_id)
        elif isinstance(event, PeerLeft):
            await self._on_peer_left(event.participant_id)
        else:
            raise TypeError(f"Unsupported mesh event: {event!r}")

    async def accept(self, participant_id: str, call: CallHandle) -> None:
        """Record a call that the remote participant placed towards us."""

        async with self._lock:
            if participant_id in self._departed:
                self._departed.discard(participant_id)
                stale = call
            else:
                stale = self._calls.get(participant_id)
                self._calls[participant_id] = call
                if stale is call:
                    stale = None
        if stale is not None:
            await stale.close()

    async def close(self) -> None:
        async with self._lock:
            calls = list(self._calls.values())
            self._calls.clear()
            self._parked.clear()
            self._departed.clear()
        for call in calls:
            await call.close()

    async def _on_stream_ready(self, stream: Any) -> None:
        async with self._lock:
            self._stream = stream
            self._ready = True
            parked = list(self._parked.items())
            self._parked.clear()
        for participant_id, peer_id in parked:
            await self._dial(participant_id, peer_id)

    async def _on_peer_joined(self, participant_id: str, peer_id: str) -> None:
        async with self._lock:
            self._departed.discard(participant_id)
            if not self._ready:
                self._parked[participant_id] = peer_id
                return
        await self._dial(participant_id, peer_id)

    async def _on_peer_left(self, participant_id: str) -> None:
        async with self._lock:
            self._parked.pop(participant_id, None)
            call = self._calls.pop(participant_id, None)
            if call is None:
                self._departed.add(participant_id)
                return
        await call.close()

    async def _dial(self, participant_id: str, peer_id: str) -> None:
        async with self._lock:
            if participant_id in self._calls:
                return
        call = await self._negotiator.initiate_call(peer_id, self._stream)
        async with self._lock:
            if participant_id in self._departed:
                self._departed.discard(participant_id)
                stale = call
            elif participant_id in self._calls:
                stale = call
            else:
                self._calls[participant_id] = call
                stale = None
        if stale is not None:
            logger.debug("Closing call to %s that is no longer wanted", participant_id)
            await stale.close()


__all__ = [
    "CallHandle",
    "MeshEvent",
    "NegotiationLayer",
    "PeerJoined",
    "PeerLeft",
    "PeerMesh",
    "StreamReady",
    "event_from_payload",
]
