"""Participant registry: per-connection identity and liveness."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterator

from .errors import DuplicateIdentifierError, UnknownParticipantError


class Liveness(str, Enum):
    """Lifecycle of a participant record."""

    CONNECTING = "connecting"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


@dataclass(slots=True)
class Participant:
    participant_id: str
    connection_id: str
    peer_id: str
    room_id: str | None = None
    state: Liveness = Liveness.CONNECTING
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ParticipantRegistry:
    """Owns every live :class:`Participant` keyed by its identifier.

    The registry performs no locking of its own. The signaling gateway calls it
    from inside its critical section so that registry and room directory
    mutations are observed together.
    """

    def __init__(self) -> None:
        self._participants: Dict[str, Participant] = {}

    def __len__(self) -> int:
        return len(self._participants)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._participants

    def __iter__(self) -> Iterator[Participant]:
        return iter(list(self._participants.values()))

    def register(
        self,
        participant_id: str,
        *,
        connection_id: str,
        peer_id: str | None = None,
    ) -> Participant:
        existing = self._participants.get(participant_id)
        if existing is not None and existing.state == Liveness.ACTIVE:
            raise DuplicateIdentifierError(participant_id)

        # A CONNECTING record left behind by another connection is superseded.
        participant = Participant(
            participant_id=participant_id,
            connection_id=connection_id,
            peer_id=peer_id or participant_id,
        )
        self._participants[participant_id] = participant
        return participant

    def mark_active(self, participant_id: str) -> Participant | None:
        participant = self._participants.get(participant_id)
        if participant is None:
            return None
        participant.state = Liveness.ACTIVE
        return participant

    def assign_room(self, participant_id: str, room_id: str | None) -> str | None:
        """Associate the participant with *room_id* and return the previous room."""

        participant = self._participants.get(participant_id)
        if participant is None:
            return None
        previous = participant.room_id
        participant.room_id = room_id
        return previous

    def unregister(
        self, participant_id: str, *, connection_id: str | None = None
    ) -> str | None:
        participant = self._participants.get(participant_id)
        if participant is None:
            return None
        if connection_id is not None and participant.connection_id != connection_id:
            # The id was taken over by a newer connection; the stale one owns nothing.
            return None
        del self._participants[participant_id]
        participant.state = Liveness.DISCONNECTED
        return participant.room_id

    def lookup(self, participant_id: str) -> Participant | None:
        return self._participants.get(participant_id)

    def get(self, participant_id: str) -> Participant:
        participant = self._participants.get(participant_id)
        if participant is None:
            raise UnknownParticipantError(participant_id)
        return participant

    def clear(self) -> None:
        for participant in self._participants.values():
            participant.state = Liveness.DISCONNECTED
        self._participants.clear()


__all__ = ["Liveness", "Participant", "ParticipantRegistry"]
