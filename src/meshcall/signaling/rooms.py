"""Room directory mapping room identifiers to ordered member sets."""

from __future__ import annotations

from typing import Dict


class RoomDirectory:
    """Tracks which participants belong to which room.

    Member sets are insertion ordered (a ``dict`` with ``None`` values) so that
    snapshots list members by join time. Rooms exist only while they have at
    least one member.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, None]] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def join(self, room_id: str, participant_id: str) -> list[str]:
        """Add *participant_id* and return the members that were already present."""

        members = self._rooms.setdefault(room_id, {})
        prior = [member for member in members if member != participant_id]
        members[participant_id] = None
        return prior

    def leave(self, room_id: str, participant_id: str) -> list[str]:
        members = self._rooms.get(room_id)
        if members is None:
            return []
        members.pop(participant_id, None)
        if not members:
            self._rooms.pop(room_id, None)
            return []
        return list(members)

    def members_of(self, room_id: str) -> list[str]:
        return list(self._rooms.get(room_id, ()))

    def rooms(self) -> dict[str, list[str]]:
        return {room_id: list(members) for room_id, members in self._rooms.items()}

    def clear(self) -> None:
        self._rooms.clear()


__all__ = ["RoomDirectory"]
