"""Pydantic schemas for API payloads."""

from .rooms import ParticipantRead, RoomDescriptor, RoomOverview, RoomRead

__all__ = [
    "ParticipantRead",
    "RoomDescriptor",
    "RoomOverview",
    "RoomRead",
]
