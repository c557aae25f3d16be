"""Schemas for room and participant inspection."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RoomRead(BaseModel):
    """Members of a single room, in join order."""

    room_id: str = Field(..., serialization_alias="roomId")
    participants: list[str] = Field(default_factory=list)
    size: int = 0


class RoomOverview(BaseModel):
    """All rooms that currently have members."""

    rooms: list[RoomRead] = Field(default_factory=list)
    total: int = 0


class RoomDescriptor(BaseModel):
    """What a browser needs to enter a room addressed by URL."""

    room_id: str = Field(..., serialization_alias="roomId")
    participants: list[str] = Field(default_factory=list)
    signaling_path: str = Field(..., serialization_alias="signalingPath")
    config_path: str = Field(..., serialization_alias="configPath")


class ParticipantRead(BaseModel):
    """Public view of a registered participant."""

    participant_id: str = Field(..., serialization_alias="participantId")
    peer_id: str = Field(..., serialization_alias="peerId")
    room_id: str | None = Field(default=None, serialization_alias="roomId")
    state: str
    joined_at: datetime = Field(..., serialization_alias="joinedAt")
