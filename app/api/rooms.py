"""Read-only room and participant inspection endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from app.schemas import ParticipantRead, RoomOverview, RoomRead
from meshcall.signaling.errors import UnknownParticipantError
from meshcall.signaling.gateway import get_gateway

router = APIRouter(tags=["rooms"])


@router.get("/rooms", response_model=RoomOverview)
async def list_rooms() -> RoomOverview:
    """Return every room that currently has members."""

    overview = await get_gateway().rooms_overview()
    rooms = [
        RoomRead(room_id=room_id, participants=members, size=len(members))
        for room_id, members in overview.items()
    ]
    return RoomOverview(rooms=rooms, total=len(rooms))


@router.get("/rooms/{room_id}", response_model=RoomRead)
async def read_room(room_id: str) -> RoomRead:
    """Members of *room_id*; unknown rooms are reported as empty."""

    members = await get_gateway().members_of(room_id)
    return RoomRead(room_id=room_id, participants=members, size=len(members))


@router.get("/participants/{participant_id}", response_model=ParticipantRead)
async def read_participant(participant_id: str) -> ParticipantRead:
    try:
        participant = await get_gateway().get_participant(participant_id)
    except UnknownParticipantError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ParticipantRead(
        participant_id=participant.participant_id,
        peer_id=participant.peer_id,
        room_id=participant.room_id,
        state=participant.state.value,
        joined_at=participant.joined_at,
    )
