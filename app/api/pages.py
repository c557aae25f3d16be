"""Room addressing by URL path segment."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import RedirectResponse

from app.schemas import RoomDescriptor
from meshcall.signaling.events import RESERVED_ROOM_IDS
from meshcall.signaling.gateway import get_gateway

router = APIRouter(tags=["pages"])


@router.get("/", response_class=RedirectResponse, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
def create_room_redirect() -> RedirectResponse:
    """Send a bare visit to a freshly generated room."""

    return RedirectResponse(url=f"/{uuid.uuid4()}", status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/{room_id}", response_model=RoomDescriptor)
async def read_room_page(room_id: str) -> RoomDescriptor:
    """Describe how to enter *room_id*.

    Fixed routes such as `/health` and `/metrics` are matched before this one,
    so those ids are reserved and rejected here and in `join-room`.
    """

    if room_id in RESERVED_ROOM_IDS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Room id '{room_id}' is reserved")
    members = await get_gateway().members_of(room_id)
    return RoomDescriptor(
        room_id=room_id,
        participants=members,
        signaling_path="/ws/signal",
        config_path="/api/config/webrtc",
    )
