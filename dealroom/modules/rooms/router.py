"""Deal rooms API router: CRUD, participants, operator transitions."""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.auth.dependencies import require_permission
from dealroom.core.database import get_db
from dealroom.models.enums import RoomStatus, RoomType
from dealroom.modules.rooms import service
from dealroom.modules.rooms.schemas import (
    ParticipantCreate,
    ParticipantResponse,
    RoomCreate,
    RoomDetailResponse,
    RoomListResponse,
    RoomResponse,
    RoomStatusChange,
    RoomUpdate,
)
from dealroom.schemas.auth import CurrentUser

logger = structlog.get_logger()

router = APIRouter(prefix="/rooms", tags=["rooms"])


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    body: RoomCreate,
    current_user: CurrentUser = Depends(require_permission("create", "room")),
    db: AsyncSession = Depends(get_db),
):
    room = await service.create_room(db, current_user.user_id, body)
    await db.commit()
    return RoomResponse.model_validate(room)


@router.get("", response_model=RoomListResponse)
async def list_rooms(
    type: RoomType | None = Query(None),
    status: RoomStatus | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(require_permission("view", "room")),
    db: AsyncSession = Depends(get_db),
):
    """Admins see every room; everyone else sees rooms they take part in."""
    user_filter = None if current_user.is_admin else current_user.user_id
    rooms, total = await service.list_rooms(
        db, user_filter, type=type, status=status, page=page, page_size=page_size
    )
    return RoomListResponse(
        items=[RoomResponse.model_validate(r) for r in rooms],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{room_id}", response_model=RoomDetailResponse)
async def get_room(
    room_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("view", "room")),
    db: AsyncSession = Depends(get_db),
):
    await service.get_room_for_member(
        db, room_id, current_user.user_id, bypass_membership=current_user.is_admin
    )
    room = await service.get_room_detail(db, room_id)
    return RoomDetailResponse.model_validate(room)


@router.patch("/{room_id}", response_model=RoomResponse)
async def rename_room(
    room_id: uuid.UUID,
    body: RoomUpdate,
    current_user: CurrentUser = Depends(require_permission("edit", "room")),
    db: AsyncSession = Depends(get_db),
):
    room = await service.rename_room(
        db, room_id, current_user.user_id, body.title,
        bypass_membership=current_user.is_admin,
    )
    await db.commit()
    return RoomResponse.model_validate(room)


@router.post(
    "/{room_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_participant(
    room_id: uuid.UUID,
    body: ParticipantCreate,
    current_user: CurrentUser = Depends(require_permission("edit", "room")),
    db: AsyncSession = Depends(get_db),
):
    participant = await service.add_participant(
        db, room_id, current_user.user_id, body,
        bypass_membership=current_user.is_admin,
    )
    await db.commit()
    return ParticipantResponse.model_validate(participant)


@router.post("/{room_id}/status", response_model=RoomResponse)
async def change_status(
    room_id: uuid.UUID,
    body: RoomStatusChange,
    current_user: CurrentUser = Depends(require_permission("edit", "room")),
    db: AsyncSession = Depends(get_db),
):
    """Operator transition: negotiating → signing, settling → completed, or → terminated."""
    room = await service.change_status(
        db, room_id, body.status, current_user.user_id, body.reason,
        bypass_membership=current_user.is_admin,
    )
    await db.commit()
    return RoomResponse.model_validate(room)
