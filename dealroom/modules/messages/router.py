"""Room chat API router."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.auth.dependencies import require_permission
from dealroom.core.database import get_db
from dealroom.modules.messages import service
from dealroom.modules.messages.schemas import MessageResponse, SendMessage
from dealroom.modules.rooms import service as rooms
from dealroom.schemas.auth import CurrentUser

router = APIRouter(prefix="/rooms", tags=["messages"])


@router.get("/{room_id}/messages", response_model=list[MessageResponse])
async def get_messages(
    room_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    current_user: CurrentUser = Depends(require_permission("view", "message")),
    db: AsyncSession = Depends(get_db),
):
    await rooms.get_room_for_member(db, room_id, current_user.user_id, bypass_membership=current_user.is_admin)
    messages = await service.get_messages(db, room_id, limit=limit)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{room_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    room_id: uuid.UUID,
    body: SendMessage,
    current_user: CurrentUser = Depends(require_permission("create", "message")),
    db: AsyncSession = Depends(get_db),
):
    msg = await service.send_message(db, room_id, current_user.user_id, body)
    await db.commit()
    return MessageResponse.model_validate(msg)
