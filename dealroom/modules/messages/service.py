"""Room messages: participant chat with attachments."""

import uuid
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.core.exceptions import InvalidStateError, ValidationError
from dealroom.models.deal_rooms import RoomMessage
from dealroom.models.enums import MessageType, NotificationType, RoomStatus
from dealroom.modules.audit import service as audit
from dealroom.modules.audit.service import AuditAction
from dealroom.modules.notifications import service as notifications
from dealroom.modules.rooms import service as rooms

logger = structlog.get_logger()


async def get_messages(
    db: AsyncSession, room_id: uuid.UUID, limit: int = 100
) -> list[RoomMessage]:
    await rooms.get_room_or_404(db, room_id)
    result = await db.execute(
        select(RoomMessage)
        .where(RoomMessage.room_id == room_id, RoomMessage.is_deleted.is_(False))
        .order_by(RoomMessage.created_at.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def send_message(
    db: AsyncSession, room_id: uuid.UUID, sender_id: uuid.UUID, body: Any
) -> RoomMessage:
    content = (body.content or "").strip()
    if not content and not body.attachment_url:
        raise ValidationError("content or attachment_url is required")

    room = await rooms.get_room_or_404(db, room_id)
    if room.status == RoomStatus.TERMINATED:
        raise InvalidStateError("Room is terminated")
    await rooms.ensure_participant(db, room, sender_id)

    message_type = body.message_type
    if body.attachment_url and message_type == MessageType.TEXT:
        message_type = MessageType.FILE

    msg = RoomMessage(
        room_id=room.id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        attachment_url=body.attachment_url,
        attachment_name=body.attachment_name,
        mentions=[str(m) for m in (body.mentions or [])],
    )
    db.add(msg)
    await db.flush()

    await audit.record(
        db, room.id, sender_id, AuditAction.MESSAGE_SENT, "RoomMessage", msg.id,
        {"message_type": message_type, "preview": content[:100], "attachment_name": body.attachment_name},
    )
    logger.info("room_message_sent", room_id=str(room.id), message_id=str(msg.id))

    await notifications.notify_many(
        db,
        await rooms.participant_user_ids(db, room.id),
        NotificationType.NEW_MESSAGE,
        f'New message in room "{room.title}".',
        link=f"/rooms/{room.id}",
        exclude=sender_id,
    )
    return msg
