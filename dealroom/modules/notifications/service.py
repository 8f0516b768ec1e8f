"""Notification service: fire-and-forget fan-out, list, mark-read, SSE push.

Notifications are a side channel of the workflow. ``notify`` and
``notify_many`` run each insert inside a savepoint and swallow failures so
that a broken inbox never rolls back an offer, a signature or a settlement.

SSE payloads are held on the session and pushed only when the outermost
transaction commits; payloads queued inside a rolled-back savepoint or
transaction are dropped with it.
"""

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from sqlalchemy import event, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from dealroom.models.core import Notification
from dealroom.models.enums import NotificationType
from dealroom.modules.notifications.sse import sse_manager

logger = structlog.get_logger()

_PENDING_PUSHES = "pending_sse_pushes"


# ── Post-commit SSE delivery ─────────────────────────────────────────────────


def _queue_push(db: AsyncSession, user_id: uuid.UUID, payload: dict) -> None:
    session = db.sync_session
    transaction = session.get_nested_transaction() or session.get_transaction()
    session.info.setdefault(_PENDING_PUSHES, []).append((transaction, user_id, payload))


def _within(transaction: SessionTransaction | None, ancestor: SessionTransaction) -> bool:
    while transaction is not None:
        if transaction is ancestor:
            return True
        transaction = transaction.parent
    return False


@event.listens_for(Session, "after_commit")
def _push_committed(session: Session) -> None:
    # Savepoint releases fire this too; only the outermost commit delivers
    if session.get_nested_transaction() is not None:
        return
    for _, user_id, payload in session.info.pop(_PENDING_PUSHES, []):
        sse_manager.push(user_id, payload)


@event.listens_for(Session, "after_soft_rollback")
def _drop_rolled_back(session: Session, previous_transaction: SessionTransaction) -> None:
    pending = session.info.get(_PENDING_PUSHES)
    if pending:
        session.info[_PENDING_PUSHES] = [
            entry for entry in pending if not _within(entry[0], previous_transaction)
        ]


@event.listens_for(Session, "after_transaction_end")
def _discard_undelivered(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is None:
        session.info.pop(_PENDING_PUSHES, None)


# ── Commands ─────────────────────────────────────────────────────────────────


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    type: NotificationType,
    message: str,
    link: str | None = None,
) -> Notification:
    """Create a notification; its SSE push goes out when the transaction commits."""
    notification = Notification(
        user_id=user_id,
        type=type,
        message=message,
        link=link,
    )
    db.add(notification)
    await db.flush()

    _queue_push(db, user_id, {
        "type": "notification",
        "data": {
            "id": str(notification.id),
            "type": type.value,
            "message": message,
            "link": link,
        },
    })

    return notification


async def notify(
    db: AsyncSession,
    user_id: uuid.UUID,
    type: NotificationType,
    message: str,
    link: str | None = None,
) -> Notification | None:
    """Best-effort ``create_notification``. Returns None when delivery failed."""
    try:
        async with db.begin_nested():
            return await create_notification(db, user_id, type, message, link)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "notification_failed",
            user_id=str(user_id),
            type=type.value,
            error=str(exc),
        )
        return None


async def notify_many(
    db: AsyncSession,
    user_ids: Iterable[uuid.UUID],
    type: NotificationType,
    message: str,
    link: str | None = None,
    exclude: uuid.UUID | None = None,
) -> list[Notification]:
    """Notify each distinct recipient once, skipping ``exclude`` (usually the actor)."""
    sent: list[Notification] = []
    seen: set[uuid.UUID] = set()
    for user_id in user_ids:
        if user_id == exclude or user_id in seen:
            continue
        seen.add(user_id)
        notification = await notify(db, user_id, type, message, link)
        if notification is not None:
            sent.append(notification)
    return sent


async def list_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    type: NotificationType | None = None,
    is_read: bool | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[Notification], int]:
    """List notifications for a user, newest first, with optional filters."""
    base = select(Notification).where(Notification.user_id == user_id)

    if type is not None:
        base = base.where(Notification.type == type)
    if is_read is not None:
        base = base.where(Notification.is_read == is_read)

    count_stmt = select(func.count()).select_from(base.subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = base.order_by(Notification.created_at.desc())
    stmt = stmt.offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(stmt)
    notifications = list(result.scalars().all())

    return notifications, total


async def mark_read(
    db: AsyncSession,
    notification_id: uuid.UUID,
    user_id: uuid.UUID,
) -> bool:
    """Mark a single notification as read."""
    notification = await db.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        return False
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.flush()
    return True


async def mark_all_read(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    stmt = (
        update(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount


async def get_unread_count(
    db: AsyncSession,
    user_id: uuid.UUID,
) -> int:
    """Get unread notification count for a user."""
    stmt = select(func.count()).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    result = await db.execute(stmt)
    return result.scalar() or 0
