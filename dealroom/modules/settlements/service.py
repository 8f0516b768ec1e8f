"""Settlement service: manual obligations, status changes, room summary."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from dealroom.models.core import User
from dealroom.models.enums import NotificationType, RoomStatus, SettlementStatus
from dealroom.models.settlements import Settlement
from dealroom.modules.audit import service as audit
from dealroom.modules.audit.service import AuditAction
from dealroom.modules.notifications import service as notifications
from dealroom.modules.rooms import service as rooms
from dealroom.modules.settlements import fees
from dealroom.modules.settlements.schemas import SettlementAction

logger = structlog.get_logger()

# Target status and the statuses it may be reached from
_ACTION_RULES: dict[SettlementAction, tuple[SettlementStatus, frozenset[SettlementStatus]]] = {
    SettlementAction.MARK_PROCESSING: (
        SettlementStatus.PROCESSING,
        frozenset({SettlementStatus.PENDING, SettlementStatus.FAILED}),
    ),
    SettlementAction.CONFIRM_PAYMENT: (
        SettlementStatus.COMPLETED,
        frozenset({SettlementStatus.PENDING, SettlementStatus.PROCESSING}),
    ),
    SettlementAction.DISPUTE: (
        SettlementStatus.FAILED,
        frozenset({SettlementStatus.PENDING, SettlementStatus.PROCESSING}),
    ),
}

_OPEN_STATUSES = frozenset({SettlementStatus.PENDING, SettlementStatus.PROCESSING})

_NON_NUMERIC = re.compile(r"[^0-9.]")


def parse_amount(amount: str | None) -> Decimal:
    """Best-effort numeric value of a display amount; unparseable → 0."""
    cleaned = _NON_NUMERIC.sub("", amount or "")
    if not cleaned:
        return Decimal(0)
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return Decimal(0)


# ── Queries ──────────────────────────────────────────────────────────────────


async def get_settlement_or_404(
    db: AsyncSession, settlement_id: uuid.UUID, *, lock: bool = False
) -> Settlement:
    stmt = select(Settlement).where(Settlement.id == settlement_id, Settlement.is_deleted.is_(False))
    if lock:
        stmt = stmt.with_for_update()
    stmt = stmt.execution_options(populate_existing=True)
    settlement = (await db.execute(stmt)).scalar_one_or_none()
    if settlement is None:
        raise NotFoundError("Settlement not found", detail={"settlement_id": str(settlement_id)})
    return settlement


async def list_settlements(
    db: AsyncSession,
    room_id: uuid.UUID | None = None,
    status: SettlementStatus | None = None,
    user_id: uuid.UUID | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Settlement], int]:
    """Newest first. ``user_id`` restricts to settlements the user pays or receives."""
    base = select(Settlement).where(Settlement.is_deleted.is_(False))
    if room_id is not None:
        base = base.where(Settlement.room_id == room_id)
    if status is not None:
        base = base.where(Settlement.status == status)
    if user_id is not None:
        base = base.where((Settlement.payer_id == user_id) | (Settlement.payee_id == user_id))

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar() or 0
    stmt = base.order_by(Settlement.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def room_settlements(db: AsyncSession, room_id: uuid.UUID) -> dict[str, Any]:
    """A room's settlements with active fee policies and a paid / pending summary."""
    await rooms.get_room_or_404(db, room_id)
    result = await db.execute(
        select(Settlement)
        .where(Settlement.room_id == room_id, Settlement.is_deleted.is_(False))
        .order_by(Settlement.created_at.desc())
    )
    settlements = list(result.scalars().all())
    policies = await fees.list_fee_policies(db, active_only=True)

    return {
        "settlements": settlements,
        "fee_policies": policies,
        "summary": {
            "total_amount": sum((parse_amount(s.amount) for s in settlements), Decimal(0)),
            "paid_count": sum(1 for s in settlements if s.status == SettlementStatus.COMPLETED),
            "pending_count": sum(1 for s in settlements if s.status in _OPEN_STATUSES),
            "total_count": len(settlements),
        },
    }


# ── Commands ─────────────────────────────────────────────────────────────────


async def create_settlement(
    db: AsyncSession,
    room_id: uuid.UUID,
    actor_id: uuid.UUID,
    body: Any,
    *,
    bypass_membership: bool = False,
) -> Settlement:
    """Manually record an obligation between two parties of the room."""
    amount = (body.amount or "").strip()
    if not amount:
        raise ValidationError("amount is required")
    if body.payee_id is None and not body.payee_account:
        raise ValidationError("payee_id or payee_account is required")

    room = await rooms.get_room_for_member(db, room_id, actor_id, bypass_membership=bypass_membership)
    if room.status == RoomStatus.TERMINATED:
        raise InvalidStateError("Cannot add settlements to a terminated room")

    for user_id in filter(None, (body.payer_id, body.payee_id)):
        user = await db.get(User, user_id)
        if user is None or user.is_deleted:
            raise NotFoundError("User not found", detail={"user_id": str(user_id)})

    settlement = Settlement(
        room_id=room.id,
        license_id=body.license_id,
        payer_id=body.payer_id,
        payee_id=body.payee_id,
        payee_account=body.payee_account,
        amount=amount,
        currency=body.currency,
        payment_type=body.payment_type,
        status=SettlementStatus.PENDING,
        due_date=body.due_date,
        note=body.note,
    )
    db.add(settlement)
    await db.flush()

    await audit.record(
        db, room.id, actor_id, AuditAction.SETTLEMENT_CREATED, "Settlement", settlement.id,
        {"amount": amount, "payment_type": settlement.payment_type, "payer_id": settlement.payer_id},
    )
    logger.info("settlement_created", room_id=str(room.id), settlement_id=str(settlement.id), amount=amount)

    await notifications.notify_many(
        db,
        [settlement.payer_id, settlement.payee_id] if settlement.payee_id else [settlement.payer_id],
        NotificationType.SETTLEMENT,
        f'A settlement of {amount} was recorded in room "{room.title}".',
        link=f"/rooms/{room.id}/settlement",
        exclude=actor_id,
    )
    return settlement


async def update_settlement_status(
    db: AsyncSession,
    settlement_id: uuid.UUID,
    actor_id: uuid.UUID,
    action: SettlementAction,
    note: str | None = None,
    transaction_ref: str | None = None,
) -> Settlement:
    """Confirm payment, mark processing or dispute. Completed settlements are immutable."""
    settlement = await get_settlement_or_404(db, settlement_id, lock=True)
    if settlement.status == SettlementStatus.COMPLETED:
        raise InvalidStateError(
            "Completed settlements cannot be changed",
            detail={"settlement_id": str(settlement.id)},
        )

    target, allowed_from = _ACTION_RULES[action]
    if settlement.status not in allowed_from:
        raise InvalidStateError(
            f"Cannot {action.value.replace('_', ' ')} a {settlement.status.value} settlement",
            detail={"from_status": settlement.status.value, "to_status": target.value},
        )

    previous = settlement.status
    settlement.status = target
    if target == SettlementStatus.COMPLETED:
        settlement.paid_at = datetime.now(timezone.utc)
        if transaction_ref:
            settlement.transaction_ref = transaction_ref
    elif target == SettlementStatus.FAILED:
        settlement.note = note or "Disputed"
    elif note:
        settlement.note = note
    await db.flush()

    await audit.record(
        db, settlement.room_id, actor_id, AuditAction.SETTLEMENT_STATUS_CHANGED, "Settlement", settlement.id,
        {"action": action, "from_status": previous, "to_status": target, "note": note},
    )
    logger.info(
        "settlement_status_changed",
        settlement_id=str(settlement.id),
        from_status=previous.value,
        to_status=target.value,
    )

    await notifications.notify(
        db,
        settlement.payer_id,
        NotificationType.SETTLEMENT,
        f"Settlement of {settlement.amount} is now {target.value}.",
        link=f"/rooms/{settlement.room_id}/settlement",
    )
    return settlement
