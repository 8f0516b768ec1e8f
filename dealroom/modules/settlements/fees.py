"""Fee policy store and the structured snapshot embedded in settlements."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.core.config import settings
from dealroom.core.exceptions import ValidationError
from dealroom.models.enums import FeeScope, FeeType
from dealroom.models.settlements import FeePolicy

logger = structlog.get_logger()

FEE_SNAPSHOT_VERSION = 1


def format_rate(rate: Decimal) -> str:
    """``Decimal("12.5000")`` → ``"12.5"``; ``Decimal("10")`` → ``"10"``."""
    return format(rate.normalize(), "f")


async def active_fee_policy(db: AsyncSession) -> FeePolicy | None:
    """Most recently created active policy; scope is recorded, not matched."""
    result = await db.execute(
        select(FeePolicy)
        .where(FeePolicy.is_active.is_(True), FeePolicy.is_deleted.is_(False))
        .order_by(FeePolicy.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_fee_policies(db: AsyncSession, active_only: bool = False) -> list[FeePolicy]:
    stmt = select(FeePolicy).where(FeePolicy.is_deleted.is_(False))
    if active_only:
        stmt = stmt.where(FeePolicy.is_active.is_(True))
    result = await db.execute(stmt.order_by(FeePolicy.created_at.desc()))
    return list(result.scalars().all())


async def create_fee_policy(db: AsyncSession, body: Any, actor_id: uuid.UUID | None = None) -> FeePolicy:
    if body.rate_percent is None and not body.fixed_fee:
        raise ValidationError("A fee policy needs rate_percent or fixed_fee")

    policy = FeePolicy(
        name=body.name.strip(),
        fee_type=body.fee_type,
        rate_percent=body.rate_percent,
        fixed_fee=body.fixed_fee,
        applicable_to=body.applicable_to,
        is_active=body.is_active,
    )
    db.add(policy)
    await db.flush()
    logger.info(
        "fee_policy_created",
        fee_policy_id=str(policy.id),
        name=policy.name,
        rate_percent=str(policy.rate_percent) if policy.rate_percent is not None else None,
        actor_id=str(actor_id) if actor_id else None,
    )
    return policy


def build_fee_snapshot(policy: FeePolicy | None, room_type: Any = None) -> dict[str, Any]:
    """Durable, structured provenance of the policy applied at settlement time."""
    if policy is None:
        rate = settings.DEFAULT_FEE_RATE_PERCENT
        snapshot: dict[str, Any] = {
            "policy_id": None,
            "name": "Default",
            "fee_type": FeeType.PLATFORM.value,
            "rate_percent": format_rate(rate),
            "fixed_fee": None,
            "applicable_to": FeeScope.ALL.value,
            "is_default": True,
        }
    else:
        snapshot = {
            "policy_id": str(policy.id),
            "name": policy.name,
            "fee_type": policy.fee_type.value,
            "rate_percent": format_rate(policy.rate_percent) if policy.rate_percent is not None else None,
            "fixed_fee": policy.fixed_fee,
            "applicable_to": policy.applicable_to.value,
            "is_default": False,
        }
    snapshot["version"] = FEE_SNAPSHOT_VERSION
    snapshot["room_type"] = getattr(room_type, "value", room_type)
    snapshot["captured_at"] = datetime.now(timezone.utc).isoformat()
    return snapshot


def fee_note(snapshot: dict[str, Any]) -> str:
    """Human-readable line kept alongside the structured snapshot."""
    if snapshot.get("rate_percent") is not None:
        terms = f"{snapshot['rate_percent']}%"
    else:
        terms = f"fixed {snapshot.get('fixed_fee')}"
    return f"Auto-created from contract. Policy: {snapshot['name']} ({terms})"
