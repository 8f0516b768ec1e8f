"""Audit trail: append-only, room-scoped log of state-changing events."""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.core.config import settings
from dealroom.models.core import AuditLog

logger = structlog.get_logger()


# ── Action tags ──────────────────────────────────────────────────────────────


class AuditAction:
    ROOM_CREATED = "roomCreated"
    ROOM_RENAMED = "roomRenamed"
    ROOM_STATUS_CHANGED = "roomStatusChanged"
    PARTICIPANT_ADDED = "participantAdded"
    OFFER_SUBMITTED = "offerSubmitted"
    OFFER_RESOLVED = "offerResolved"
    OFFER_SUPERSEDED = "offerSuperseded"
    DOCUMENT_UPLOADED = "documentUploaded"
    DOCUMENT_GENERATED = "documentGenerated"
    SIGNATURES_REQUESTED = "signaturesRequested"
    DOCUMENT_SIGNED = "documentSigned"
    DOCUMENT_REJECTED = "documentRejected"
    DOCUMENT_FULLY_SIGNED = "documentFullySigned"
    FEE_POLICY_APPLIED = "FeePolicyApplied"
    SETTLEMENT_CREATED = "settlementCreated"
    SETTLEMENT_STATUS_CHANGED = "settlementStatusChanged"
    MESSAGE_SENT = "messageSent"


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


async def record(
    db: AsyncSession,
    room_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    action: str,
    target_type: str,
    target_id: uuid.UUID | None = None,
    detail: dict[str, Any] | None = None,
) -> AuditLog:
    """Append one entry. ``actor_id`` None means the platform acted."""
    entry = AuditLog(
        room_id=room_id,
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        detail=_jsonable(detail) if detail is not None else None,
    )
    db.add(entry)
    await db.flush()
    logger.info(
        "audit_recorded",
        room_id=str(room_id),
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id else None,
    )
    return entry


def clamp_limit(limit: int | None) -> int:
    if limit is None or limit < 1:
        return settings.AUDIT_PAGE_SIZE_DEFAULT
    return min(limit, settings.AUDIT_PAGE_SIZE_MAX)


async def list_for_room(
    db: AsyncSession,
    room_id: uuid.UUID,
    limit: int | None = None,
    action: str | None = None,
) -> list[AuditLog]:
    """Newest-first page of a room's entries."""
    stmt = select(AuditLog).where(AuditLog.room_id == room_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    stmt = stmt.order_by(AuditLog.created_at.desc()).limit(clamp_limit(limit))
    result = await db.execute(stmt)
    return list(result.scalars().all())
