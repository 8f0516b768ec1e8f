"""Room audit trail API router (read-only)."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.auth.dependencies import require_permission
from dealroom.core.database import get_db
from dealroom.modules.audit import service
from dealroom.modules.audit.schemas import AuditLogListResponse, AuditLogResponse
from dealroom.modules.rooms.service import get_room_for_member
from dealroom.schemas.auth import CurrentUser

router = APIRouter(prefix="/rooms", tags=["audit"])


@router.get("/{room_id}/audit", response_model=AuditLogListResponse)
async def list_room_audit(
    room_id: uuid.UUID,
    limit: int | None = Query(None, ge=1),
    action: str | None = Query(None),
    current_user: CurrentUser = Depends(require_permission("view", "audit_log")),
    db: AsyncSession = Depends(get_db),
):
    """Newest-first audit entries; ``limit`` defaults to 50 and is capped at 200."""
    await get_room_for_member(db, room_id, current_user.user_id, bypass_membership=current_user.is_admin)
    entries = await service.list_for_room(db, room_id, limit=limit, action=action)
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(e) for e in entries],
        limit=service.clamp_limit(limit),
    )
