"""Settlements and fee policies API router."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.auth.dependencies import require_permission
from dealroom.core.database import get_db
from dealroom.models.enums import SettlementStatus
from dealroom.modules.rooms import service as rooms
from dealroom.modules.settlements import fees, service
from dealroom.modules.settlements.schemas import (
    FeePolicyCreate,
    FeePolicyResponse,
    RoomSettlementResponse,
    SettlementCreate,
    SettlementListResponse,
    SettlementResponse,
    SettlementSummary,
    SettlementUpdate,
)
from dealroom.schemas.auth import CurrentUser

router = APIRouter(tags=["settlements"])


# ── Room settlements ─────────────────────────────────────────────────────────


@router.get("/rooms/{room_id}/settlement", response_model=RoomSettlementResponse)
async def get_room_settlement(
    room_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("view", "settlement")),
    db: AsyncSession = Depends(get_db),
):
    await rooms.get_room_for_member(db, room_id, current_user.user_id, bypass_membership=current_user.is_admin)
    data = await service.room_settlements(db, room_id)
    return RoomSettlementResponse(
        settlements=[SettlementResponse.model_validate(s) for s in data["settlements"]],
        fee_policies=[FeePolicyResponse.model_validate(p) for p in data["fee_policies"]],
        summary=SettlementSummary(**data["summary"]),
    )


@router.post(
    "/rooms/{room_id}/settlement",
    response_model=SettlementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_settlement(
    room_id: uuid.UUID,
    body: SettlementCreate,
    current_user: CurrentUser = Depends(require_permission("create", "settlement")),
    db: AsyncSession = Depends(get_db),
):
    settlement = await service.create_settlement(
        db, room_id, current_user.user_id, body, bypass_membership=current_user.is_admin
    )
    await db.commit()
    return SettlementResponse.model_validate(settlement)


# ── Settlements ──────────────────────────────────────────────────────────────


@router.get("/settlements", response_model=SettlementListResponse)
async def list_settlements(
    room_id: uuid.UUID | None = Query(None),
    status: SettlementStatus | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: CurrentUser = Depends(require_permission("view", "settlement")),
    db: AsyncSession = Depends(get_db),
):
    """Admins see every settlement; other users see the ones they pay or receive."""
    user_filter = None if current_user.is_admin else current_user.user_id
    settlements, total = await service.list_settlements(
        db, room_id=room_id, status=status, user_id=user_filter, page=page, page_size=page_size
    )
    return SettlementListResponse(
        items=[SettlementResponse.model_validate(s) for s in settlements],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/settlements/{settlement_id}", response_model=SettlementResponse)
async def get_settlement(
    settlement_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("view", "settlement")),
    db: AsyncSession = Depends(get_db),
):
    settlement = await service.get_settlement_or_404(db, settlement_id)
    await rooms.get_room_for_member(
        db, settlement.room_id, current_user.user_id, bypass_membership=current_user.is_admin
    )
    return SettlementResponse.model_validate(settlement)


@router.patch("/settlements/{settlement_id}", response_model=SettlementResponse)
async def update_settlement(
    settlement_id: uuid.UUID,
    body: SettlementUpdate,
    current_user: CurrentUser = Depends(require_permission("manage", "settlement")),
    db: AsyncSession = Depends(get_db),
):
    """Admin: confirm payment, mark processing, or dispute."""
    settlement = await service.update_settlement_status(
        db,
        settlement_id,
        current_user.user_id,
        body.action,
        note=body.note,
        transaction_ref=body.transaction_ref,
    )
    await db.commit()
    return SettlementResponse.model_validate(settlement)


# ── Fee policies ─────────────────────────────────────────────────────────────


@router.get("/fee-policies", response_model=list[FeePolicyResponse])
async def list_fee_policies(
    active_only: bool = Query(False),
    current_user: CurrentUser = Depends(require_permission("view", "fee_policy")),
    db: AsyncSession = Depends(get_db),
):
    policies = await fees.list_fee_policies(db, active_only=active_only)
    return [FeePolicyResponse.model_validate(p) for p in policies]


@router.post("/fee-policies", response_model=FeePolicyResponse, status_code=status.HTTP_201_CREATED)
async def create_fee_policy(
    body: FeePolicyCreate,
    current_user: CurrentUser = Depends(require_permission("create", "fee_policy")),
    db: AsyncSession = Depends(get_db),
):
    policy = await fees.create_fee_policy(db, body, actor_id=current_user.user_id)
    await db.commit()
    return FeePolicyResponse.model_validate(policy)
