"""Offer ledger API router."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.auth.dependencies import require_permission
from dealroom.core.database import get_db
from dealroom.modules.offers import service
from dealroom.modules.offers.schemas import OfferCreate, OfferResolve, OfferResponse
from dealroom.modules.rooms import service as rooms
from dealroom.schemas.auth import CurrentUser

router = APIRouter(tags=["offers"])


@router.get("/rooms/{room_id}/offers", response_model=list[OfferResponse])
async def list_offers(
    room_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("view", "offer")),
    db: AsyncSession = Depends(get_db),
):
    await rooms.get_room_for_member(db, room_id, current_user.user_id, bypass_membership=current_user.is_admin)
    offers = await service.list_offers(db, room_id)
    return [OfferResponse.model_validate(o) for o in offers]


@router.post(
    "/rooms/{room_id}/offers",
    response_model=OfferResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_offer(
    room_id: uuid.UUID,
    body: OfferCreate,
    current_user: CurrentUser = Depends(require_permission("create", "offer")),
    db: AsyncSession = Depends(get_db),
):
    offer = await service.submit_offer(
        db, room_id, current_user.user_id, body.price, terms=body.terms, message=body.message
    )
    await db.commit()
    return OfferResponse.model_validate(offer)


@router.patch("/offers/{offer_id}", response_model=OfferResponse)
async def resolve_offer(
    offer_id: uuid.UUID,
    body: OfferResolve,
    current_user: CurrentUser = Depends(require_permission("edit", "offer")),
    db: AsyncSession = Depends(get_db),
):
    """Accept or reject a sent offer."""
    offer = await service.resolve_offer(db, offer_id, current_user.user_id, body.status)
    await db.commit()
    return OfferResponse.model_validate(offer)
