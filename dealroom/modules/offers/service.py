"""Offer ledger: versioned proposals per room, accept / reject.

Versions are ``max(existing) + 1`` per room. The room row lock serializes
submissions; the (room_id, version) unique constraint catches anything the
lock misses, and the insert is retried once before surfacing a conflict.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from dealroom.models.deal_rooms import Offer
from dealroom.models.enums import ListingStatus, NotificationType, OfferStatus, RoomStatus
from dealroom.modules.audit import service as audit
from dealroom.modules.audit.service import AuditAction
from dealroom.modules.listings import service as listings
from dealroom.modules.notifications import service as notifications
from dealroom.modules.rooms import service as rooms

logger = structlog.get_logger()

# Rooms past negotiation no longer take offers
_CLOSED_FOR_OFFERS = frozenset({RoomStatus.SETTLING, RoomStatus.COMPLETED, RoomStatus.TERMINATED})

_RESOLUTIONS = frozenset({OfferStatus.ACCEPTED, OfferStatus.REJECTED})

_VERSION_ATTEMPTS = 2


async def _next_version(db: AsyncSession, room_id: uuid.UUID) -> int:
    result = await db.execute(select(func.max(Offer.version)).where(Offer.room_id == room_id))
    return (result.scalar() or 0) + 1


async def _insert_next_version(db: AsyncSession, room_id: uuid.UUID, **fields: Any) -> Offer:
    """Insert at ``max(version) + 1``; a taken version is recomputed once, then surfaces a conflict."""
    for attempt in range(1, _VERSION_ATTEMPTS + 1):
        version = await _next_version(db, room_id)
        offer = Offer(room_id=room_id, version=version, status=OfferStatus.SENT, **fields)
        try:
            async with db.begin_nested():
                db.add(offer)
                await db.flush()
        except IntegrityError:
            logger.warning(
                "offer_version_conflict",
                room_id=str(room_id),
                version=version,
                attempt=attempt,
            )
            continue
        return offer

    raise ConflictError(
        "Another offer was submitted concurrently; please retry",
        detail={"room_id": str(room_id), "version": version},
    )


async def list_offers(db: AsyncSession, room_id: uuid.UUID) -> list[Offer]:
    await rooms.get_room_or_404(db, room_id)
    result = await db.execute(
        select(Offer).where(Offer.room_id == room_id).order_by(Offer.version)
    )
    return list(result.scalars().all())


async def get_offer_or_404(db: AsyncSession, offer_id: uuid.UUID, *, lock: bool = False) -> Offer:
    stmt = select(Offer).where(Offer.id == offer_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    offer = (await db.execute(stmt)).scalar_one_or_none()
    if offer is None:
        raise NotFoundError("Offer not found", detail={"offer_id": str(offer_id)})
    return offer


async def latest_accepted_offer(db: AsyncSession, room_id: uuid.UUID) -> Offer | None:
    """The prevailing offer: most recent ``accepted`` one."""
    result = await db.execute(
        select(Offer)
        .where(Offer.room_id == room_id, Offer.status == OfferStatus.ACCEPTED)
        .order_by(Offer.version.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def submit_offer(
    db: AsyncSession,
    room_id: uuid.UUID,
    creator_id: uuid.UUID,
    price: str,
    terms: str | None = None,
    message: str | None = None,
) -> Offer:
    price = (price or "").strip()
    if not price:
        raise ValidationError("price is required")

    room = await rooms.get_room_or_404(db, room_id, lock=True)
    if room.status in _CLOSED_FOR_OFFERS:
        raise InvalidStateError(
            f"Cannot submit offers to a {room.status.value} room",
            detail={"room_status": room.status.value},
        )
    await rooms.ensure_participant(db, room, creator_id)

    offer = await _insert_next_version(
        db, room.id, creator_id=creator_id, price=price, terms=terms, message=message
    )

    await audit.record(
        db, room.id, creator_id, AuditAction.OFFER_SUBMITTED, "Offer", offer.id,
        {"version": offer.version, "price": offer.price, "terms": offer.terms},
    )

    if room.status == RoomStatus.SETUP:
        await rooms.transition_room(
            db, room, RoomStatus.NEGOTIATING, creator_id, reason="first offer", notify=False
        )

    logger.info("offer_submitted", room_id=str(room.id), offer_id=str(offer.id), version=offer.version)

    await notifications.notify_many(
        db,
        await rooms.participant_user_ids(db, room.id),
        NotificationType.OFFER,
        f'New offer v{offer.version} ({offer.price}) in room "{room.title}".',
        link=f"/rooms/{room.id}",
        exclude=creator_id,
    )
    return offer


async def resolve_offer(
    db: AsyncSession,
    offer_id: uuid.UUID,
    actor_id: uuid.UUID,
    status: OfferStatus,
) -> Offer:
    """Accept or reject a ``sent`` offer.

    Accepting supersedes any earlier accepted offer, moves a negotiating
    room to ``signing`` and marks the linked listing ``under_negotiation``.
    """
    if status not in _RESOLUTIONS:
        raise ValidationError(
            "status must be accepted or rejected",
            detail={"status": status.value},
        )

    offer = await get_offer_or_404(db, offer_id)
    room = await rooms.get_room_or_404(db, offer.room_id, lock=True)
    offer = await get_offer_or_404(db, offer_id, lock=True)

    if offer.status != OfferStatus.SENT:
        raise InvalidStateError(
            f"Offer is already {offer.status.value}",
            detail={"offer_id": str(offer.id), "status": offer.status.value},
        )
    await rooms.ensure_participant(db, room, actor_id)
    if room.status in _CLOSED_FOR_OFFERS:
        raise InvalidStateError(
            f"Cannot resolve offers in a {room.status.value} room",
            detail={"room_status": room.status.value},
        )

    previous = offer.status
    detail: dict[str, Any] = {"version": offer.version, "from_status": previous, "to_status": status}

    if status == OfferStatus.ACCEPTED:
        await rooms.require_counterparties(db, room)
        superseded = await _supersede_accepted(db, room.id, actor_id, exclude=offer.id)
        if superseded:
            detail["superseded"] = superseded

    offer.status = status
    await db.flush()

    if status == OfferStatus.ACCEPTED:
        if room.status == RoomStatus.NEGOTIATING:
            await rooms.transition_room(
                db, room, RoomStatus.SIGNING, actor_id, reason="offer accepted", notify=False
            )
        listing = await listings.set_status(db, room.listing_id, ListingStatus.UNDER_NEGOTIATION)
        if listing is not None:
            detail["listing_id"] = listing.id
            detail["listing_status"] = listing.status

    await audit.record(db, room.id, actor_id, AuditAction.OFFER_RESOLVED, "Offer", offer.id, detail)

    logger.info(
        "offer_resolved",
        room_id=str(room.id),
        offer_id=str(offer.id),
        version=offer.version,
        status=status.value,
    )

    await notifications.notify_many(
        db,
        await rooms.participant_user_ids(db, room.id),
        NotificationType.OFFER,
        f'Offer v{offer.version} was {status.value} in room "{room.title}".',
        link=f"/rooms/{room.id}",
        exclude=actor_id,
    )
    return offer


async def _supersede_accepted(
    db: AsyncSession, room_id: uuid.UUID, actor_id: uuid.UUID, exclude: uuid.UUID
) -> list[int]:
    result = await db.execute(
        select(Offer)
        .where(
            Offer.room_id == room_id,
            Offer.status == OfferStatus.ACCEPTED,
            Offer.id != exclude,
        )
        .order_by(Offer.version)
        .with_for_update()
    )
    versions = []
    for prior in result.scalars().all():
        prior.status = OfferStatus.SUPERSEDED
        versions.append(prior.version)
        await audit.record(
            db, room_id, actor_id, AuditAction.OFFER_SUPERSEDED, "Offer", prior.id,
            {"version": prior.version, "from_status": OfferStatus.ACCEPTED, "to_status": OfferStatus.SUPERSEDED},
        )
    await db.flush()
    return versions
