"""Room service: lifecycle state machine, CRUD, participants.

Every status change goes through ``transition_room``, which validates the
edge against ``ALLOWED_TRANSITIONS``, applies the listing side effect,
writes one audit entry and notifies the participants. Automatic edges
(first offer, acceptance, settlement cascade) call it directly; operators
go through ``change_status``, which adds the business-rule guards.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dealroom.core.exceptions import ConflictError, InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from dealroom.models.core import User
from dealroom.models.deal_rooms import BUYER_ROLES, SELLER_ROLES, Offer, Room, RoomParticipant
from dealroom.models.documents import Document
from dealroom.models.enums import ListingStatus, NotificationType, OfferStatus, RoomStatus, SettlementStatus
from dealroom.models.listings import Listing
from dealroom.models.settlements import Settlement
from dealroom.modules.audit import service as audit
from dealroom.modules.audit.service import AuditAction
from dealroom.modules.listings import service as listings
from dealroom.modules.notifications import service as notifications

logger = structlog.get_logger()


# ── State machine ────────────────────────────────────────────────────────────

ALLOWED_TRANSITIONS: dict[RoomStatus, frozenset[RoomStatus]] = {
    RoomStatus.SETUP: frozenset({RoomStatus.NEGOTIATING, RoomStatus.TERMINATED}),
    RoomStatus.NEGOTIATING: frozenset({RoomStatus.SIGNING, RoomStatus.TERMINATED}),
    RoomStatus.SIGNING: frozenset({RoomStatus.SETTLING, RoomStatus.TERMINATED}),
    RoomStatus.SETTLING: frozenset({RoomStatus.COMPLETED, RoomStatus.TERMINATED}),
    RoomStatus.COMPLETED: frozenset(),
    RoomStatus.TERMINATED: frozenset(),
}

TERMINAL_STATES = frozenset({RoomStatus.COMPLETED, RoomStatus.TERMINATED})

# Listing side effect of reaching a room status
_LISTING_STATUS_ON_ENTER: dict[RoomStatus, ListingStatus] = {
    RoomStatus.COMPLETED: ListingStatus.SOLD,
    RoomStatus.TERMINATED: ListingStatus.PUBLISHED,
}


def can_transition(current: RoomStatus, target: RoomStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


async def transition_room(
    db: AsyncSession,
    room: Room,
    target: RoomStatus,
    actor_id: uuid.UUID | None,
    *,
    reason: str | None = None,
    notify: bool = True,
) -> Room:
    """Move ``room`` along one edge of the lifecycle. ``actor_id`` None is the platform."""
    current = room.status
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Room cannot move from {current.value} to {target.value}",
            detail={"from_status": current.value, "to_status": target.value},
        )

    room.status = target
    await db.flush()

    detail: dict[str, Any] = {"from_status": current, "to_status": target}
    if reason:
        detail["reason"] = reason

    listing_status = _LISTING_STATUS_ON_ENTER.get(target)
    if listing_status is not None:
        listing = await listings.set_status(db, room.listing_id, listing_status)
        if listing is not None:
            detail["listing_id"] = listing.id
            detail["listing_status"] = listing.status

    await audit.record(
        db, room.id, actor_id, AuditAction.ROOM_STATUS_CHANGED, "Room", room.id, detail
    )

    logger.info(
        "room_status_changed",
        room_id=str(room.id),
        from_status=current.value,
        to_status=target.value,
        actor_id=str(actor_id) if actor_id else None,
    )

    if notify:
        await notifications.notify_many(
            db,
            await participant_user_ids(db, room.id),
            NotificationType.SYSTEM,
            f'Room "{room.title}" is now {target.value}.',
            link=f"/rooms/{room.id}",
            exclude=actor_id,
        )
    return room


# ── Guards ───────────────────────────────────────────────────────────────────


def has_counterparties(participants: list[RoomParticipant]) -> bool:
    roles = {p.role for p in participants}
    return bool(roles & BUYER_ROLES) and bool(roles & SELLER_ROLES)


def find_participant(participants: list[RoomParticipant], roles: frozenset) -> RoomParticipant | None:
    """First participant (by join order) holding one of ``roles``."""
    for participant in sorted(participants, key=lambda p: p.created_at):
        if participant.role in roles:
            return participant
    return None


async def load_participants(db: AsyncSession, room_id: uuid.UUID) -> list[RoomParticipant]:
    result = await db.execute(
        select(RoomParticipant)
        .where(RoomParticipant.room_id == room_id, RoomParticipant.is_deleted.is_(False))
        .order_by(RoomParticipant.created_at)
    )
    return list(result.scalars().all())


async def participant_user_ids(db: AsyncSession, room_id: uuid.UUID) -> list[uuid.UUID]:
    seen: list[uuid.UUID] = []
    for participant in await load_participants(db, room_id):
        if participant.user_id not in seen:
            seen.append(participant.user_id)
    return seen


async def require_counterparties(db: AsyncSession, room: Room) -> list[RoomParticipant]:
    participants = await load_participants(db, room.id)
    if not has_counterparties(participants):
        raise InvalidStateError(
            "Room must have both a Buyer and a Seller participant",
            detail={"room_id": str(room.id)},
        )
    return participants


async def ensure_participant(db: AsyncSession, room: Room, user_id: uuid.UUID) -> None:
    if user_id not in await participant_user_ids(db, room.id):
        raise PermissionDeniedError("Only room participants may perform this action")


async def get_room_for_member(
    db: AsyncSession,
    room_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    bypass_membership: bool = False,
    lock: bool = False,
) -> Room:
    """The room, provided ``user_id`` takes part in it. Admins pass ``bypass_membership``."""
    room = await get_room_or_404(db, room_id, lock=lock)
    if not bypass_membership:
        await ensure_participant(db, room, user_id)
    return room


async def _guard_signing(db: AsyncSession, room: Room) -> None:
    await require_counterparties(db, room)
    accepted = await db.execute(
        select(func.count()).where(Offer.room_id == room.id, Offer.status == OfferStatus.ACCEPTED)
    )
    if not accepted.scalar():
        raise InvalidStateError("Room has no accepted offer to sign")


async def _guard_completion(db: AsyncSession, room: Room) -> None:
    result = await db.execute(select(Settlement.status).where(Settlement.room_id == room.id))
    statuses = list(result.scalars().all())
    if not statuses:
        raise InvalidStateError("Room has no settlement to complete")
    outstanding = [s for s in statuses if s != SettlementStatus.COMPLETED]
    if outstanding:
        raise InvalidStateError(
            "Every settlement must be completed before the room can complete",
            detail={"outstanding": len(outstanding)},
        )


async def change_status(
    db: AsyncSession,
    room_id: uuid.UUID,
    target: RoomStatus,
    actor_id: uuid.UUID,
    reason: str | None = None,
    *,
    bypass_membership: bool = False,
) -> Room:
    """Operator-requested transition with business-rule guards.

    Only ``negotiating → signing``, ``settling → completed`` and
    ``→ terminated`` are operator edges; ``setup → negotiating`` and
    ``signing → settling`` happen automatically and are refused here.
    """
    room = await get_room_for_member(
        db, room_id, actor_id, bypass_membership=bypass_membership, lock=True
    )
    if room.status in TERMINAL_STATES:
        raise InvalidStateError(f"Room is already {room.status.value}")

    if target == RoomStatus.TERMINATED:
        pass
    elif (room.status, target) == (RoomStatus.NEGOTIATING, RoomStatus.SIGNING):
        await _guard_signing(db, room)
    elif (room.status, target) == (RoomStatus.SETTLING, RoomStatus.COMPLETED):
        await _guard_completion(db, room)
    else:
        raise InvalidStateError(
            f"{room.status.value} → {target.value} is not an operator transition",
            detail={"from_status": room.status.value, "to_status": target.value},
        )

    return await transition_room(db, room, target, actor_id, reason=reason)


# ── Queries ──────────────────────────────────────────────────────────────────


async def get_room_or_404(
    db: AsyncSession,
    room_id: uuid.UUID,
    *,
    lock: bool = False,
) -> Room:
    stmt = select(Room).where(Room.id == room_id, Room.is_deleted.is_(False))
    if lock:
        # Row lock serializes per-room mutations (offer versioning, transitions)
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    room = result.scalar_one_or_none()
    if room is None:
        raise NotFoundError("Room not found", detail={"room_id": str(room_id)})
    return room


async def get_room_detail(db: AsyncSession, room_id: uuid.UUID) -> Room:
    result = await db.execute(
        select(Room)
        .where(Room.id == room_id, Room.is_deleted.is_(False))
        .options(
            selectinload(Room.participants),
            selectinload(Room.offers),
            selectinload(Room.documents).selectinload(Document.signature_requests),
            selectinload(Room.settlements),
        )
        .execution_options(populate_existing=True)
    )
    room = result.scalar_one_or_none()
    if room is None:
        raise NotFoundError("Room not found", detail={"room_id": str(room_id)})
    return room


async def list_rooms(
    db: AsyncSession,
    user_id: uuid.UUID | None = None,
    type: Any = None,
    status: RoomStatus | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Room], int]:
    """Rooms newest first. ``user_id`` restricts to rooms the user takes part in."""
    base = select(Room).where(Room.is_deleted.is_(False))
    if user_id is not None:
        member_rooms = select(RoomParticipant.room_id).where(RoomParticipant.user_id == user_id)
        base = base.where(Room.id.in_(member_rooms))
    if type is not None:
        base = base.where(Room.type == type)
    if status is not None:
        base = base.where(Room.status == status)

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar() or 0
    stmt = base.order_by(Room.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


# ── Commands ─────────────────────────────────────────────────────────────────


async def _require_users(db: AsyncSession, user_ids: set[uuid.UUID]) -> None:
    if not user_ids:
        return
    result = await db.execute(select(User.id).where(User.id.in_(user_ids), User.is_deleted.is_(False)))
    missing = user_ids - set(result.scalars().all())
    if missing:
        raise NotFoundError("Unknown participant user", detail={"user_ids": sorted(str(u) for u in missing)})


async def create_room(db: AsyncSession, creator_id: uuid.UUID, body: Any) -> Room:
    title = (body.title or "").strip()
    if not title:
        raise ValidationError("title is required")

    if body.listing_id is not None:
        listing = await db.get(Listing, body.listing_id)
        if listing is None or listing.is_deleted:
            raise NotFoundError("Listing not found", detail={"listing_id": str(body.listing_id)})

    pairs = {(p.user_id, p.role) for p in body.participants}
    await _require_users(db, {user_id for user_id, _ in pairs})

    room = Room(
        title=title,
        type=body.type,
        listing_id=body.listing_id,
        created_by=creator_id,
    )
    db.add(room)
    await db.flush()

    for p in body.participants:
        if (p.user_id, p.role) not in pairs:
            continue
        pairs.discard((p.user_id, p.role))
        db.add(RoomParticipant(room_id=room.id, user_id=p.user_id, role=p.role))
    await db.flush()

    await audit.record(
        db, room.id, creator_id, AuditAction.ROOM_CREATED, "Room", room.id,
        {
            "title": title,
            "type": room.type,
            "listing_id": room.listing_id,
            "participants": [{"user_id": p.user_id, "role": p.role} for p in body.participants],
        },
    )
    logger.info("room_created", room_id=str(room.id), type=room.type.value, creator_id=str(creator_id))

    await notifications.notify_many(
        db,
        [p.user_id for p in body.participants],
        NotificationType.SYSTEM,
        f'You were added to room "{title}".',
        link=f"/rooms/{room.id}",
        exclude=creator_id,
    )
    return room


async def rename_room(
    db: AsyncSession,
    room_id: uuid.UUID,
    actor_id: uuid.UUID,
    title: str,
    *,
    bypass_membership: bool = False,
) -> Room:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title is required")
    room = await get_room_for_member(db, room_id, actor_id, bypass_membership=bypass_membership)
    if room.title == title:
        return room
    previous = room.title
    room.title = title
    await db.flush()
    await audit.record(
        db, room.id, actor_id, AuditAction.ROOM_RENAMED, "Room", room.id,
        {"from_title": previous, "to_title": title},
    )
    return room


async def add_participant(
    db: AsyncSession,
    room_id: uuid.UUID,
    actor_id: uuid.UUID,
    body: Any,
    *,
    bypass_membership: bool = False,
) -> RoomParticipant:
    """Add a participant. Only existing participants (or admins) may add people."""
    room = await get_room_for_member(
        db, room_id, actor_id, bypass_membership=bypass_membership, lock=True
    )
    if room.status in TERMINAL_STATES:
        raise InvalidStateError(f"Cannot add participants to a {room.status.value} room")
    await _require_users(db, {body.user_id})

    participant = RoomParticipant(room_id=room.id, user_id=body.user_id, role=body.role)
    try:
        async with db.begin_nested():
            db.add(participant)
            await db.flush()
    except IntegrityError as exc:
        raise ConflictError(
            "User already holds this role in the room",
            detail={"user_id": str(body.user_id), "role": body.role.value},
        ) from exc

    await audit.record(
        db, room.id, actor_id, AuditAction.PARTICIPANT_ADDED, "RoomParticipant", participant.id,
        {"user_id": body.user_id, "role": body.role},
    )
    await notifications.notify(
        db, body.user_id, NotificationType.SYSTEM,
        f'You were added to room "{room.title}" as {body.role.value}.',
        link=f"/rooms/{room.id}",
    )
    return participant
