"""Settlement cascade: turns a fully signed document into a pending settlement.

Registered with the event dispatcher at import time (``dealroom.main``
imports this module). Steps that write state run in one savepoint, so a
failure leaves the document ``signed`` and the room ``signing`` and the
cascade can simply be dispatched again.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.core.config import settings
from dealroom.core.events import DocumentFullySigned, dispatcher
from dealroom.core.exceptions import InvalidStateError
from dealroom.models.deal_rooms import BUYER_ROLES
from dealroom.models.enums import DocumentSignatureStatus, NotificationType, PaymentType, RoomStatus, SettlementStatus
from dealroom.models.settlements import Settlement
from dealroom.modules.audit import service as audit
from dealroom.modules.audit.service import AuditAction
from dealroom.modules.notifications import service as notifications
from dealroom.modules.offers.service import latest_accepted_offer
from dealroom.modules.rooms import service as rooms
from dealroom.modules.settlements import fees
from dealroom.modules.signatures.service import get_document_or_404

logger = structlog.get_logger()

# A second contract in a room already settling adds a settlement without a transition
_SETTLEABLE_ROOM_STATES = frozenset({RoomStatus.SIGNING, RoomStatus.SETTLING})


async def handle_document_fully_signed(db: AsyncSession, event: DocumentFullySigned) -> Settlement | None:
    log = logger.bind(document_id=str(event.document_id), room_id=str(event.room_id))

    document = await get_document_or_404(db, event.document_id)
    if document.signature_status != DocumentSignatureStatus.SIGNED:
        log.warning("settlement_cascade_skipped", reason="document_not_signed")
        return None

    existing = (
        await db.execute(select(Settlement).where(Settlement.document_id == document.id))
    ).scalar_one_or_none()
    if existing is not None:
        log.info("settlement_cascade_skipped", reason="already_settled", settlement_id=str(existing.id))
        return existing

    room = await rooms.get_room_or_404(db, document.room_id, lock=True)

    # Not every signed document is a monetary deal (e.g. a standalone NDA)
    offer = await latest_accepted_offer(db, room.id)
    if offer is None:
        log.info("settlement_cascade_skipped", reason="no_accepted_offer")
        return None

    payer = rooms.find_participant(await rooms.load_participants(db, room.id), BUYER_ROLES)
    if payer is None:
        log.warning("settlement_cascade_skipped", reason="no_buyer")
        return None

    if room.status not in _SETTLEABLE_ROOM_STATES:
        raise InvalidStateError(
            f"Cannot settle a document in a {room.status.value} room",
            detail={"room_id": str(room.id), "room_status": room.status.value},
        )

    policy = await fees.active_fee_policy(db)
    snapshot = fees.build_fee_snapshot(policy, room.type)

    async with db.begin_nested():
        settlement = Settlement(
            room_id=room.id,
            document_id=document.id,
            offer_id=offer.id,
            payer_id=payer.user_id,
            payee_account=settings.PLATFORM_SETTLEMENT_ACCOUNT,
            amount=offer.price,
            payment_type=PaymentType(settings.AUTO_SETTLEMENT_PAYMENT_TYPE),
            status=SettlementStatus.PENDING,
            note=fees.fee_note(snapshot),
            fee_snapshot=snapshot,
            fee_snapshot_version=fees.FEE_SNAPSHOT_VERSION,
        )
        db.add(settlement)
        await db.flush()

        await audit.record(
            db, room.id, None, AuditAction.FEE_POLICY_APPLIED, "Settlement", settlement.id,
            {**snapshot, "document_id": document.id, "offer_id": offer.id, "amount": offer.price},
        )

        if room.status == RoomStatus.SIGNING:
            await rooms.transition_room(
                db, room, RoomStatus.SETTLING, None, reason="document fully signed"
            )

    log.info(
        "settlement_cascade_completed",
        settlement_id=str(settlement.id),
        amount=settlement.amount,
        fee_policy=snapshot["name"],
    )

    await notifications.notify(
        db,
        payer.user_id,
        NotificationType.SETTLEMENT,
        f'Settlement of {settlement.amount} is pending for room "{room.title}".',
        link=f"/rooms/{room.id}/settlement",
    )
    return settlement


dispatcher.subscribe(DocumentFullySigned, handle_document_fully_signed)
