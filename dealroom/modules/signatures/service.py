"""Signature quorum tracker: documents, sign requests, sign / reject.

A document is fully executed when every one of its signature requests is
``signed``. The check re-reads the whole request set under the document
row lock, so whichever signer completes the set triggers it exactly once,
and the ``DocumentFullySigned`` event hands over to the settlement cascade.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any

import sentry_sdk
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dealroom.core.events import DocumentFullySigned, dispatcher
from dealroom.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from dealroom.models.core import User
from dealroom.models.deal_rooms import BUYER_ROLES, SELLER_ROLES
from dealroom.models.documents import Document, SignatureRequest
from dealroom.models.enums import (
    DocumentSignatureStatus,
    NotificationType,
    SignatureRequestStatus,
)
from dealroom.models.listings import Listing
from dealroom.modules.audit import service as audit
from dealroom.modules.audit.service import AuditAction
from dealroom.modules.notifications import service as notifications
from dealroom.modules.offers.service import latest_accepted_offer
from dealroom.modules.rooms import service as rooms
from dealroom.modules.signatures import templates

logger = structlog.get_logger()

SIGN = "sign"
REJECT = "reject"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── Documents ────────────────────────────────────────────────────────────────


async def get_document_or_404(
    db: AsyncSession,
    document_id: uuid.UUID,
    *,
    lock: bool = False,
) -> Document:
    stmt = select(Document).where(Document.id == document_id, Document.is_deleted.is_(False))
    if lock:
        # Keyed on the document: serializes quorum checks across signers
        stmt = stmt.with_for_update()
    stmt = stmt.execution_options(populate_existing=True)
    document = (await db.execute(stmt)).scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found", detail={"document_id": str(document_id)})
    return document


async def get_document_detail(db: AsyncSession, document_id: uuid.UUID) -> Document:
    result = await db.execute(
        select(Document)
        .where(Document.id == document_id, Document.is_deleted.is_(False))
        .options(selectinload(Document.signature_requests))
        .execution_options(populate_existing=True)
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found", detail={"document_id": str(document_id)})
    return document


async def list_documents(db: AsyncSession, room_id: uuid.UUID) -> list[Document]:
    await rooms.get_room_or_404(db, room_id)
    result = await db.execute(
        select(Document)
        .where(Document.room_id == room_id, Document.is_deleted.is_(False))
        .order_by(Document.created_at.desc())
    )
    return list(result.scalars().all())


async def register_document(
    db: AsyncSession, room_id: uuid.UUID, uploader_id: uuid.UUID, body: Any
) -> Document:
    """Record an uploaded file in ``draft``. Storage itself happens elsewhere."""
    room = await rooms.get_room_or_404(db, room_id)
    if room.status in rooms.TERMINAL_STATES:
        raise InvalidStateError(f"Cannot add documents to a {room.status.value} room")
    await rooms.ensure_participant(db, room, uploader_id)

    document = Document(
        room_id=room.id,
        uploader_id=uploader_id,
        file_name=body.file_name,
        file_url=body.file_url,
        file_size=body.file_size,
        document_type=body.document_type,
        confidentiality=body.confidentiality,
        signature_status=DocumentSignatureStatus.DRAFT,
    )
    db.add(document)
    await db.flush()

    await audit.record(
        db, room.id, uploader_id, AuditAction.DOCUMENT_UPLOADED, "Document", document.id,
        {"file_name": document.file_name, "document_type": document.document_type},
    )
    logger.info("document_registered", room_id=str(room.id), document_id=str(document.id))
    return document


async def generate_document(
    db: AsyncSession, room_id: uuid.UUID, creator_id: uuid.UUID, template_type: Any
) -> Document:
    """Render an NDA or license for the room's counterparties and request both signatures."""
    if not templates.supports(template_type):
        raise ValidationError(
            "Unsupported template type",
            detail={"template_type": getattr(template_type, "value", template_type)},
        )

    room = await rooms.get_room_or_404(db, room_id, lock=True)
    if room.status in rooms.TERMINAL_STATES:
        raise InvalidStateError(f"Cannot generate documents in a {room.status.value} room")
    await rooms.ensure_participant(db, room, creator_id)

    participants = await rooms.require_counterparties(db, room)
    buyer_part = rooms.find_participant(participants, BUYER_ROLES)
    seller_part = rooms.find_participant(participants, SELLER_ROLES)
    buyer = await db.get(User, buyer_part.user_id)
    seller = await db.get(User, seller_part.user_id)

    subject = room.title
    if room.listing_id is not None:
        listing = await db.get(Listing, room.listing_id)
        if listing is not None:
            subject = listing.title

    offer = await latest_accepted_offer(db, room.id)
    title, content = templates.render(
        template_type,
        subject,
        seller=templates.Party(seller.full_name, seller.email),
        buyer=templates.Party(buyer.full_name, buyer.email),
        effective_date=_now().date(),
        price=offer.price if offer else None,
        terms=offer.terms if offer else None,
    )

    slug = re.sub(r"\s+", "_", title)
    document = Document(
        room_id=room.id,
        uploader_id=creator_id,
        file_name=f"{title}.txt",
        file_url=f"generated://{slug}",
        file_size=len(content.encode("utf-8")),
        document_type=template_type,
        signature_status=DocumentSignatureStatus.SIGN_REQUESTED,
        content=content,
    )
    db.add(document)
    await db.flush()

    signer_ids = list(dict.fromkeys([buyer.id, seller.id]))
    for signer_id in signer_ids:
        db.add(SignatureRequest(document_id=document.id, signer_id=signer_id))
    await db.flush()

    await audit.record(
        db, room.id, creator_id, AuditAction.DOCUMENT_GENERATED, "Document", document.id,
        {"template_type": template_type, "title": document.file_name, "signer_ids": signer_ids},
    )
    logger.info(
        "document_generated",
        room_id=str(room.id),
        document_id=str(document.id),
        template_type=template_type.value,
    )

    await notifications.notify_many(
        db,
        signer_ids,
        NotificationType.DOCUMENT,
        f'Your signature is requested on "{document.file_name}".',
        link=f"/documents/{document.id}",
        exclude=creator_id,
    )
    return document


# ── Signature requests ───────────────────────────────────────────────────────


async def list_signature_requests(db: AsyncSession, document_id: uuid.UUID) -> list[SignatureRequest]:
    await get_document_or_404(db, document_id)
    return await _load_requests(db, document_id)


async def _load_requests(
    db: AsyncSession, document_id: uuid.UUID, *, lock: bool = False
) -> list[SignatureRequest]:
    stmt = (
        select(SignatureRequest)
        .where(SignatureRequest.document_id == document_id)
        .order_by(SignatureRequest.created_at)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def request_signatures(
    db: AsyncSession,
    document_id: uuid.UUID,
    actor_id: uuid.UUID,
    signer_ids: list[uuid.UUID],
    deadline_at: datetime | None = None,
) -> list[SignatureRequest]:
    """Upsert a ``pending`` request per signer; terminal requests are reset."""
    signer_ids = list(dict.fromkeys(signer_ids or []))
    if not signer_ids:
        raise ValidationError("signer_ids is required")

    document = await get_document_or_404(db, document_id, lock=True)
    if document.signature_status == DocumentSignatureStatus.SIGNED:
        raise InvalidStateError(
            "Document is already fully signed",
            detail={"document_id": str(document.id)},
        )
    room = await rooms.get_room_or_404(db, document.room_id)
    if room.status in rooms.TERMINAL_STATES:
        raise InvalidStateError(f"Cannot request signatures in a {room.status.value} room")
    await rooms.ensure_participant(db, room, actor_id)

    members = set(await rooms.participant_user_ids(db, room.id))
    outsiders = [s for s in signer_ids if s not in members]
    if outsiders:
        raise ValidationError(
            "Signers must be room participants",
            detail={"signer_ids": [str(s) for s in outsiders]},
        )

    existing = {r.signer_id: r for r in await _load_requests(db, document.id, lock=True)}
    for signer_id in signer_ids:
        request = existing.get(signer_id)
        if request is None:
            db.add(SignatureRequest(
                document_id=document.id,
                signer_id=signer_id,
                deadline_at=deadline_at,
            ))
            continue
        request.status = SignatureRequestStatus.PENDING
        request.deadline_at = deadline_at
        request.signed_at = None
        request.rejected_at = None
        request.reject_reason = None
        request.signature_data = None

    previous = document.signature_status
    document.signature_status = DocumentSignatureStatus.SIGN_REQUESTED
    await db.flush()

    await audit.record(
        db, room.id, actor_id, AuditAction.SIGNATURES_REQUESTED, "Document", document.id,
        {
            "signer_ids": signer_ids,
            "deadline_at": deadline_at,
            "from_status": previous,
            "to_status": document.signature_status,
        },
    )
    logger.info(
        "signatures_requested",
        document_id=str(document.id),
        signer_count=len(signer_ids),
    )

    await notifications.notify_many(
        db,
        signer_ids,
        NotificationType.DOCUMENT,
        f'Your signature is requested on "{document.file_name}".',
        link=f"/documents/{document.id}",
        exclude=actor_id,
    )
    return await _load_requests(db, document.id)


async def record_signature(
    db: AsyncSession,
    document_id: uuid.UUID,
    signer_id: uuid.UUID,
    action: str,
    reject_reason: str | None = None,
    signature_data: str | None = None,
) -> Document:
    """Sign or reject the signer's pending request on the document."""
    action = getattr(action, "value", action)
    if action not in (SIGN, REJECT):
        raise ValidationError('action must be "sign" or "reject"', detail={"action": action})

    document = await get_document_or_404(db, document_id, lock=True)
    room = await rooms.get_room_or_404(db, document.room_id)
    if room.status in rooms.TERMINAL_STATES:
        raise InvalidStateError(
            f"Cannot sign documents in a {room.status.value} room",
            detail={"document_id": str(document.id), "room_status": room.status.value},
        )

    result = await db.execute(
        select(SignatureRequest)
        .where(SignatureRequest.document_id == document.id, SignatureRequest.signer_id == signer_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise InvalidStateError(
            "No signature request for this signer",
            detail={"document_id": str(document.id), "signer_id": str(signer_id)},
        )
    if request.is_terminal:
        raise InvalidStateError(
            f"Signature already {request.status.value}",
            detail={"signature_request_id": str(request.id), "status": request.status.value},
        )
    if action == SIGN and document.signature_status == DocumentSignatureStatus.REJECTED:
        raise InvalidStateError(
            "Document was rejected; signatures must be requested again",
            detail={"document_id": str(document.id)},
        )

    if action == SIGN:
        await _sign(db, document, request, signature_data)
    else:
        await _reject(db, document, request, reject_reason)

    return await get_document_detail(db, document.id)


async def _sign(
    db: AsyncSession, document: Document, request: SignatureRequest, signature_data: str | None
) -> None:
    request.status = SignatureRequestStatus.SIGNED
    request.signed_at = _now()
    request.signature_data = signature_data
    await db.flush()

    await audit.record(
        db, document.room_id, request.signer_id, AuditAction.DOCUMENT_SIGNED, "SignatureRequest", request.id,
        {"document_id": document.id, "from_status": SignatureRequestStatus.PENDING, "to_status": request.status},
    )
    logger.info("document_signature_recorded", document_id=str(document.id), signer_id=str(request.signer_id))

    await check_quorum(db, document, request.signer_id)


async def _reject(
    db: AsyncSession, document: Document, request: SignatureRequest, reject_reason: str | None
) -> None:
    request.status = SignatureRequestStatus.REJECTED
    request.rejected_at = _now()
    request.reject_reason = reject_reason

    # One rejection fails the whole document
    previous = document.signature_status
    document.signature_status = DocumentSignatureStatus.REJECTED
    await db.flush()

    await audit.record(
        db, document.room_id, request.signer_id, AuditAction.DOCUMENT_REJECTED, "Document", document.id,
        {
            "signature_request_id": request.id,
            "reason": reject_reason,
            "from_status": previous,
            "to_status": document.signature_status,
        },
    )
    logger.info("document_rejected", document_id=str(document.id), signer_id=str(request.signer_id))

    await _notify_outcome(db, document, f'Document "{document.file_name}" was rejected.')


async def _notify_outcome(db: AsyncSession, document: Document, message: str) -> None:
    """Uploader plus every signer of the document."""
    recipients = [document.uploader_id] + [r.signer_id for r in await _load_requests(db, document.id)]
    await notifications.notify_many(
        db, recipients, NotificationType.DOCUMENT, message, link=f"/documents/{document.id}"
    )


async def check_quorum(db: AsyncSession, document: Document, actor_id: uuid.UUID | None) -> bool:
    """Mark the document ``signed`` and dispatch ``DocumentFullySigned`` once every request is signed.

    Returns True only for the call that completed the quorum. The caller
    must hold the document row lock.
    """
    if document.signature_status == DocumentSignatureStatus.SIGNED:
        return False

    requests = await _load_requests(db, document.id)
    if not requests or any(r.status != SignatureRequestStatus.SIGNED for r in requests):
        return False

    previous = document.signature_status
    document.signature_status = DocumentSignatureStatus.SIGNED
    await db.flush()

    await audit.record(
        db, document.room_id, actor_id, AuditAction.DOCUMENT_FULLY_SIGNED, "Document", document.id,
        {"signer_ids": [r.signer_id for r in requests], "from_status": previous, "to_status": document.signature_status},
    )
    logger.info("document_fully_signed", document_id=str(document.id), room_id=str(document.room_id))

    await _notify_outcome(db, document, f'Document "{document.file_name}" has been fully signed.')

    event = DocumentFullySigned(document_id=document.id, room_id=document.room_id, actor_id=actor_id)
    try:
        await dispatcher.dispatch(db, event)
    except Exception as exc:
        # The cascade rolled back its own savepoint; the signature stands and
        # the cascade can be retried through settle_document.
        logger.error(
            "settlement_cascade_failed",
            document_id=str(document.id),
            room_id=str(document.room_id),
            error=str(exc),
            error_type=type(exc).__name__,
        )
        sentry_sdk.capture_exception(exc)
    return True


async def settle_document(
    db: AsyncSession,
    document_id: uuid.UUID,
    actor_id: uuid.UUID,
    *,
    bypass_membership: bool = False,
) -> Any:
    """Re-run the settlement cascade for a fully signed document. Idempotent."""
    document = await get_document_or_404(db, document_id, lock=True)
    await rooms.get_room_for_member(db, document.room_id, actor_id, bypass_membership=bypass_membership)
    if document.signature_status != DocumentSignatureStatus.SIGNED:
        raise InvalidStateError(
            "Only fully signed documents can be settled",
            detail={"signature_status": document.signature_status.value},
        )
    event = DocumentFullySigned(document_id=document.id, room_id=document.room_id, actor_id=actor_id)
    results = await dispatcher.dispatch(db, event)
    return next((r for r in results if r is not None), None)
