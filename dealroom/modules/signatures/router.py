"""Documents and signatures API router."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.auth.dependencies import require_permission
from dealroom.core.database import get_db
from dealroom.modules.rooms import service as rooms
from dealroom.modules.signatures import service
from dealroom.modules.signatures.schemas import (
    DocumentCreate,
    DocumentDetailResponse,
    DocumentGenerate,
    DocumentResponse,
    SettleResponse,
    SignatureRequestResponse,
    SignatureSubmit,
    SignRequestCreate,
)
from dealroom.schemas.auth import CurrentUser

router = APIRouter(tags=["documents"])


# ── Room documents ───────────────────────────────────────────────────────────


@router.get("/rooms/{room_id}/documents", response_model=list[DocumentResponse])
async def list_documents(
    room_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("view", "document")),
    db: AsyncSession = Depends(get_db),
):
    await rooms.get_room_for_member(db, room_id, current_user.user_id, bypass_membership=current_user.is_admin)
    documents = await service.list_documents(db, room_id)
    return [DocumentResponse.model_validate(d) for d in documents]


@router.post(
    "/rooms/{room_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_document(
    room_id: uuid.UUID,
    body: DocumentCreate,
    current_user: CurrentUser = Depends(require_permission("create", "document")),
    db: AsyncSession = Depends(get_db),
):
    document = await service.register_document(db, room_id, current_user.user_id, body)
    await db.commit()
    return DocumentResponse.model_validate(document)


@router.post(
    "/rooms/{room_id}/documents/generate",
    response_model=DocumentDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_document(
    room_id: uuid.UUID,
    body: DocumentGenerate,
    current_user: CurrentUser = Depends(require_permission("create", "document")),
    db: AsyncSession = Depends(get_db),
):
    """Generate an NDA or license with pending requests for the buyer and the seller."""
    document = await service.generate_document(db, room_id, current_user.user_id, body.template_type)
    await db.commit()
    document = await service.get_document_detail(db, document.id)
    return DocumentDetailResponse.model_validate(document)


# ── Signatures ───────────────────────────────────────────────────────────────


@router.get("/documents/{document_id}", response_model=DocumentDetailResponse)
async def get_document(
    document_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("view", "document")),
    db: AsyncSession = Depends(get_db),
):
    document = await service.get_document_detail(db, document_id)
    await rooms.get_room_for_member(
        db, document.room_id, current_user.user_id, bypass_membership=current_user.is_admin
    )
    return DocumentDetailResponse.model_validate(document)


@router.get("/documents/{document_id}/sign-request", response_model=list[SignatureRequestResponse])
async def list_signature_requests(
    document_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("view", "document")),
    db: AsyncSession = Depends(get_db),
):
    document = await service.get_document_or_404(db, document_id)
    await rooms.get_room_for_member(
        db, document.room_id, current_user.user_id, bypass_membership=current_user.is_admin
    )
    requests = await service.list_signature_requests(db, document_id)
    return [SignatureRequestResponse.model_validate(r) for r in requests]


@router.post(
    "/documents/{document_id}/sign-request",
    response_model=list[SignatureRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
async def request_signatures(
    document_id: uuid.UUID,
    body: SignRequestCreate,
    current_user: CurrentUser = Depends(require_permission("create", "document")),
    db: AsyncSession = Depends(get_db),
):
    requests = await service.request_signatures(
        db, document_id, current_user.user_id, body.signer_ids, body.deadline_at
    )
    await db.commit()
    return [SignatureRequestResponse.model_validate(r) for r in requests]


@router.post("/documents/{document_id}/sign", response_model=DocumentDetailResponse)
async def record_signature(
    document_id: uuid.UUID,
    body: SignatureSubmit,
    current_user: CurrentUser = Depends(require_permission("sign", "document")),
    db: AsyncSession = Depends(get_db),
):
    """Sign or reject as the current user. The last signature triggers the settlement cascade."""
    document = await service.record_signature(
        db,
        document_id,
        current_user.user_id,
        body.action,
        reject_reason=body.reject_reason,
        signature_data=body.signature_data,
    )
    await db.commit()
    return DocumentDetailResponse.model_validate(document)


@router.post("/documents/{document_id}/settle", response_model=SettleResponse)
async def settle_document(
    document_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_permission("create", "settlement")),
    db: AsyncSession = Depends(get_db),
):
    """Retry the settlement cascade for a fully signed document."""
    settlement = await service.settle_document(
        db, document_id, current_user.user_id, bypass_membership=current_user.is_admin
    )
    await db.commit()
    return SettleResponse(
        document_id=document_id,
        settlement_id=settlement.id if settlement is not None else None,
        settled=settlement is not None,
    )
