"""Document and signature Pydantic schemas."""

import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from dealroom.models.enums import (
    DocumentConfidentiality,
    DocumentSignatureStatus,
    DocumentType,
    SignatureRequestStatus,
)


class SignatureAction(str, enum.Enum):
    SIGN = "sign"
    REJECT = "reject"


class DocumentCreate(BaseModel):
    file_name: str = Field(min_length=1, max_length=500)
    file_url: str = Field(min_length=1, max_length=1000)
    file_size: int = Field(0, ge=0)
    document_type: DocumentType = DocumentType.OTHER
    confidentiality: DocumentConfidentiality = DocumentConfidentiality.PRIVATE


class DocumentGenerate(BaseModel):
    template_type: DocumentType  # nda | license


class SignRequestCreate(BaseModel):
    signer_ids: list[uuid.UUID] = Field(min_length=1)
    deadline_at: datetime | None = None


class SignatureSubmit(BaseModel):
    action: SignatureAction
    reject_reason: str | None = None
    signature_data: str | None = None  # opaque, stored as given


class SignatureRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    document_id: uuid.UUID
    signer_id: uuid.UUID
    status: SignatureRequestStatus
    deadline_at: datetime | None
    signed_at: datetime | None
    rejected_at: datetime | None
    reject_reason: str | None
    created_at: datetime


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    room_id: uuid.UUID
    uploader_id: uuid.UUID
    file_name: str
    file_url: str
    file_size: int
    document_type: DocumentType
    signature_status: DocumentSignatureStatus
    confidentiality: DocumentConfidentiality
    version: int
    created_at: datetime


class DocumentDetailResponse(DocumentResponse):
    content: str | None
    signature_requests: list[SignatureRequestResponse]


class SettleResponse(BaseModel):
    document_id: uuid.UUID
    settlement_id: uuid.UUID | None
    settled: bool
