"""Room documents and their per-signer signature requests."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealroom.models.base import BaseModel
from dealroom.models.enums import (
    DocumentConfidentiality,
    DocumentSignatureStatus,
    DocumentType,
    SignatureRequestStatus,
)

if TYPE_CHECKING:
    from dealroom.models.deal_rooms import Room


class Document(BaseModel):
    __tablename__ = "documents"
    __table_args__ = (
        Index("ix_documents_room_id", "room_id"),
        Index("ix_documents_signature_status", "signature_status"),
    )

    room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    uploader_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    document_type: Mapped[DocumentType] = mapped_column(nullable=False)
    signature_status: Mapped[DocumentSignatureStatus] = mapped_column(
        nullable=False, default=DocumentSignatureStatus.DRAFT
    )
    confidentiality: Mapped[DocumentConfidentiality] = mapped_column(
        nullable=False, default=DocumentConfidentiality.PRIVATE
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    content: Mapped[str | None] = mapped_column(Text)  # generated contract body

    room: Mapped[Room] = relationship(back_populates="documents")
    signature_requests: Mapped[list[SignatureRequest]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="SignatureRequest.created_at",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, file_name={self.file_name!r}, signature_status={self.signature_status.value})>"


class SignatureRequest(BaseModel):
    """One signer's obligation on one document; terminal once signed or rejected."""

    __tablename__ = "signature_requests"
    __table_args__ = (
        UniqueConstraint("document_id", "signer_id", name="uq_signature_request_document_signer"),
        Index("ix_signature_requests_signer_status", "signer_id", "status"),
    )

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    signer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[SignatureRequestStatus] = mapped_column(
        nullable=False, default=SignatureRequestStatus.PENDING
    )
    deadline_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))  # advisory only
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reject_reason: Mapped[str | None] = mapped_column(Text)
    signature_data: Mapped[str | None] = mapped_column(Text)  # opaque payload, never verified

    document: Mapped[Document] = relationship(back_populates="signature_requests")

    @property
    def is_terminal(self) -> bool:
        return self.status != SignatureRequestStatus.PENDING
