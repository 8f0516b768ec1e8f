"""Settlement obligations and the fee policies applied to them."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealroom.models.base import BaseModel, JSONType
from dealroom.models.enums import FeeScope, FeeType, PaymentType, SettlementStatus

if TYPE_CHECKING:
    from dealroom.models.deal_rooms import Room


class FeePolicy(BaseModel):
    __tablename__ = "fee_policies"
    __table_args__ = (
        Index("ix_fee_policies_is_active_created_at", "is_active", "created_at"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    fee_type: Mapped[FeeType] = mapped_column(nullable=False, default=FeeType.PLATFORM)
    rate_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 4))
    fixed_fee: Mapped[str | None] = mapped_column(String(100))
    applicable_to: Mapped[FeeScope] = mapped_column(nullable=False, default=FeeScope.ALL)
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true", nullable=False)

    def __repr__(self) -> str:
        return f"<FeePolicy(id={self.id}, name={self.name!r}, rate_percent={self.rate_percent})>"


class Settlement(BaseModel):
    """Payer → payee obligation. Immutable once ``completed``."""

    __tablename__ = "settlements"
    __table_args__ = (
        # One automatic settlement per fully signed document
        UniqueConstraint("document_id", name="uq_settlement_document"),
        Index("ix_settlements_room_id", "room_id"),
        Index("ix_settlements_status", "status"),
    )

    room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    license_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))
    document_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="SET NULL")
    )
    offer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("offers.id", ondelete="SET NULL")
    )
    payer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    payee_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    payee_account: Mapped[str | None] = mapped_column(String(100))  # platform settlement identity
    amount: Mapped[str] = mapped_column(String(100), nullable=False)  # opaque display amount
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KRW")
    payment_type: Mapped[PaymentType] = mapped_column(nullable=False, default=PaymentType.UPFRONT)
    status: Mapped[SettlementStatus] = mapped_column(nullable=False, default=SettlementStatus.PENDING)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    transaction_ref: Mapped[str | None] = mapped_column(String(255))
    note: Mapped[str | None] = mapped_column(Text)
    fee_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    fee_snapshot_version: Mapped[int | None] = mapped_column(Integer)

    room: Mapped[Room] = relationship(back_populates="settlements")

    def __repr__(self) -> str:
        return f"<Settlement(id={self.id}, amount={self.amount!r}, status={self.status.value})>"
