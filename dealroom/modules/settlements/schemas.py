"""Settlement and fee policy Pydantic schemas."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dealroom.models.enums import FeeScope, FeeType, PaymentType, SettlementStatus


class SettlementAction(str, enum.Enum):
    CONFIRM_PAYMENT = "confirm_payment"
    MARK_PROCESSING = "mark_processing"
    DISPUTE = "dispute"


class SettlementCreate(BaseModel):
    payer_id: uuid.UUID
    payee_id: uuid.UUID | None = None
    payee_account: str | None = Field(None, max_length=100)
    amount: str = Field(min_length=1, max_length=100)
    currency: str = Field("KRW", min_length=3, max_length=3)
    payment_type: PaymentType = PaymentType.UPFRONT
    license_id: uuid.UUID | None = None
    due_date: datetime | None = None
    note: str | None = None


class SettlementUpdate(BaseModel):
    action: SettlementAction
    note: str | None = None
    transaction_ref: str | None = Field(None, max_length=255)


class SettlementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    room_id: uuid.UUID
    license_id: uuid.UUID | None
    document_id: uuid.UUID | None
    offer_id: uuid.UUID | None
    payer_id: uuid.UUID
    payee_id: uuid.UUID | None
    payee_account: str | None
    amount: str
    currency: str
    payment_type: PaymentType
    status: SettlementStatus
    paid_at: datetime | None
    due_date: datetime | None
    transaction_ref: str | None
    note: str | None
    fee_snapshot: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class SettlementListResponse(BaseModel):
    items: list[SettlementResponse]
    total: int
    page: int
    page_size: int


class FeePolicyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    fee_type: FeeType = FeeType.PLATFORM
    rate_percent: Decimal | None = Field(None, ge=0, le=100)
    fixed_fee: str | None = Field(None, max_length=100)
    applicable_to: FeeScope = FeeScope.ALL
    is_active: bool = True


class FeePolicyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    fee_type: FeeType
    rate_percent: Decimal | None
    fixed_fee: str | None
    applicable_to: FeeScope
    is_active: bool
    created_at: datetime


class SettlementSummary(BaseModel):
    total_amount: Decimal
    paid_count: int
    pending_count: int
    total_count: int


class RoomSettlementResponse(BaseModel):
    settlements: list[SettlementResponse]
    fee_policies: list[FeePolicyResponse]
    summary: SettlementSummary
