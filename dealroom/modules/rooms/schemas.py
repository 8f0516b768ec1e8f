"""Room Pydantic schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from dealroom.models.enums import ParticipantRole, RoomStatus, RoomType
from dealroom.modules.offers.schemas import OfferResponse
from dealroom.modules.settlements.schemas import SettlementResponse
from dealroom.modules.signatures.schemas import DocumentResponse


class ParticipantCreate(BaseModel):
    user_id: uuid.UUID
    role: ParticipantRole


class RoomCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    type: RoomType = RoomType.DEAL
    listing_id: uuid.UUID | None = None
    participants: list[ParticipantCreate] = Field(default_factory=list)


class RoomUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=500)


class RoomStatusChange(BaseModel):
    status: RoomStatus
    reason: str | None = None


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    room_id: uuid.UUID
    user_id: uuid.UUID
    role: ParticipantRole
    created_at: datetime


class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    type: RoomType
    status: RoomStatus
    listing_id: uuid.UUID | None
    created_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime


class RoomDetailResponse(RoomResponse):
    participants: list[ParticipantResponse]
    offers: list[OfferResponse]
    documents: list[DocumentResponse]
    settlements: list[SettlementResponse]


class RoomListResponse(BaseModel):
    items: list[RoomResponse]
    total: int
    page: int
    page_size: int
