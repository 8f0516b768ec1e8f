"""Offer Pydantic schemas."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from dealroom.models.enums import OfferStatus


class OfferCreate(BaseModel):
    price: str = Field(min_length=1, max_length=100)
    terms: str | None = None
    message: str | None = None


class OfferResolve(BaseModel):
    status: OfferStatus  # accepted | rejected


class OfferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    room_id: uuid.UUID
    creator_id: uuid.UUID
    version: int
    price: str
    terms: str | None
    message: str | None
    status: OfferStatus
    created_at: datetime
    updated_at: datetime
