"""Traded-right listing record (owned by the marketplace; the deal room only flips its status)."""

import uuid

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from dealroom.models.base import BaseModel
from dealroom.models.enums import ListingStatus


class Listing(BaseModel):
    __tablename__ = "listings"
    __table_args__ = (
        Index("ix_listings_owner_id", "owner_id"),
        Index("ix_listings_status", "status"),
    )

    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[ListingStatus] = mapped_column(
        nullable=False, default=ListingStatus.PUBLISHED
    )

    def __repr__(self) -> str:
        return f"<Listing(id={self.id}, title={self.title!r}, status={self.status.value})>"
