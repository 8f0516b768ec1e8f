"""Deal room models: the Room workflow unit, its participants, offers and chat."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dealroom.models.base import BaseModel, JSONType
from dealroom.models.enums import MessageType, OfferStatus, ParticipantRole, RoomStatus, RoomType

if TYPE_CHECKING:
    from dealroom.models.documents import Document
    from dealroom.models.settlements import Settlement

BUYER_ROLES = frozenset({ParticipantRole.BUYER})
SELLER_ROLES = frozenset({ParticipantRole.SELLER, ParticipantRole.BROKER_SELLER})


class Room(BaseModel):
    """One negotiation tracked from setup to settlement or termination."""

    __tablename__ = "rooms"
    __table_args__ = (
        Index("ix_rooms_status", "status"),
        Index("ix_rooms_type_status", "type", "status"),
        Index("ix_rooms_listing_id", "listing_id"),
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[RoomType] = mapped_column(nullable=False)
    status: Mapped[RoomStatus] = mapped_column(nullable=False, default=RoomStatus.SETUP)
    listing_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("listings.id", ondelete="SET NULL"),
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True))

    participants: Mapped[list[RoomParticipant]] = relationship(
        back_populates="room", cascade="all, delete-orphan", order_by="RoomParticipant.created_at"
    )
    offers: Mapped[list[Offer]] = relationship(
        back_populates="room", cascade="all, delete-orphan", order_by="Offer.version"
    )
    documents: Mapped[list[Document]] = relationship(
        back_populates="room", cascade="all, delete-orphan", order_by="Document.created_at"
    )
    settlements: Mapped[list[Settlement]] = relationship(
        back_populates="room", cascade="all, delete-orphan", order_by="Settlement.created_at"
    )

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, title={self.title!r}, status={self.status.value})>"


class RoomParticipant(BaseModel):
    __tablename__ = "room_participants"
    __table_args__ = (
        UniqueConstraint("room_id", "user_id", "role", name="uq_room_participant_role"),
        Index("ix_room_participants_user_id", "user_id"),
    )

    room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[ParticipantRole] = mapped_column(nullable=False)

    room: Mapped[Room] = relationship(back_populates="participants")


class Offer(BaseModel):
    """Versioned price/terms proposal. Only ``status`` changes after creation."""

    __tablename__ = "offers"
    __table_args__ = (
        UniqueConstraint("room_id", "version", name="uq_offer_room_version"),
        Index("ix_offers_room_id_status", "room_id", "status"),
    )

    room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[str] = mapped_column(String(100), nullable=False)  # opaque display amount
    terms: Mapped[str | None] = mapped_column(Text)
    message: Mapped[str | None] = mapped_column(Text)
    status: Mapped[OfferStatus] = mapped_column(nullable=False, default=OfferStatus.SENT)

    room: Mapped[Room] = relationship(back_populates="offers")

    def __repr__(self) -> str:
        return f"<Offer(id={self.id}, version={self.version}, status={self.status.value})>"


class RoomMessage(BaseModel):
    __tablename__ = "room_messages"
    __table_args__ = (
        Index("ix_room_messages_room_id_created_at", "room_id", "created_at"),
    )

    room_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("rooms.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[MessageType] = mapped_column(nullable=False, default=MessageType.TEXT)
    attachment_url: Mapped[str | None] = mapped_column(String(1000))
    attachment_name: Mapped[str | None] = mapped_column(String(500))
    mentions: Mapped[list] = mapped_column(JSONType, default=list)  # [user_id, ...]
