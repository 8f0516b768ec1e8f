"""SQLAlchemy models package: import all models so Base.metadata is populated."""

from dealroom.models.base import BaseModel, ModelMixin, TimestampedModel
from dealroom.models.core import AuditLog, Notification, User
from dealroom.models.deal_rooms import Offer, Room, RoomMessage, RoomParticipant
from dealroom.models.documents import Document, SignatureRequest
from dealroom.models.enums import (
    DocumentConfidentiality,
    DocumentSignatureStatus,
    DocumentType,
    FeeScope,
    FeeType,
    ListingStatus,
    MessageType,
    NotificationType,
    OfferStatus,
    ParticipantRole,
    PaymentType,
    RoomStatus,
    RoomType,
    SettlementStatus,
    SignatureRequestStatus,
    UserRole,
)
from dealroom.models.listings import Listing
from dealroom.models.settlements import FeePolicy, Settlement

__all__ = [
    "AuditLog",
    "BaseModel",
    "Document",
    "DocumentConfidentiality",
    "DocumentSignatureStatus",
    "DocumentType",
    "FeePolicy",
    "FeeScope",
    "FeeType",
    "Listing",
    "ListingStatus",
    "MessageType",
    "ModelMixin",
    "Notification",
    "NotificationType",
    "Offer",
    "OfferStatus",
    "ParticipantRole",
    "PaymentType",
    "Room",
    "RoomMessage",
    "RoomParticipant",
    "RoomStatus",
    "RoomType",
    "Settlement",
    "SettlementStatus",
    "SignatureRequest",
    "SignatureRequestStatus",
    "TimestampedModel",
    "User",
    "UserRole",
]
