"""Enums for all domain models."""

import enum


# ── Core ─────────────────────────────────────────────────────────────────────


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    OWNER = "owner"
    BUYER = "buyer"
    BROKER = "broker"
    VALUATOR = "valuator"


class NotificationType(str, enum.Enum):
    OFFER = "offer"
    DOCUMENT = "document"
    SETTLEMENT = "settlement"
    NEW_MESSAGE = "new_message"
    SYSTEM = "system"


# ── Listings (traded rights) ─────────────────────────────────────────────────


class ListingStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    UNDER_NEGOTIATION = "under_negotiation"
    SOLD = "sold"
    WITHDRAWN = "withdrawn"


# ── Deal Rooms ───────────────────────────────────────────────────────────────


class RoomType(str, enum.Enum):
    DEAL = "deal"
    LICENSE = "license"
    VALUATION = "valuation"


class RoomStatus(str, enum.Enum):
    SETUP = "setup"
    NEGOTIATING = "negotiating"
    SIGNING = "signing"
    SETTLING = "settling"
    COMPLETED = "completed"
    TERMINATED = "terminated"


class ParticipantRole(str, enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"
    BROKER_SELLER = "broker_seller"
    BROKER = "broker"
    VALUATOR = "valuator"


class OfferStatus(str, enum.Enum):
    SENT = "sent"
    ACCEPTED = "accepted"
    SUPERSEDED = "superseded"
    REJECTED = "rejected"


class MessageType(str, enum.Enum):
    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"


# ── Documents & Signatures ───────────────────────────────────────────────────


class DocumentType(str, enum.Enum):
    NDA = "nda"
    LICENSE = "license"
    OTHER = "other"


class DocumentSignatureStatus(str, enum.Enum):
    DRAFT = "draft"
    SIGN_REQUESTED = "sign_requested"
    SIGNED = "signed"
    REJECTED = "rejected"


class DocumentConfidentiality(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    RESTRICTED = "restricted"


class SignatureRequestStatus(str, enum.Enum):
    PENDING = "pending"
    SIGNED = "signed"
    REJECTED = "rejected"


# ── Settlements ──────────────────────────────────────────────────────────────


class SettlementStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentType(str, enum.Enum):
    UPFRONT = "upfront"
    ESCROW = "escrow"
    MILESTONE = "milestone"
    ROYALTY = "royalty"


class FeeType(str, enum.Enum):
    PLATFORM = "platform"
    BROKERAGE = "brokerage"
    VALUATION = "valuation"


class FeeScope(str, enum.Enum):
    ALL = "all"
    DEAL = "deal"
    LICENSE = "license"
    VALUATION = "valuation"
