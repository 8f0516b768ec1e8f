"""initial deal room schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

Changes:
  - CREATE: users, listings, rooms, room_participants, offers, room_messages
  - CREATE: documents, signature_requests
  - CREATE: fee_policies, settlements
  - CREATE: audit_logs, notifications
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# ── Enum helpers ──────────────────────────────────────────────────────────────

_ENUMS: dict[str, tuple[str, ...]] = {
    "userrole": ("admin", "owner", "buyer", "broker", "valuator"),
    "notificationtype": ("offer", "document", "settlement", "new_message", "system"),
    "listingstatus": ("draft", "published", "under_negotiation", "sold", "withdrawn"),
    "roomtype": ("deal", "license", "valuation"),
    "roomstatus": ("setup", "negotiating", "signing", "settling", "completed", "terminated"),
    "participantrole": ("buyer", "seller", "broker_seller", "broker", "valuator"),
    "offerstatus": ("sent", "accepted", "superseded", "rejected"),
    "messagetype": ("text", "file", "system"),
    "documenttype": ("nda", "license", "other"),
    "documentsignaturestatus": ("draft", "sign_requested", "signed", "rejected"),
    "documentconfidentiality": ("public", "private", "restricted"),
    "signaturerequeststatus": ("pending", "signed", "rejected"),
    "settlementstatus": ("pending", "processing", "completed", "failed"),
    "paymenttype": ("upfront", "escrow", "milestone", "royalty"),
    "feetype": ("platform", "brokerage", "valuation"),
    "feescope": ("all", "deal", "license", "valuation"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default="false"),
    ]


def upgrade() -> None:
    conn = op.get_bind()
    for name, values in _ENUMS.items():
        postgresql.ENUM(*values, name=name).create(conn, checkfirst=True)

    # ── users / listings ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", _enum("userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "listings",
        *_base_columns(),
        sa.Column("owner_id", _uuid(), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("status", _enum("listingstatus"), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])
    op.create_index("ix_listings_status", "listings", ["status"])

    # ── rooms ─────────────────────────────────────────────────────────────────

    op.create_table(
        "rooms",
        *_base_columns(),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("type", _enum("roomtype"), nullable=False),
        sa.Column("status", _enum("roomstatus"), nullable=False),
        sa.Column("listing_id", _uuid(), nullable=True),
        sa.Column("created_by", _uuid(), nullable=True),
        sa.ForeignKeyConstraint(["listing_id"], ["listings.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rooms_status", "rooms", ["status"])
    op.create_index("ix_rooms_type_status", "rooms", ["type", "status"])
    op.create_index("ix_rooms_listing_id", "rooms", ["listing_id"])

    op.create_table(
        "room_participants",
        *_base_columns(),
        sa.Column("room_id", _uuid(), nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("role", _enum("participantrole"), nullable=False),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("room_id", "user_id", "role", name="uq_room_participant_role"),
    )
    op.create_index("ix_room_participants_room_id", "room_participants", ["room_id"])
    op.create_index("ix_room_participants_user_id", "room_participants", ["user_id"])

    op.create_table(
        "offers",
        *_base_columns(),
        sa.Column("room_id", _uuid(), nullable=False),
        sa.Column("creator_id", _uuid(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("price", sa.String(100), nullable=False),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", _enum("offerstatus"), nullable=False),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["creator_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("room_id", "version", name="uq_offer_room_version"),
    )
    op.create_index("ix_offers_room_id_status", "offers", ["room_id", "status"])

    op.create_table(
        "room_messages",
        *_base_columns(),
        sa.Column("room_id", _uuid(), nullable=False),
        sa.Column("sender_id", _uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", _enum("messagetype"), nullable=False),
        sa.Column("attachment_url", sa.String(1000), nullable=True),
        sa.Column("attachment_name", sa.String(500), nullable=True),
        sa.Column("mentions", postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_room_messages_room_id_created_at", "room_messages", ["room_id", "created_at"])

    # ── documents / signatures ────────────────────────────────────────────────

    op.create_table(
        "documents",
        *_base_columns(),
        sa.Column("room_id", _uuid(), nullable=False),
        sa.Column("uploader_id", _uuid(), nullable=False),
        sa.Column("file_name", sa.String(500), nullable=False),
        sa.Column("file_url", sa.String(1000), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("document_type", _enum("documenttype"), nullable=False),
        sa.Column("signature_status", _enum("documentsignaturestatus"), nullable=False),
        sa.Column("confidentiality", _enum("documentconfidentiality"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("content", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploader_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_documents_room_id", "documents", ["room_id"])
    op.create_index("ix_documents_signature_status", "documents", ["signature_status"])

    op.create_table(
        "signature_requests",
        *_base_columns(),
        sa.Column("document_id", _uuid(), nullable=False),
        sa.Column("signer_id", _uuid(), nullable=False),
        sa.Column("status", _enum("signaturerequeststatus"), nullable=False),
        sa.Column("deadline_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reject_reason", sa.Text(), nullable=True),
        sa.Column("signature_data", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["signer_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", "signer_id", name="uq_signature_request_document_signer"),
    )
    op.create_index("ix_signature_requests_signer_status", "signature_requests", ["signer_id", "status"])

    # ── fee policies / settlements ────────────────────────────────────────────

    op.create_table(
        "fee_policies",
        *_base_columns(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("fee_type", _enum("feetype"), nullable=False),
        sa.Column("rate_percent", sa.Numeric(7, 4), nullable=True),
        sa.Column("fixed_fee", sa.String(100), nullable=True),
        sa.Column("applicable_to", _enum("feescope"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fee_policies_is_active_created_at", "fee_policies", ["is_active", "created_at"])

    op.create_table(
        "settlements",
        *_base_columns(),
        sa.Column("room_id", _uuid(), nullable=False),
        sa.Column("license_id", _uuid(), nullable=True),
        sa.Column("document_id", _uuid(), nullable=True),
        sa.Column("offer_id", _uuid(), nullable=True),
        sa.Column("payer_id", _uuid(), nullable=False),
        sa.Column("payee_id", _uuid(), nullable=True),
        sa.Column("payee_account", sa.String(100), nullable=True),
        sa.Column("amount", sa.String(100), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KRW"),
        sa.Column("payment_type", _enum("paymenttype"), nullable=False),
        sa.Column("status", _enum("settlementstatus"), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transaction_ref", sa.String(255), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("fee_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("fee_snapshot_version", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["offer_id"], ["offers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["payer_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["payee_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", name="uq_settlement_document"),
    )
    op.create_index("ix_settlements_room_id", "settlements", ["room_id"])
    op.create_index("ix_settlements_status", "settlements", ["status"])

    # ── audit / notifications (append-only: no updated_at, no soft delete) ────

    op.create_table(
        "audit_logs",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("room_id", _uuid(), nullable=False),
        sa.Column("actor_id", _uuid(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("target_type", sa.String(100), nullable=False),
        sa.Column("target_id", _uuid(), nullable=True),
        sa.Column("detail", postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(["room_id"], ["rooms.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_room_id_created_at", "audit_logs", ["room_id", "created_at"])
    op.create_index("ix_audit_logs_target", "audit_logs", ["target_type", "target_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    op.create_table(
        "notifications",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("type", _enum("notificationtype"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(1000), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id_is_read", "notifications", ["user_id", "is_read"])


def downgrade() -> None:
    for table in (
        "notifications",
        "audit_logs",
        "settlements",
        "fee_policies",
        "signature_requests",
        "documents",
        "room_messages",
        "offers",
        "room_participants",
        "rooms",
        "listings",
        "users",
    ):
        op.drop_table(table)

    conn = op.get_bind()
    for name in reversed(list(_ENUMS)):
        postgresql.ENUM(name=name).drop(conn, checkfirst=True)
