"""Tests for manual settlements, payment status changes, room summaries and fee policies."""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from dealroom.models.deal_rooms import Room
from dealroom.models.enums import FeeScope, FeeType, RoomStatus, RoomType, SettlementStatus
from dealroom.models.settlements import FeePolicy, Settlement
from dealroom.modules.settlements import fees, service
from dealroom.modules.settlements.schemas import FeePolicyCreate, SettlementAction, SettlementCreate
from tests.conftest import ADMIN_ID, BROKER_ID, BUYER_ID, OUTSIDER_ID, ROOM_ID, SELLER_ID, auth_headers

pytestmark = pytest.mark.anyio


def _body(**overrides) -> SettlementCreate:
    values = {"payer_id": BUYER_ID, "payee_id": SELLER_ID, "amount": "3,000,000 KRW"}
    values.update(overrides)
    return SettlementCreate(**values)


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("3,000,000 KRW", Decimal("3000000")),
            ("₩1,250.50", Decimal("1250.50")),
            ("negotiable", Decimal(0)),
            ("1.2.3", Decimal(0)),
            (None, Decimal(0)),
        ],
    )
    def test_parse(self, raw, expected):
        assert service.parse_amount(raw) == expected


class TestCreateSettlement:
    async def test_manual_settlement_is_pending(self, db: AsyncSession, room: Room):
        settlement = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body(note="first tranche"))

        assert settlement.status == SettlementStatus.PENDING
        assert settlement.document_id is None
        assert settlement.fee_snapshot is None
        assert settlement.note == "first tranche"

    async def test_needs_a_payee(self, db: AsyncSession, room: Room):
        with pytest.raises(ValidationError):
            await service.create_settlement(db, ROOM_ID, SELLER_ID, _body(payee_id=None))

    async def test_unknown_payer(self, db: AsyncSession, room: Room):
        with pytest.raises(NotFoundError):
            await service.create_settlement(db, ROOM_ID, SELLER_ID, _body(payer_id=uuid.uuid4()))

    async def test_terminated_room_refuses(self, db: AsyncSession, room: Room):
        room.status = RoomStatus.TERMINATED
        await db.commit()

        with pytest.raises(InvalidStateError):
            await service.create_settlement(db, ROOM_ID, SELLER_ID, _body())


class TestUpdateStatus:
    async def test_confirm_payment_sets_paid_at(self, db: AsyncSession, room: Room):
        settlement = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body())

        updated = await service.update_settlement_status(
            db, settlement.id, ADMIN_ID, SettlementAction.CONFIRM_PAYMENT, transaction_ref="TX-991"
        )

        assert updated.status == SettlementStatus.COMPLETED
        assert updated.paid_at is not None
        assert updated.transaction_ref == "TX-991"

    async def test_completed_is_immutable(self, db: AsyncSession, room: Room):
        settlement = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body())
        await service.update_settlement_status(db, settlement.id, ADMIN_ID, SettlementAction.CONFIRM_PAYMENT)

        for action in SettlementAction:
            with pytest.raises(InvalidStateError, match="cannot be changed"):
                await service.update_settlement_status(db, settlement.id, ADMIN_ID, action)

    async def test_dispute_defaults_note(self, db: AsyncSession, room: Room):
        settlement = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body())

        disputed = await service.update_settlement_status(db, settlement.id, ADMIN_ID, SettlementAction.DISPUTE)

        assert disputed.status == SettlementStatus.FAILED
        assert disputed.note == "Disputed"

    async def test_failed_can_be_retried_through_processing(self, db: AsyncSession, room: Room):
        settlement = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body())
        await service.update_settlement_status(db, settlement.id, ADMIN_ID, SettlementAction.DISPUTE, note="bounced")

        with pytest.raises(InvalidStateError):
            await service.update_settlement_status(db, settlement.id, ADMIN_ID, SettlementAction.CONFIRM_PAYMENT)

        processing = await service.update_settlement_status(
            db, settlement.id, ADMIN_ID, SettlementAction.MARK_PROCESSING
        )
        assert processing.status == SettlementStatus.PROCESSING
        done = await service.update_settlement_status(db, settlement.id, ADMIN_ID, SettlementAction.CONFIRM_PAYMENT)
        assert done.status == SettlementStatus.COMPLETED


class TestRoomSummary:
    async def test_summary_counts(self, db: AsyncSession, room: Room):
        paid = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body(amount="1,000,000"))
        await service.update_settlement_status(db, paid.id, ADMIN_ID, SettlementAction.CONFIRM_PAYMENT)
        await service.create_settlement(db, ROOM_ID, SELLER_ID, _body(amount="2,500,000 KRW"))
        failed = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body(amount="TBD"))
        await service.update_settlement_status(db, failed.id, ADMIN_ID, SettlementAction.DISPUTE)

        data = await service.room_settlements(db, ROOM_ID)

        assert data["summary"] == {
            "total_amount": Decimal("3500000"),
            "paid_count": 1,
            "pending_count": 1,
            "total_count": 3,
        }

    async def test_missing_room(self, db: AsyncSession, room: Room):
        with pytest.raises(NotFoundError):
            await service.room_settlements(db, uuid.uuid4())


# ── Fee policies ──────────────────────────────────────────────────────────


class TestFeePolicies:
    async def test_active_policy_is_most_recent(self, db: AsyncSession, room: Room):
        await fees.create_fee_policy(db, FeePolicyCreate(name="Launch", rate_percent=Decimal("5")))
        latest = await fees.create_fee_policy(db, FeePolicyCreate(name="Standard", rate_percent=Decimal("12.5")))
        await fees.create_fee_policy(
            db, FeePolicyCreate(name="Retired", rate_percent=Decimal("20"), is_active=False)
        )

        active = await fees.active_fee_policy(db)
        assert active.id == latest.id

    async def test_policy_needs_rate_or_fixed_fee(self, db: AsyncSession, room: Room):
        with pytest.raises(ValidationError):
            await fees.create_fee_policy(db, FeePolicyCreate(name="Empty"))

    def test_snapshot_of_policy(self):
        policy = FeePolicy(
            id=uuid.UUID("00000000-0000-0000-0000-0000000000f1"),
            name="Standard",
            fee_type=FeeType.BROKERAGE,
            rate_percent=Decimal("12.5000"),
            applicable_to=FeeScope.LICENSE,
        )

        snapshot = fees.build_fee_snapshot(policy, RoomType.LICENSE)

        assert snapshot["policy_id"] == "00000000-0000-0000-0000-0000000000f1"
        assert snapshot["rate_percent"] == "12.5"
        assert snapshot["fee_type"] == "brokerage"
        assert snapshot["applicable_to"] == "license"
        assert snapshot["room_type"] == "license"
        assert snapshot["is_default"] is False
        assert snapshot["version"] == fees.FEE_SNAPSHOT_VERSION
        assert fees.fee_note(snapshot) == "Auto-created from contract. Policy: Standard (12.5%)"

    def test_snapshot_of_fixed_fee(self):
        policy = FeePolicy(name="Flat", fee_type=FeeType.PLATFORM, fixed_fee="500,000 KRW", applicable_to=FeeScope.ALL)

        snapshot = fees.build_fee_snapshot(policy)

        assert snapshot["rate_percent"] is None
        assert fees.fee_note(snapshot) == "Auto-created from contract. Policy: Flat (fixed 500,000 KRW)"

    def test_default_snapshot(self):
        snapshot = fees.build_fee_snapshot(None, RoomType.DEAL)

        assert snapshot["policy_id"] is None
        assert snapshot["name"] == "Default"
        assert snapshot["rate_percent"] == "10"
        assert snapshot["is_default"] is True


# ═══════════════════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════════════════


class TestSettlementAPI:
    async def test_create_and_confirm(self, client: AsyncClient, room):
        created = await client.post(
            f"/v1/rooms/{ROOM_ID}/settlement",
            json={"payer_id": str(BUYER_ID), "payee_id": str(SELLER_ID), "amount": "1,000,000 KRW"},
            headers=auth_headers(SELLER_ID),
        )
        assert created.status_code == 201
        settlement_id = created.json()["id"]

        # Only admins override payment status
        forbidden = await client.patch(
            f"/v1/settlements/{settlement_id}",
            json={"action": "confirm_payment"},
            headers=auth_headers(SELLER_ID),
        )
        assert forbidden.status_code == 403

        confirmed = await client.patch(
            f"/v1/settlements/{settlement_id}",
            json={"action": "confirm_payment", "transaction_ref": "TX-1"},
            headers=auth_headers(ADMIN_ID),
        )
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "completed"

        again = await client.patch(
            f"/v1/settlements/{settlement_id}", json={"action": "dispute"}, headers=auth_headers(ADMIN_ID)
        )
        assert again.status_code == 400

    async def test_buyer_cannot_create(self, client: AsyncClient, room):
        resp = await client.post(
            f"/v1/rooms/{ROOM_ID}/settlement",
            json={"payer_id": str(BUYER_ID), "payee_id": str(SELLER_ID), "amount": "1"},
            headers=auth_headers(BUYER_ID),
        )
        assert resp.status_code == 403

    async def test_list_is_scoped_to_parties(self, client: AsyncClient, db: AsyncSession, room):
        await service.create_settlement(db, ROOM_ID, SELLER_ID, _body())
        await db.commit()

        mine = await client.get("/v1/settlements", headers=auth_headers(BUYER_ID))
        assert mine.json()["total"] == 1
        theirs = await client.get("/v1/settlements", headers=auth_headers(OUTSIDER_ID))
        assert theirs.json()["total"] == 0
        everything = await client.get("/v1/settlements", headers=auth_headers(ADMIN_ID))
        assert everything.json()["total"] == 1

    async def test_fee_policy_admin_only(self, client: AsyncClient, room):
        body = {"name": "Standard", "rate_percent": "12.5"}
        denied = await client.post("/v1/fee-policies", json=body, headers=auth_headers(SELLER_ID))
        assert denied.status_code == 403

        created = await client.post("/v1/fee-policies", json=body, headers=auth_headers(ADMIN_ID))
        assert created.status_code == 201

        listed = await client.get("/v1/fee-policies", headers=auth_headers(BUYER_ID))
        assert [p["name"] for p in listed.json()] == ["Standard"]

    async def test_room_settlement_view(self, client: AsyncClient, db: AsyncSession, room: Room):
        db.add(Settlement(room_id=ROOM_ID, payer_id=BUYER_ID, amount="1", status=SettlementStatus.PENDING))
        await db.commit()

        resp = await client.get(f"/v1/rooms/{ROOM_ID}/settlement", headers=auth_headers(SELLER_ID))
        assert resp.status_code == 200
        assert resp.json()["summary"]["pending_count"] == 1

    async def test_settlement_is_hidden_from_outsiders(self, client: AsyncClient, db: AsyncSession, room: Room):
        settlement = await service.create_settlement(db, ROOM_ID, SELLER_ID, _body())
        await db.commit()

        hidden = await client.get(f"/v1/settlements/{settlement.id}", headers=auth_headers(OUTSIDER_ID))
        assert hidden.status_code == 403
        visible = await client.get(f"/v1/settlements/{settlement.id}", headers=auth_headers(BUYER_ID))
        assert visible.status_code == 200

    async def test_organizer_outside_the_room_cannot_create(self, client: AsyncClient, room):
        resp = await client.post(
            f"/v1/rooms/{ROOM_ID}/settlement",
            json={"payer_id": str(BUYER_ID), "payee_id": str(SELLER_ID), "amount": "1"},
            headers=auth_headers(BROKER_ID),
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"
