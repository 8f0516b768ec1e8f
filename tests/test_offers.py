"""Tests for the offer ledger: versioning, superseding, room and listing side effects."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.testing import capture_logs

from dealroom.core.exceptions import ConflictError, InvalidStateError, PermissionDeniedError, ValidationError
from dealroom.models.core import AuditLog, Notification
from dealroom.models.deal_rooms import Offer, Room, RoomParticipant
from dealroom.models.enums import ListingStatus, NotificationType, OfferStatus, RoomStatus
from dealroom.models.listings import Listing
from dealroom.modules.audit.service import AuditAction
from dealroom.modules.offers import service
from tests.conftest import BUYER_ID, OUTSIDER_ID, ROOM_ID, SELLER_ID, auth_headers

pytestmark = pytest.mark.anyio


async def _actions(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(AuditLog.action).where(AuditLog.room_id == ROOM_ID).order_by(AuditLog.created_at)
    )
    return list(result.scalars().all())


class TestSubmitOffer:
    async def test_versions_are_gapless(self, db: AsyncSession, room: Room):
        first = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000 KRW")
        second = await service.submit_offer(db, ROOM_ID, SELLER_ID, "1,200,000 KRW", terms="exclusive")
        third = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,100,000 KRW")

        assert [first.version, second.version, third.version] == [1, 2, 3]
        assert all(o.status == OfferStatus.SENT for o in (first, second, third))

    async def test_first_offer_starts_negotiation(self, db: AsyncSession, room: Room):
        await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")

        assert room.status == RoomStatus.NEGOTIATING
        assert await _actions(db) == [AuditAction.OFFER_SUBMITTED, AuditAction.ROOM_STATUS_CHANGED]

    async def test_second_offer_keeps_status(self, db: AsyncSession, room: Room):
        await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")
        await service.submit_offer(db, ROOM_ID, SELLER_ID, "1,300,000")

        actions = await _actions(db)
        assert actions.count(AuditAction.ROOM_STATUS_CHANGED) == 1

    async def test_counterparty_is_notified(self, db: AsyncSession, room: Room):
        await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")

        result = await db.execute(select(Notification.user_id).where(Notification.type == NotificationType.OFFER))
        assert list(result.scalars().all()) == [SELLER_ID]

    async def test_blank_price_is_rejected(self, db: AsyncSession, room: Room):
        with pytest.raises(ValidationError):
            await service.submit_offer(db, ROOM_ID, BUYER_ID, "   ")

    async def test_non_participant_is_refused(self, db: AsyncSession, room: Room):
        with pytest.raises(PermissionDeniedError):
            await service.submit_offer(db, ROOM_ID, OUTSIDER_ID, "1,000,000")

    @pytest.mark.parametrize("status", [RoomStatus.SETTLING, RoomStatus.COMPLETED, RoomStatus.TERMINATED])
    async def test_closed_rooms_take_no_offers(self, db: AsyncSession, room: Room, status: RoomStatus):
        room.status = status
        await db.commit()

        with pytest.raises(InvalidStateError):
            await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")

    async def test_signing_room_still_takes_offers(self, db: AsyncSession, room: Room):
        room.status = RoomStatus.SIGNING
        await db.commit()

        offer = await service.submit_offer(db, ROOM_ID, SELLER_ID, "900,000")
        assert offer.version == 1
        assert room.status == RoomStatus.SIGNING


class TestVersionConflicts:
    async def test_taken_version_is_recomputed_once(
        self, db: AsyncSession, room: Room, monkeypatch: pytest.MonkeyPatch
    ):
        await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")
        original = service._next_version
        reads = []

        async def _stale_then_fresh(db, room_id):
            reads.append(room_id)
            if len(reads) == 1:
                return 1  # read before the competing v1 was visible
            return await original(db, room_id)

        monkeypatch.setattr(service, "_next_version", _stale_then_fresh)

        with capture_logs() as logs:
            offer = await service.submit_offer(db, ROOM_ID, SELLER_ID, "1,100,000")

        assert offer.version == 2
        assert len(reads) == 2
        conflicts = [e for e in logs if e["event"] == "offer_version_conflict"]
        assert [(e["version"], e["attempt"]) for e in conflicts] == [(1, 1)]
        assert [o.version for o in await service.list_offers(db, ROOM_ID)] == [1, 2]

    async def test_second_collision_surfaces_conflict(
        self, db: AsyncSession, room: Room, monkeypatch: pytest.MonkeyPatch
    ):
        await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")

        async def _always_stale(db, room_id):
            return 1

        monkeypatch.setattr(service, "_next_version", _always_stale)

        with pytest.raises(ConflictError) as exc_info:
            await service.submit_offer(db, ROOM_ID, SELLER_ID, "1,100,000")

        assert exc_info.value.detail == {"room_id": str(ROOM_ID), "version": 1}
        assert [o.version for o in await service.list_offers(db, ROOM_ID)] == [1]
        assert (await _actions(db)).count(AuditAction.OFFER_SUBMITTED) == 1


class TestResolveOffer:
    async def test_accept_moves_room_and_listing(self, db: AsyncSession, room: Room):
        offer = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")

        accepted = await service.resolve_offer(db, offer.id, SELLER_ID, OfferStatus.ACCEPTED)

        assert accepted.status == OfferStatus.ACCEPTED
        assert room.status == RoomStatus.SIGNING
        listing = await db.get(Listing, room.listing_id)
        assert listing.status == ListingStatus.UNDER_NEGOTIATION

        entry = (
            await db.execute(select(AuditLog).where(AuditLog.action == AuditAction.OFFER_RESOLVED))
        ).scalar_one()
        assert entry.detail["to_status"] == "accepted"
        assert entry.detail["listing_status"] == "under_negotiation"

    async def test_reject_leaves_room_alone(self, db: AsyncSession, room: Room):
        offer = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")

        rejected = await service.resolve_offer(db, offer.id, SELLER_ID, OfferStatus.REJECTED)

        assert rejected.status == OfferStatus.REJECTED
        assert room.status == RoomStatus.NEGOTIATING
        listing = await db.get(Listing, room.listing_id)
        assert listing.status == ListingStatus.PUBLISHED

    async def test_new_acceptance_supersedes_previous(self, db: AsyncSession, room: Room):
        first = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")
        await service.resolve_offer(db, first.id, SELLER_ID, OfferStatus.ACCEPTED)
        second = await service.submit_offer(db, ROOM_ID, SELLER_ID, "1,050,000")
        await service.resolve_offer(db, second.id, BUYER_ID, OfferStatus.ACCEPTED)

        result = await db.execute(
            select(Offer.version, Offer.status).where(Offer.room_id == ROOM_ID).order_by(Offer.version)
        )
        assert result.all() == [(1, OfferStatus.SUPERSEDED), (2, OfferStatus.ACCEPTED)]

        latest = await service.latest_accepted_offer(db, ROOM_ID)
        assert latest.id == second.id
        assert AuditAction.OFFER_SUPERSEDED in await _actions(db)

    async def test_offer_resolves_only_once(self, db: AsyncSession, room: Room):
        offer = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")
        await service.resolve_offer(db, offer.id, SELLER_ID, OfferStatus.REJECTED)

        with pytest.raises(InvalidStateError, match="already rejected"):
            await service.resolve_offer(db, offer.id, SELLER_ID, OfferStatus.ACCEPTED)

    async def test_only_accept_or_reject(self, db: AsyncSession, room: Room):
        offer = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")
        with pytest.raises(ValidationError):
            await service.resolve_offer(db, offer.id, SELLER_ID, OfferStatus.SUPERSEDED)

    async def test_accept_needs_both_sides(self, db: AsyncSession, room: Room):
        offer = await service.submit_offer(db, ROOM_ID, BUYER_ID, "1,000,000")
        seller_row = (
            await db.execute(
                select(RoomParticipant).where(RoomParticipant.room_id == ROOM_ID, RoomParticipant.user_id == SELLER_ID)
            )
        ).scalar_one()
        seller_row.is_deleted = True
        await db.flush()

        with pytest.raises(InvalidStateError, match="Buyer and a Seller"):
            await service.resolve_offer(db, offer.id, BUYER_ID, OfferStatus.ACCEPTED)


# ═══════════════════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════════════════


class TestOfferAPI:
    async def test_submit_list_and_accept(self, client: AsyncClient, room):
        created = await client.post(
            f"/v1/rooms/{ROOM_ID}/offers",
            json={"price": "1,000,000 KRW", "terms": "worldwide", "message": "opening offer"},
            headers=auth_headers(BUYER_ID),
        )
        assert created.status_code == 201
        offer = created.json()
        assert offer["version"] == 1
        assert offer["status"] == "sent"

        listed = await client.get(f"/v1/rooms/{ROOM_ID}/offers", headers=auth_headers(SELLER_ID))
        assert [o["id"] for o in listed.json()] == [offer["id"]]

        accepted = await client.patch(
            f"/v1/offers/{offer['id']}", json={"status": "accepted"}, headers=auth_headers(SELLER_ID)
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

        room_resp = await client.get(f"/v1/rooms/{ROOM_ID}", headers=auth_headers(BUYER_ID))
        assert room_resp.json()["status"] == "signing"

    async def test_outsider_gets_403(self, client: AsyncClient, room):
        resp = await client.post(
            f"/v1/rooms/{ROOM_ID}/offers", json={"price": "1"}, headers=auth_headers(OUTSIDER_ID)
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"
