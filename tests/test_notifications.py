"""Tests for fire-and-forget notifications, SSE push and the inbox API."""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.models.core import Notification
from dealroom.models.enums import NotificationType
from dealroom.modules.notifications import service
from dealroom.modules.notifications.sse import SSEManager, sse_manager
from tests.conftest import BROKER_ID, BUYER_ID, SELLER_ID, auth_headers

pytestmark = pytest.mark.anyio


async def _count(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(Notification))).scalar()


class TestNotify:
    async def test_notify_many_dedupes_and_skips_actor(self, db: AsyncSession, users):
        sent = await service.notify_many(
            db,
            [BUYER_ID, SELLER_ID, BUYER_ID, BROKER_ID],
            NotificationType.SYSTEM,
            "Room updated.",
            exclude=SELLER_ID,
        )

        assert [n.user_id for n in sent] == [BUYER_ID, BROKER_ID]
        assert await _count(db) == 2

    async def test_insert_failure_is_swallowed(self, db: AsyncSession, users):
        # message is NOT NULL; the flush fails inside the savepoint
        result = await service.notify(db, BUYER_ID, NotificationType.OFFER, None)

        assert result is None
        assert await _count(db) == 0

    async def test_failure_does_not_block_other_recipients(
        self, db: AsyncSession, users, monkeypatch: pytest.MonkeyPatch
    ):
        original = service.create_notification

        async def _flaky_create(db, user_id, type, message, link=None):
            if user_id == BUYER_ID:
                raise ConnectionError("inbox down")
            return await original(db, user_id, type, message, link)

        monkeypatch.setattr(service, "create_notification", _flaky_create)

        sent = await service.notify_many(db, [BUYER_ID, SELLER_ID], NotificationType.DOCUMENT, "Signed.")

        assert [n.user_id for n in sent] == [SELLER_ID]


class TestSSEManager:
    async def test_push_reaches_every_connection(self):
        manager = SSEManager()
        first = await manager.connect(BUYER_ID)
        second = await manager.connect(BUYER_ID)

        manager.push(BUYER_ID, {"type": "notification"})

        assert first.get_nowait() == {"type": "notification"}
        assert second.get_nowait() == {"type": "notification"}

        manager.disconnect(BUYER_ID, first)
        assert manager.connection_count(BUYER_ID) == 1
        manager.disconnect(BUYER_ID, second)
        assert manager.connection_count(BUYER_ID) == 0


class TestPostCommitPush:
    async def test_push_waits_for_commit(self, db: AsyncSession, users):
        queue = await sse_manager.connect(SELLER_ID)
        try:
            notification = await service.create_notification(
                db, SELLER_ID, NotificationType.SETTLEMENT, "Settlement pending.", link="/rooms/x/settlement"
            )
            assert queue.empty()

            await db.commit()
            event = queue.get_nowait()
        finally:
            sse_manager.disconnect(SELLER_ID, queue)

        assert event["type"] == "notification"
        assert event["data"]["id"] == str(notification.id)
        assert event["data"]["type"] == "settlement"

    async def test_savepoint_release_does_not_push(self, db: AsyncSession, users):
        queue = await sse_manager.connect(SELLER_ID)
        try:
            await service.notify(db, SELLER_ID, NotificationType.OFFER, "Offer v1.")
            assert queue.empty()

            await db.commit()
            assert queue.qsize() == 1
        finally:
            sse_manager.disconnect(SELLER_ID, queue)

    async def test_rolled_back_savepoint_drops_push(self, db: AsyncSession, users):
        queue = await sse_manager.connect(SELLER_ID)
        try:
            with pytest.raises(RuntimeError):
                async with db.begin_nested():
                    await service.notify(db, SELLER_ID, NotificationType.DOCUMENT, "Signed.")
                    raise RuntimeError("cascade failed")
            await service.notify(db, SELLER_ID, NotificationType.SYSTEM, "Kept.")

            await db.commit()
            delivered = [queue.get_nowait()["data"]["message"] for _ in range(queue.qsize())]
        finally:
            sse_manager.disconnect(SELLER_ID, queue)

        assert delivered == ["Kept."]

    async def test_rollback_drops_push(self, db: AsyncSession, users):
        queue = await sse_manager.connect(BUYER_ID)
        try:
            await service.notify(db, BUYER_ID, NotificationType.OFFER, "Never stored.")
            await db.rollback()
            await db.commit()
        finally:
            sse_manager.disconnect(BUYER_ID, queue)

        assert queue.empty()
        assert await _count(db) == 0


class TestNotificationAPI:
    async def test_list_and_mark_read(self, client: AsyncClient, db: AsyncSession, users):
        first = await service.create_notification(db, BUYER_ID, NotificationType.OFFER, "Offer v1.")
        await service.create_notification(db, BUYER_ID, NotificationType.OFFER, "Offer v2.")
        await service.create_notification(db, SELLER_ID, NotificationType.OFFER, "Not yours.")
        await db.commit()

        listed = await client.get("/v1/notifications", headers=auth_headers(BUYER_ID))
        assert listed.status_code == 200
        assert listed.json()["total"] == 2
        assert listed.json()["unread_count"] == 2

        marked = await client.put(f"/v1/notifications/{first.id}/read", headers=auth_headers(BUYER_ID))
        assert marked.json() == {"success": True}

        count = await client.get("/v1/notifications/unread-count", headers=auth_headers(BUYER_ID))
        assert count.json()["count"] == 1

        others = await client.put(f"/v1/notifications/{first.id}/read", headers=auth_headers(SELLER_ID))
        assert others.status_code == 404

    async def test_mark_all_read(self, client: AsyncClient, db: AsyncSession, users):
        await service.create_notification(db, BUYER_ID, NotificationType.SYSTEM, "One.")
        await service.create_notification(db, BUYER_ID, NotificationType.SYSTEM, "Two.")
        await db.commit()

        resp = await client.put("/v1/notifications/read-all", headers=auth_headers(BUYER_ID))
        assert resp.json() == {"marked_read": 2}

        count = await client.get("/v1/notifications/unread-count", headers=auth_headers(BUYER_ID))
        assert count.json()["count"] == 0
