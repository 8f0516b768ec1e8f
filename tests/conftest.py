"""Shared test fixtures for the Deal Room API test suite."""

import uuid
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dealroom.auth.security import create_access_token
from dealroom.core.database import Base, get_db
from dealroom.main import app
from dealroom.models.core import User
from dealroom.models.deal_rooms import Room, RoomParticipant
from dealroom.models.enums import ListingStatus, ParticipantRole, RoomType, UserRole
from dealroom.models.listings import Listing


def _sqlite_engine():
    """In-memory SQLite shared by every connection, with working SAVEPOINTs."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession]:
    """Fresh schema per test; routers commit for real against it."""
    engine = _sqlite_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


# ── Sample data fixtures ──────────────────────────────────────────────────

BUYER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
SELLER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
BROKER_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")
ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000004")
OUTSIDER_ID = uuid.UUID("00000000-0000-0000-0000-000000000005")
LISTING_ID = uuid.UUID("00000000-0000-0000-0000-000000000010")
ROOM_ID = uuid.UUID("00000000-0000-0000-0000-000000000020")


@pytest.fixture
async def users(db: AsyncSession) -> dict[str, User]:
    """Buyer, seller (right owner), broker, admin and a user outside every room."""
    seed = {
        "buyer": User(id=BUYER_ID, email="buyer@example.com", full_name="Bora Buyer", role=UserRole.BUYER),
        "seller": User(id=SELLER_ID, email="seller@example.com", full_name="Sora Seller", role=UserRole.OWNER),
        "broker": User(id=BROKER_ID, email="broker@example.com", full_name="Baek Broker", role=UserRole.BROKER),
        "admin": User(id=ADMIN_ID, email="admin@example.com", full_name="Ahn Admin", role=UserRole.ADMIN),
        "outsider": User(id=OUTSIDER_ID, email="outsider@example.com", full_name="Oh Outsider", role=UserRole.BUYER),
    }
    db.add_all(seed.values())
    await db.flush()
    return seed


@pytest.fixture
async def listing(db: AsyncSession, users: dict[str, User]) -> Listing:
    item = Listing(
        id=LISTING_ID,
        owner_id=SELLER_ID,
        title="Solid-state battery patent",
        status=ListingStatus.PUBLISHED,
    )
    db.add(item)
    await db.flush()
    return item


@pytest.fixture
async def room(db: AsyncSession, users: dict[str, User], listing: Listing) -> Room:
    """A ``setup`` room with one buyer and one seller, linked to the listing."""
    item = Room(
        id=ROOM_ID,
        title="Battery patent deal",
        type=RoomType.DEAL,
        listing_id=listing.id,
        created_by=SELLER_ID,
    )
    db.add(item)
    await db.flush()
    db.add_all([
        RoomParticipant(room_id=item.id, user_id=BUYER_ID, role=ParticipantRole.BUYER),
        RoomParticipant(room_id=item.id, user_id=SELLER_ID, role=ParticipantRole.SELLER),
    ])
    await db.commit()
    return item


# ── HTTP client ───────────────────────────────────────────────────────────


def auth_headers(user_id: uuid.UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient]:
    """ASGI client sharing the test session; authenticate per request with ``auth_headers``."""
    app.dependency_overrides[get_db] = lambda: db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
