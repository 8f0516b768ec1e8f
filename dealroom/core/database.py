import enum
import structlog
from decimal import Decimal
from typing import Any

from sqlalchemy import Enum, Numeric
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from dealroom.core.config import settings

logger = structlog.get_logger()


def _engine_options(url: str) -> dict[str, Any]:
    """Pool and server-side timeout options; SQLite (tests, local dev) takes none."""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,             # Drop stale connections before use
        "pool_recycle": 1800,              # Recycle connections every 30 min
        "pool_timeout": 30,
        "connect_args": {
            "server_settings": {
                "statement_timeout": "30000",                    # 30s max per SQL statement
                "idle_in_transaction_session_timeout": "60000",  # Kill idle-in-tx sessions after 60s
                "lock_timeout": "10000",                         # 10s max waiting for a row lock
            },
            "command_timeout": 30,
        },
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.APP_DEBUG,
    **_engine_options(settings.DATABASE_URL),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    type_annotation_map = {
        Decimal: Numeric(19, 4),
        # Persist enum values ("signing"), not member names ("SIGNING")
        enum.Enum: Enum(enum.Enum, values_callable=lambda e: [m.value for m in e]),
    }


async def get_db() -> AsyncSession:  # type: ignore[misc]
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
