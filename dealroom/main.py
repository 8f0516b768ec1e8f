from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from dealroom.core.config import settings
from dealroom.core.errors import domain_exception_handler, global_exception_handler, http_exception_handler
from dealroom.core.exceptions import DealRoomError

import dealroom.models  # noqa: F401  register all models at startup
import dealroom.modules.settlements.handlers  # noqa: F401  subscribe the settlement cascade

from dealroom.modules.audit.router import router as audit_router
from dealroom.modules.messages.router import router as messages_router
from dealroom.modules.notifications.router import router as notifications_router
from dealroom.modules.offers.router import router as offers_router
from dealroom.modules.rooms.router import router as rooms_router
from dealroom.modules.settlements.router import router as settlements_router
from dealroom.modules.signatures.router import router as signatures_router
from dealroom.core.sentry import init_sentry

# ── Sentry: must be initialised BEFORE FastAPI app is created ────────────────
init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None]:
    logger.info("Starting Deal Room API", env=settings.APP_ENV)
    yield
    logger.info("Shutting down Deal Room API")
    from dealroom.core.database import engine
    await engine.dispose()


_is_prod = settings.APP_ENV == "production"

app = FastAPI(
    title="Deal Room API",
    description="Negotiation-to-settlement orchestration for rights trading deal rooms.",
    version="0.1.0",
    # Disable interactive docs in production; use /openapi.json directly if needed
    docs_url=None if _is_prod else "/docs",
    redoc_url=None if _is_prod else "/redoc",
    openapi_url=None if _is_prod else "/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
)

app.add_exception_handler(DealRoomError, domain_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, global_exception_handler)


# ── X-API-Version response header ────────────────────────────────────────────


@app.middleware("http")
async def add_version_header(request: Request, call_next) -> Response:
    response = await call_next(request)
    response.headers["X-API-Version"] = "v1"
    return response


# ── Health check (root-level, not under /v1) ─────────────────────────────────


@app.get("/health")
async def health_check() -> dict:
    """Checks database connectivity."""
    checks: dict[str, dict] = {}

    try:
        from sqlalchemy import text
        from dealroom.core.database import async_session_factory
        async with async_session_factory() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except Exception as exc:
        checks["database"] = {"status": "unhealthy", "error": str(exc)}

    overall = (
        "healthy"
        if all(c["status"] == "healthy" for c in checks.values())
        else "degraded"
    )
    return {"status": overall, "service": "dealroom-api", "checks": checks}


# ── /v1 versioned router ──────────────────────────────────────────────────────

api_v1 = APIRouter(prefix="/v1")

api_v1.include_router(rooms_router)
api_v1.include_router(offers_router)
api_v1.include_router(signatures_router)
api_v1.include_router(settlements_router)
api_v1.include_router(audit_router)
api_v1.include_router(messages_router)
api_v1.include_router(notifications_router)

app.include_router(api_v1)
