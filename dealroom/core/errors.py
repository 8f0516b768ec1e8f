"""Standardized error responses across all API endpoints."""
from typing import Any

import sentry_sdk
import structlog
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dealroom.core.exceptions import (
    ConflictError,
    DealRoomError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all API error handlers."""
    error: str
    message: str
    detail: Any = None
    request_id: str = "unknown"


logger = structlog.get_logger()

_DOMAIN_STATUS: dict[type[DealRoomError], int] = {
    NotFoundError: 404,
    InvalidStateError: 400,
    ValidationError: 422,
    ConflictError: 409,
    PermissionDeniedError: 403,
}


def _status_for(exc: DealRoomError) -> int:
    for exc_type, status_code in _DOMAIN_STATUS.items():
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred. Our team has been notified.",
            request_id=request_id,
        ).model_dump(mode="json"),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    request_id = request.headers.get("x-request-id", "unknown")

    if isinstance(exc.detail, dict):
        error = exc.detail.get("error", f"http_{exc.status_code}")
        message = exc.detail.get("message", str(exc.detail))
        detail: Any = exc.detail.get("detail")
    else:
        error = f"http_{exc.status_code}"
        message = str(exc.detail)
        detail = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            detail=detail,
            request_id=request_id,
        ).model_dump(mode="json"),
        headers=dict(exc.headers or {}),
    )


async def domain_exception_handler(request: Request, exc: DealRoomError) -> JSONResponse:
    """Map domain errors onto 404 / 400 / 422 / 409 / 403."""
    request_id = request.headers.get("x-request-id", "unknown")
    status_code = _status_for(exc)

    logger.info(
        "domain_error",
        error=exc.error_code,
        message=exc.message,
        status_code=status_code,
        path=request.url.path,
        request_id=request_id,
    )

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.error_code,
            message=exc.message,
            detail=exc.detail if exc.detail is not None else exc.message,
            request_id=request_id,
        ).model_dump(mode="json"),
    )
