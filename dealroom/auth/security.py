"""HS256 access tokens signed with SECRET_KEY."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt

from dealroom.core.config import settings

ALGORITHM = "HS256"


def create_access_token(user_id: uuid.UUID, expires_minutes: int | None = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    claims = {"sub": str(user_id), "exp": expire, "iat": datetime.now(timezone.utc)}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry. Raises ``jose.JWTError`` on any failure."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
