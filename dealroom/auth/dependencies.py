"""FastAPI auth dependencies: get_current_user, require_role, require_permission."""

import uuid

import sentry_sdk
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealroom.auth.rbac import check_permission
from dealroom.auth.security import decode_access_token
from dealroom.core.database import get_db
from dealroom.models.core import User
from dealroom.models.enums import UserRole
from dealroom.schemas.auth import CurrentUser

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=True)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """
    Verify the HS256 bearer token and resolve the platform user.

    The ``sub`` claim carries the internal user id. Always checks
    is_active and is_deleted.
    """
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as e:
        logger.warning("jwt_verification_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    subject = payload.get("sub")
    try:
        user_id = uuid.UUID(str(subject))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing subject claim",
        ) from e

    stmt = select(User).where(
        User.id == user_id,
        User.is_active.is_(True),
        User.is_deleted.is_(False),
    )
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning("user_not_found_for_token", user_id=str(user_id))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    # Enrich Sentry scope with identity (PII-free: no email)
    sentry_sdk.set_user({"id": str(user.id)})
    sentry_sdk.set_tag("user_role", user.role.value)

    return CurrentUser(user_id=user.id, role=user.role, email=user.email)


def require_role(allowed_roles: list[UserRole]):
    """
    Dependency factory: checks if current user has one of the allowed roles.

    Usage:
        @router.post("/fee-policies", dependencies=[Depends(require_role([UserRole.ADMIN]))])
    """

    async def _check_role(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role.value}' not authorized. Required: {[r.value for r in allowed_roles]}",
            )
        return current_user

    return _check_role


def require_permission(action: str, resource_type: str):
    """
    Dependency factory: checks a specific (action, resource_type) permission.

    Usage:
        @router.post("/rooms", dependencies=[Depends(require_permission("create", "room"))])
    """

    async def _check_perm(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if not check_permission(current_user.role, action, resource_type):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {action} on {resource_type}",
            )
        return current_user

    return _check_perm
