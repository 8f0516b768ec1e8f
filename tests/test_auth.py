"""Tests for access tokens, the RBAC matrix and the current-user dependency."""

import uuid

import pytest
from httpx import AsyncClient
from jose import JWTError, jwt

from dealroom.auth.rbac import Action, Resource, check_permission, get_permissions_for_role
from dealroom.auth.security import ALGORITHM, create_access_token, decode_access_token
from dealroom.models.enums import UserRole
from tests.conftest import BUYER_ID, auth_headers

pytestmark = pytest.mark.anyio


class TestTokens:
    def test_round_trip_subject(self):
        token = create_access_token(BUYER_ID)
        assert decode_access_token(token)["sub"] == str(BUYER_ID)

    def test_expired_token_is_rejected(self):
        token = create_access_token(BUYER_ID, expires_minutes=-1)
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_foreign_signature_is_rejected(self):
        token = jwt.encode({"sub": str(BUYER_ID)}, "some-other-secret", algorithm=ALGORITHM)
        with pytest.raises(JWTError):
            decode_access_token(token)


class TestPermissionMatrix:
    @pytest.mark.parametrize(
        "role,action,resource,allowed",
        [
            (UserRole.BUYER, Action.SIGN, Resource.DOCUMENT, True),
            (UserRole.BUYER, Action.CREATE, Resource.SETTLEMENT, False),
            (UserRole.OWNER, Action.CREATE, Resource.SETTLEMENT, True),
            (UserRole.BROKER, Action.EDIT, Resource.ROOM, True),
            (UserRole.VALUATOR, Action.CREATE, Resource.ROOM, False),
            (UserRole.OWNER, Action.MANAGE, Resource.SETTLEMENT, False),
            (UserRole.ADMIN, Action.MANAGE, Resource.SETTLEMENT, True),
            (UserRole.ADMIN, Action.CREATE, Resource.FEE_POLICY, True),
        ],
    )
    def test_check_permission(self, role, action, resource, allowed):
        assert check_permission(role, action, resource) is allowed

    def test_grouped_permissions(self):
        grouped = get_permissions_for_role(UserRole.VALUATOR)
        assert "view" in grouped[Resource.ROOM]
        assert Resource.FEE_POLICY in grouped
        assert "create" not in grouped[Resource.FEE_POLICY]


class TestCurrentUser:
    async def test_unknown_subject_is_401(self, client: AsyncClient, users):
        resp = await client.get("/v1/rooms", headers=auth_headers(uuid.uuid4()))
        assert resp.status_code == 401

    async def test_inactive_user_is_401(self, client: AsyncClient, db, users):
        users["buyer"].is_active = False
        await db.commit()

        resp = await client.get("/v1/rooms", headers=auth_headers(BUYER_ID))
        assert resp.status_code == 401

    async def test_garbage_token_is_401(self, client: AsyncClient, users):
        resp = await client.get("/v1/rooms", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "http_401"
