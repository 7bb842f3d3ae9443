"""Tests for bearer-token and API-key authentication dependencies."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.security import HTTPAuthorizationCredentials

from app.api.v1.dependency import User, get_admin_user, get_current_user, verify_api_key
from app.utils.app_errors import AppError, AppErrorCode

SECRET = "test-identity-secret"


def bearer(claims: dict, secret: str = SECRET) -> HTTPAuthorizationCredentials:
    token = jwt.encode(claims, secret, algorithm="HS256")
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def expires_in(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


class TestGetCurrentUser:
    async def test_valid_token(self):
        user = await get_current_user(bearer({"sub": "u.alice", "exp": expires_in(5)}))

        assert user == User(user_id="u.alice", role="user")
        assert user.is_admin is False

    async def test_admin_role(self):
        user = await get_current_user(bearer({"sub": "u.mod", "role": "admin", "exp": expires_in(5)}))

        assert user.is_admin is True

    @pytest.mark.parametrize(
        "credentials",
        [
            None,
            HTTPAuthorizationCredentials(scheme="Bearer", credentials="not-a-jwt"),
        ],
    )
    async def test_missing_or_malformed(self, credentials):
        with pytest.raises(AppError) as exc_info:
            await get_current_user(credentials)

        assert exc_info.value.errcode == AppErrorCode.E_BAD_TOKEN
        assert exc_info.value.status_code == 401

    async def test_expired(self):
        with pytest.raises(AppError):
            await get_current_user(bearer({"sub": "u.alice", "exp": expires_in(-1)}))

    async def test_wrong_secret(self):
        with pytest.raises(AppError):
            await get_current_user(bearer({"sub": "u.alice", "exp": expires_in(5)}, secret="other-secret"))

    async def test_missing_subject(self):
        with pytest.raises(AppError):
            await get_current_user(bearer({"exp": expires_in(5)}))


class TestGetAdminUser:
    async def test_rejects_regular_user(self):
        with pytest.raises(AppError) as exc_info:
            await get_admin_user(User(user_id="u.alice"))

        assert exc_info.value.errcode == AppErrorCode.E_FORBIDDEN

    async def test_accepts_admin(self):
        admin = User(user_id="u.mod", role="admin")

        assert await get_admin_user(admin) is admin


class TestVerifyApiKey:
    async def test_matching_key(self):
        assert await verify_api_key("test-internal-key") is None

    @pytest.mark.parametrize("key", [None, "", "wrong-key"])
    async def test_rejected(self, key):
        with pytest.raises(AppError) as exc_info:
            await verify_api_key(key)

        assert exc_info.value.status_code == 401
