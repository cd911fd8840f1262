"""Tests for the authentication service module."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from finance_transfer.core.config import Settings
from finance_transfer.core.security import decode_token
from finance_transfer.models.user import User
from finance_transfer.schemas.auth import UserCreateRequest
from finance_transfer.services.auth_service import authenticate_user, create_user, generate_token


def _mock_session_with_result(scalar_result: object) -> AsyncMock:
    """Create mock session returning a specific scalar result."""
    session = AsyncMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar_result
    session.execute.return_value = result
    return session


class TestAuthenticateUser:
    """Tests for authenticate_user."""

    async def test_valid_credentials(self, async_session: AsyncSession, sample_user: User) -> None:
        user = await authenticate_user(async_session, "alice", "testpassword123")
        assert user is not None
        assert user.id == sample_user.id

    async def test_wrong_password(self, async_session: AsyncSession, sample_user: User) -> None:
        assert await authenticate_user(async_session, "alice", "wrong-password") is None

    async def test_unknown_user(self) -> None:
        session = _mock_session_with_result(None)
        assert await authenticate_user(session, "nobody", "password") is None

    async def test_inactive_user(self, async_session: AsyncSession, sample_user: User) -> None:
        sample_user.is_active = False
        await async_session.commit()
        assert await authenticate_user(async_session, "alice", "testpassword123") is None


class TestCreateUser:
    """Tests for create_user."""

    async def test_creates_user(self, async_session: AsyncSession) -> None:
        request = UserCreateRequest(username="carol", email="carol@example.com", password="longenough")
        user = await create_user(async_session, request)
        assert user.id is not None
        assert user.hashed_password != "longenough"
        assert user.is_active is True

    async def test_duplicate_rejected(self, async_session: AsyncSession, sample_user: User) -> None:
        request = UserCreateRequest(username="alice", email="other@example.com", password="longenough")
        with pytest.raises(ValueError, match="already exists"):
            await create_user(async_session, request)


class TestGenerateToken:
    def test_token_subject_and_lifetime(self, settings: Settings) -> None:
        user = MagicMock()
        user.username = "alice"
        token = generate_token(user, settings)
        assert token.token_type == "bearer"
        assert token.expires_in == settings.jwt_access_token_expire_minutes * 60
        payload = decode_token(token.access_token, settings.jwt_secret_key, settings.jwt_algorithm)
        assert payload["sub"] == "alice"
