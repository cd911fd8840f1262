"""Integration tests for health and authentication endpoints."""

from httpx import AsyncClient

from finance_transfer.models.user import User


class TestHealth:
    async def test_health_needs_no_auth(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestLogin:
    async def test_login_returns_token(self, client: AsyncClient, sample_user: User) -> None:
        response = await client.post(
            "/api/v1/auth/login",
            data={"username": "alice", "password": "testpassword123"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"

        me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    async def test_bad_password(self, client: AsyncClient, sample_user: User) -> None:
        response = await client.post("/api/v1/auth/login", data={"username": "alice", "password": "nope"})
        assert response.status_code == 401


class TestAuthRequired:
    async def test_missing_token(self, client: AsyncClient) -> None:
        assert (await client.get("/api/v1/operations")).status_code == 401

    async def test_garbage_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/exports", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_token_for_unknown_user(self, client: AsyncClient, auth_headers: dict[str, str]) -> None:
        # No user rows exist without the sample_user fixture
        assert (await client.get("/api/v1/auth/me", headers=auth_headers)).status_code == 401
