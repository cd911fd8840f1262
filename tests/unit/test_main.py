"""Tests for the FastAPI application factory module."""

import json
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from finance_transfer.core.config import Settings
from finance_transfer.lib.jobs import (
    ForbiddenError,
    IllegalTransitionError,
    InvalidRequestError,
    OperationNotFoundError,
    StructuralDecodeError,
    TooManyConcurrentOperationsError,
)
from finance_transfer.main import create_app, transfer_error_handler


def _settings(**overrides: object) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret_key="test-secret-key-not-for-production",
        **overrides,
    )


class TestCreateApp:
    """Tests for create_app."""

    @pytest.fixture
    def app(self):
        with patch("finance_transfer.main.get_settings") as mock_settings:
            mock_settings.return_value = _settings()
            return create_app()

    def test_app_is_created(self, app) -> None:
        assert app is not None
        assert app.title == "Finance Transfer API"

    def test_app_has_openapi_schema(self, app) -> None:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/openapi.json")
        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/v1/exports" in paths
        assert "/api/v1/imports/validate" in paths
        assert "/api/v1/operations/{kind}/{operation_id}/cancel" in paths


class TestTransferErrorHandler:
    """Transfer errors map to stable status codes and error codes."""

    @pytest.mark.parametrize(
        ("error", "status_code", "code"),
        [
            (InvalidRequestError("bad"), 422, "validation_error"),
            (StructuralDecodeError("broken"), 422, "structural_decode_error"),
            (OperationNotFoundError(uuid.uuid4()), 404, "not_found"),
            (ForbiddenError("nope"), 403, "forbidden"),
            (IllegalTransitionError("completed", "running"), 409, "illegal_transition"),
        ],
    )
    async def test_status_mapping(self, error, status_code: int, code: str) -> None:
        response = await transfer_error_handler(MagicMock(), error)
        assert response.status_code == status_code
        assert json.loads(response.body) == {"detail": error.message, "code": code}

    async def test_too_many_sets_retry_after(self) -> None:
        response = await transfer_error_handler(MagicMock(), TooManyConcurrentOperationsError("export", 3))
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0


class TestAppLifespan:
    """Tests for lifespan management."""

    async def test_lifespan_init_and_dispose(self) -> None:
        """Lifespan initializes the engine, fails interrupted work, and cleans up."""
        from finance_transfer.main import lifespan

        mock_app = AsyncMock()
        services = MagicMock()
        services.registry.fail_interrupted = AsyncMock(return_value=0)

        with (
            patch("finance_transfer.main.get_settings") as mock_get_settings,
            patch("finance_transfer.main.setup_logging") as mock_setup_logging,
            patch("finance_transfer.main.init_engine") as mock_init_engine,
            patch("finance_transfer.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
            patch("finance_transfer.main.task_runner") as mock_runner,
            patch("finance_transfer.services.transfer_service.get_transfer_services", return_value=services),
        ):
            mock_get_settings.return_value = _settings(retention_sweep_enabled=False)
            mock_runner.shutdown = AsyncMock()

            async with lifespan(mock_app):
                mock_setup_logging.assert_called_once()
                mock_init_engine.assert_called_once()
                services.registry.fail_interrupted.assert_awaited_once()

            mock_runner.shutdown.assert_awaited_once()
            mock_dispose.assert_awaited_once()
