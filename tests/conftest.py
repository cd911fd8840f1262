"""Shared test fixtures for the async database, transfer services, HTTP client, and auth tokens."""

import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from finance_transfer.core.background import InProcessTaskRunner
from finance_transfer.core.config import Settings, get_settings
from finance_transfer.core.database import enable_sqlite_foreign_keys
from finance_transfer.core.dependencies import get_async_session
from finance_transfer.core.security import create_access_token, hash_password
from finance_transfer.lib.jobs import TransferError
from finance_transfer.main import transfer_error_handler
from finance_transfer.models.base import Base
from finance_transfer.models.user import User
from finance_transfer.services.transfer_service import TransferServices, build_transfer_services, get_transfer_services


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test application settings with an on-disk SQLite database and export dir."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret_key="test-secret-key-not-for-production",
        jwt_algorithm="HS256",
        jwt_access_token_expire_minutes=30,
        export_dir=str(tmp_path / "exports"),
        transfer_batch_size=2,
        max_concurrent_operations=2,
        import_max_file_size_mb=1,
        retention_sweep_enabled=False,
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed async SQLite engine so concurrent sessions see each other's commits."""
    engine = create_async_engine(settings.database_url, echo=False)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Per-test async session."""
    async with session_factory() as session:
        yield session


async def _add_user(session: AsyncSession, username: str) -> User:
    user = User(
        id=uuid.uuid4(),
        username=username,
        email=f"{username}@example.com",
        hashed_password=hash_password("testpassword123"),
        is_active=True,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
async def sample_user(async_session: AsyncSession) -> User:
    """The acting user in most tests."""
    return await _add_user(async_session, "alice")


@pytest.fixture
async def other_user(async_session: AsyncSession) -> User:
    """A second user for ownership isolation checks."""
    return await _add_user(async_session, "bob")


@pytest.fixture
def runner() -> InProcessTaskRunner:
    return InProcessTaskRunner()


@pytest.fixture
async def services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    runner: InProcessTaskRunner,
) -> AsyncGenerator[TransferServices]:
    """Transfer services wired to the test database and a private task runner."""
    yield build_transfer_services(settings, session_factory, runner)
    await runner.shutdown()


@pytest.fixture
def user_token(settings: Settings) -> str:
    """Bearer token for ``sample_user``."""
    return create_access_token(
        subject="alice",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture
def other_token(settings: Settings) -> str:
    """Bearer token for ``other_user``."""
    return create_access_token(
        subject="bob",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture
def app(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    services: TransferServices,
) -> FastAPI:
    """API app without lifespan, bound to the test database and services."""
    from finance_transfer.api.router import create_router

    app = FastAPI()
    app.add_exception_handler(TransferError, transfer_error_handler)  # type: ignore[arg-type]
    app.include_router(create_router(settings))

    async def _session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_transfer_services] = lambda: services
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as http_client:
        yield http_client


@pytest.fixture
def auth_headers(user_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
def other_headers(other_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {other_token}"}


@pytest.fixture
def seed_records(session_factory: async_sessionmaker[AsyncSession]):
    """Insert ORM rows of any record model for an owner.

    Usage: ``await seed_records(Transaction, owner_id, [{...}, {...}])``.
    """

    async def _seed(model: type, owner_id: uuid.UUID, rows: list[dict]) -> list:
        instances = [model(id=uuid.uuid4(), owner_id=owner_id, **row) for row in rows]
        async with session_factory() as session:
            session.add_all(instances)
            await session.commit()
        return instances

    return _seed
