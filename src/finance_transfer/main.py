"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from finance_transfer.core.background import task_runner
from finance_transfer.core.config import get_settings
from finance_transfer.core.database import dispose_engine, init_engine
from finance_transfer.core.logging import setup_logging
from finance_transfer.lib.jobs import (
    ArtifactNotFoundError,
    ForbiddenError,
    IllegalTransitionError,
    InvalidRequestError,
    OperationNotFoundError,
    StructuralDecodeError,
    TooManyConcurrentOperationsError,
    TransferError,
)

_STATUS_CODES: dict[type[TransferError], int] = {
    InvalidRequestError: 422,
    StructuralDecodeError: 422,
    OperationNotFoundError: status.HTTP_404_NOT_FOUND,
    ArtifactNotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    TooManyConcurrentOperationsError: status.HTTP_429_TOO_MANY_REQUESTS,
    IllegalTransitionError: status.HTTP_409_CONFLICT,
}

# Seconds a client should wait before resubmitting after back-pressure
RETRY_AFTER_SECONDS = 30


async def transfer_error_handler(request: Request, exc: TransferError) -> JSONResponse:
    """Map transfer errors to JSON error responses with their status code."""
    status_code = _STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    headers = None
    if isinstance(exc, TooManyConcurrentOperationsError):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle.

    On startup: init the engine, fail operations left in flight by a
    previous process, start the retention sweep. On shutdown: stop the
    sweep, cancel running workers, dispose the engine.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    from finance_transfer.services.transfer_service import get_transfer_services, reset_transfer_services

    await get_transfer_services().registry.fail_interrupted()

    sweep_task = None
    if settings.retention_sweep_enabled:
        from finance_transfer.services.artifact_service import retention_sweep_loop

        sweep_task = asyncio.create_task(retention_sweep_loop(settings.retention_sweep_interval))

    yield

    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task

    await task_runner.shutdown()
    reset_transfer_services()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Finance Transfer API",
        description="Export and import of personal financial records as tracked, cancellable jobs",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(TransferError, transfer_error_handler)  # type: ignore[arg-type]

    from finance_transfer.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
