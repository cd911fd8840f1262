"""Root API router with /api/v1 prefix and middleware registration."""

from fastapi import APIRouter, FastAPI

from finance_transfer.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware, setup_cors
from finance_transfer.core.config import Settings


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included.

    Args:
        settings: Application settings.

    Returns:
        Configured API router.
    """
    from finance_transfer.api.v1.auth import router as auth_router
    from finance_transfer.api.v1.exports import exports_router
    from finance_transfer.api.v1.imports import router as imports_router
    from finance_transfer.api.v1.operations import operations_router

    root_router = APIRouter(prefix=settings.api_v1_prefix)
    root_router.include_router(auth_router)
    root_router.include_router(exports_router)
    root_router.include_router(imports_router)
    root_router.include_router(operations_router)

    return root_router


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware on the FastAPI app."""
    setup_cors(app, settings)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
