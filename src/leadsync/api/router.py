"""Root API router with /api/v1 prefix and middleware registration."""

from fastapi import APIRouter, FastAPI

from leadsync.api.middleware import RequestLoggingMiddleware, setup_cors
from leadsync.core.config import Settings


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included.

    Args:
        settings: Application settings.

    Returns:
        Configured API router.
    """
    from leadsync.api.v1.mappings import mappings_router
    from leadsync.api.v1.sync_jobs import sync_jobs_router

    root_router = APIRouter(prefix=settings.api_v1_prefix)
    root_router.include_router(sync_jobs_router)
    root_router.include_router(mappings_router)

    return root_router


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware on the FastAPI app.

    Args:
        app: The FastAPI application.
        settings: Application settings.
    """
    setup_cors(app, settings)
    app.add_middleware(RequestLoggingMiddleware)
