"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from leadsync.core.background import supervisor
from leadsync.core.config import get_settings
from leadsync.core.database import dispose_engine, get_session_factory, init_engine
from leadsync.core.logging import setup_logging
from leadsync.lib.sync_engine.errors import (
    InvalidTransitionError,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobSetupError,
    ResumeInconsistencyError,
    SourceUnavailableError,
)
from leadsync.schemas.common import ErrorResponse


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle.

    On startup: configure logging, init the engine, and pause jobs orphaned
    by a previous process.  On shutdown: pause running jobs at their next
    chunk boundary, then dispose the engine.
    """
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    init_engine(settings.database_url, echo=False, schema=settings.database_schema)

    from leadsync.services.sync_job_service import recover_stale_jobs

    async with get_session_factory()() as session:
        recovered = await recover_stale_jobs(session, older_than=settings.stale_job_timeout)
    if recovered:
        logger.warning(f"Paused {len(recovered)} orphaned job(s) on startup")

    yield

    await supervisor.shutdown()
    await dispose_engine()


def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(detail=str(exc)).model_dump())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="LeadSync",
        description="Resumable batch import and CRM sync jobs for lead records",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Register exception handlers
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error_response(400, exc)

    @app.exception_handler(JobSetupError)
    async def job_setup_error_handler(request: Request, exc: JobSetupError) -> JSONResponse:
        return _error_response(400, exc)

    @app.exception_handler(SourceUnavailableError)
    async def source_error_handler(request: Request, exc: SourceUnavailableError) -> JSONResponse:
        return _error_response(400, exc)

    @app.exception_handler(JobNotFoundError)
    async def not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(JobAlreadyRunningError)
    async def running_handler(request: Request, exc: JobAlreadyRunningError) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(ResumeInconsistencyError)
    async def resume_handler(request: Request, exc: ResumeInconsistencyError) -> JSONResponse:
        return _error_response(409, exc)

    # Register middleware and routers
    from leadsync.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
