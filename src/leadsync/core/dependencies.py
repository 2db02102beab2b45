"""FastAPI dependency injection for database sessions and API-key access control."""

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from leadsync.core.config import Settings, get_settings
from leadsync.core.database import get_session_factory

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


async def require_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: Annotated[str | None, Depends(api_key_header)],
) -> None:
    """Reject the request unless it carries the configured API key.

    Does nothing when no ``api_key`` is configured.

    Raises:
        HTTPException: 401 if the key is missing or wrong.
    """
    if settings.api_key is None:
        return
    if api_key is None or not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
