"""Fixtures wiring the real application to a throwaway SQLite database."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from leadsync.core.config import Settings
from leadsync.core.database import dispose_engine, get_session_factory, init_engine
from leadsync.main import create_app


@pytest.fixture
def app_env(monkeypatch: pytest.MonkeyPatch, settings: Settings) -> Settings:
    """Point ``get_settings()`` at the test database and upload directory."""
    monkeypatch.setenv("DATABASE_URL", settings.database_url)
    monkeypatch.setenv("UPLOAD_DIR", settings.upload_dir)
    monkeypatch.setenv("HEARTBEAT_INTERVAL", "0.01")
    monkeypatch.setenv("STATUS_CHECK_EVERY", "1")
    monkeypatch.delenv("API_KEY", raising=False)
    monkeypatch.delenv("LOG_DIR", raising=False)
    return settings


@pytest.fixture
async def live_db(app_env: Settings, async_engine: AsyncEngine) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Initialize the application's global engine on the test database."""
    init_engine(app_env.database_url)
    yield get_session_factory()
    await dispose_engine()


@pytest.fixture
async def client(live_db: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient]:
    """HTTP client bound to the full application (lifespan not run)."""
    app = create_app()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
