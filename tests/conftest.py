"""Shared test fixtures for the async database, sessions, settings, and mapping sets."""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from leadsync.core.config import Settings
from leadsync.models.base import Base
from leadsync.models.mapping_set import MappingSet
from leadsync.services.mapping_service import seed_default_mapping


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Test application settings backed by a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'leadsync.db'}",
        upload_dir=str(tmp_path / "uploads"),
        heartbeat_interval=0.01,
        status_check_every=1,
        _env_file=None,  # type: ignore[call-arg]
    )


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed async SQLite engine with all tables."""
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the test and any background job it starts."""
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def default_mapping(async_session: AsyncSession) -> MappingSet:
    """The built-in lead mapping set."""
    return await seed_default_mapping(async_session)


LEAD_HEADER = ["ID", "Nome", "Scouter", "SCOUTER_NAME"]


def _lead_rows(count: int, start: int) -> list[list[str]]:
    # Every third lead has no Scouter so the mapping falls back to SCOUTER_NAME
    rows = []
    for n in range(start, start + count):
        scouter = "" if n % 3 == 0 else f"Scouter {n % 7}"
        rows.append([str(n), f"Lead {n}", scouter, f"Fallback {n % 5}"])
    return rows


@pytest.fixture
def lead_csv(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a lead CSV with ``count`` rows and returning its path."""

    def _make(count: int, *, name: str = "leads.csv", delimiter: str = ",", start: int = 1) -> Path:
        path = tmp_path / name
        lines = [delimiter.join(LEAD_HEADER), *(delimiter.join(row) for row in _lead_rows(count, start))]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _make
