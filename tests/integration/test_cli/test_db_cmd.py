"""Tests for the `leadsync db` commands.

Alembic itself is replaced by a recorder; the migrations target PostgreSQL.
"""

import asyncio
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from typer.testing import CliRunner

from leadsync.cli.app import app
from leadsync.models.base import Base
from leadsync.models.mapping_set import MappingSet

runner = CliRunner()


@pytest.fixture
def db_url(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'db_cmd.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.delenv("LOG_DIR", raising=False)

    async def _create() -> None:
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()

    asyncio.run(_create())
    return url


@pytest.fixture
def alembic_calls(monkeypatch: pytest.MonkeyPatch) -> list[tuple]:
    from alembic import command

    calls: list[tuple] = []
    for name in ("upgrade", "downgrade"):
        monkeypatch.setattr(command, name, lambda config, revision, _name=name: calls.append((_name, config, revision)))
    return calls


def _mapping_sets(url: str) -> int:
    async def _count() -> int:
        engine = create_async_engine(url)
        async with engine.connect() as conn:
            total = (await conn.execute(select(func.count()).select_from(MappingSet.__table__))).scalar_one()
        await engine.dispose()
        return total

    return asyncio.run(_count())


class TestDbCommands:
    """Tests for db upgrade/downgrade."""

    def test_upgrade_uses_project_config(self, db_url, alembic_calls) -> None:
        result = runner.invoke(app, ["db", "upgrade"])

        assert result.exit_code == 0, result.output
        [(name, config, revision)] = alembic_calls
        assert (name, revision) == ("upgrade", "head")
        assert config.get_main_option("script_location") == "alembic"
        assert _mapping_sets(db_url) == 0

    def test_upgrade_with_seed_creates_default_mapping_once(self, db_url, alembic_calls) -> None:
        first = runner.invoke(app, ["db", "upgrade", "--seed"])
        second = runner.invoke(app, ["db", "upgrade", "--seed"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output
        assert "Mapping set default-leads v1" in second.output
        assert _mapping_sets(db_url) == 1

    def test_downgrade_defaults_to_previous_revision(self, db_url, alembic_calls) -> None:
        result = runner.invoke(app, ["db", "downgrade"])

        assert result.exit_code == 0, result.output
        assert [(name, revision) for name, _, revision in alembic_calls] == [("downgrade", "-1")]
