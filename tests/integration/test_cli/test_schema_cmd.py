"""Integration tests for the `leadsync schema diff` CLI command."""

import asyncio
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from typer.testing import CliRunner

from leadsync.cli.app import app
from leadsync.models.base import Base

runner = CliRunner()


def _run_sql(url: str, *statements: str, create_models: bool = False) -> None:
    async def _run() -> None:
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            if create_models:
                await conn.run_sync(Base.metadata.create_all)
            for statement in statements:
                await conn.execute(text(statement))
        await engine.dispose()

    asyncio.run(_run())


@pytest.fixture
def databases(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> str:
    """Create the target schema and a drifted source; return the source URL."""
    target_url = f"sqlite+aiosqlite:///{tmp_path / 'target.db'}"
    source_url = f"sqlite+aiosqlite:///{tmp_path / 'source.db'}"
    monkeypatch.setenv("DATABASE_URL", target_url)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.delenv("LOG_DIR", raising=False)

    _run_sql(target_url, create_models=True)
    _run_sql(source_url, "CREATE TABLE leads (id VARCHAR(64) PRIMARY KEY, fonte TEXT NOT NULL, foto BLOB)")
    return source_url


class TestSchemaDiff:
    """Tests for `leadsync schema diff`."""

    def test_dry_run_prints_planned_ddl(self, databases) -> None:
        result = runner.invoke(app, ["schema", "diff", "--source-url", databases])

        assert result.exit_code == 0, result.output
        assert 'ALTER TABLE "leads" ADD COLUMN IF NOT EXISTS "fonte" TEXT;' in result.output
        assert "unsupported: foto (blob)" in result.output
        assert "Dry run" in result.output

    def test_missing_source_table(self, databases) -> None:
        result = runner.invoke(app, ["schema", "diff", "--source-url", databases, "--source-table", "contacts"])

        assert result.exit_code == 1
        assert "contacts" in result.output
