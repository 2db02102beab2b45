"""Tests for the FastAPI application factory module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from leadsync.core.config import Settings
from leadsync.lib.sync_engine.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    MappingSetNotFoundError,
    ResumeInconsistencyError,
)
from leadsync.main import create_app


def _settings() -> Settings:
    return Settings(database_url="sqlite+aiosqlite:///:memory:", _env_file=None)  # type: ignore[call-arg]


class TestCreateApp:
    """Tests for create_app."""

    @pytest.fixture
    def app(self):
        with patch("leadsync.main.get_settings", return_value=_settings()):
            return create_app()

    def test_app_is_created(self, app) -> None:
        assert app.title == "LeadSync"

    def test_app_has_openapi_schema(self, app) -> None:
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/openapi.json")
        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/v1/sync-jobs/{job_id}/resume" in paths
        assert "/api/v1/mapping-sets/suggest" in paths

    @pytest.mark.parametrize(
        ("exc", "status_code"),
        [
            (ValueError("bad batch size"), 400),
            (MappingSetNotFoundError("Mapping set x not found"), 400),
            (JobNotFoundError("Sync job x not found"), 404),
            (InvalidTransitionError("completed", "processing"), 409),
            (ResumeInconsistencyError("source file gone"), 409),
        ],
    )
    def test_exception_handlers(self, app, exc: Exception, status_code: int) -> None:
        """Engine errors escaping a route map to HTTP status codes."""

        @app.get("/boom")
        async def boom() -> None:
            raise exc

        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/boom")
        assert response.status_code == status_code
        assert response.json() == {"detail": str(exc)}


class TestAppLifespan:
    """Tests for lifespan management."""

    @pytest.mark.asyncio
    async def test_lifespan_init_recover_and_dispose(self) -> None:
        """Lifespan initializes the engine, recovers stale jobs, and shuts down cleanly."""
        from leadsync.main import lifespan

        mock_app = AsyncMock()

        with (
            patch("leadsync.main.get_settings", return_value=_settings()),
            patch("leadsync.main.setup_logging") as mock_setup_logging,
            patch("leadsync.main.init_engine") as mock_init_engine,
            patch("leadsync.main.get_session_factory", return_value=MagicMock()),
            patch(
                "leadsync.services.sync_job_service.recover_stale_jobs", new_callable=AsyncMock, return_value=[]
            ) as mock_recover,
            patch("leadsync.main.supervisor") as mock_supervisor,
            patch("leadsync.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
        ):
            mock_supervisor.shutdown = AsyncMock()

            async with lifespan(mock_app):
                mock_setup_logging.assert_called_once()
                mock_init_engine.assert_called_once()
                assert mock_recover.await_args.kwargs["older_than"] == 900

            mock_supervisor.shutdown.assert_awaited_once()
            mock_dispose.assert_awaited_once()
