"""Tests for CORS and request logging middleware."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from loguru import logger

from leadsync.api.middleware import RequestLoggingMiddleware, setup_cors
from leadsync.core.config import Settings


def _create_test_app() -> FastAPI:
    """Create a minimal FastAPI app for middleware testing."""
    app = FastAPI()

    @app.get("/test")
    async def test_route() -> dict:
        return {"ok": True}

    return app


class TestRequestLoggingMiddleware:
    """Tests for RequestLoggingMiddleware."""

    def test_logs_method_path_and_status(self) -> None:
        app = _create_test_app()
        app.add_middleware(RequestLoggingMiddleware)
        messages: list[str] = []
        sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
        try:
            response = TestClient(app).get("/test")
        finally:
            logger.remove(sink_id)

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert any(m.startswith("GET /test -> 200 (") for m in messages)


class TestCors:
    """Tests for setup_cors."""

    @pytest.fixture
    def client(self) -> TestClient:
        app = _create_test_app()
        settings = Settings(
            database_url="sqlite+aiosqlite:///:memory:",
            cors_origins="https://dash.example.com, https://ops.example.com",
            _env_file=None,  # type: ignore[call-arg]
        )
        setup_cors(app, settings)
        return TestClient(app)

    def test_allowed_origin(self, client: TestClient) -> None:
        response = client.get("/test", headers={"Origin": "https://ops.example.com"})
        assert response.headers["access-control-allow-origin"] == "https://ops.example.com"

    def test_other_origin_not_echoed(self, client: TestClient) -> None:
        response = client.get("/test", headers={"Origin": "https://evil.example.com"})
        assert "access-control-allow-origin" not in response.headers
