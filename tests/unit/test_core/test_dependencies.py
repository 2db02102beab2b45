"""Tests for FastAPI dependency injection module."""

import pytest
from fastapi import HTTPException

from leadsync.core.config import Settings
from leadsync.core.dependencies import require_api_key


def _settings(api_key: str | None) -> Settings:
    return Settings(database_url="sqlite+aiosqlite://", api_key=api_key, _env_file=None)  # type: ignore[call-arg]


class TestRequireApiKey:
    """Tests for require_api_key."""

    @pytest.mark.asyncio
    async def test_open_when_no_key_configured(self) -> None:
        assert await require_api_key(settings=_settings(None), api_key=None) is None

    @pytest.mark.asyncio
    async def test_matching_key_passes(self) -> None:
        assert await require_api_key(settings=_settings("s3cret"), api_key="s3cret") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sent", [None, "wrong"])
    async def test_missing_or_wrong_key_is_401(self, sent: str | None) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await require_api_key(settings=_settings("s3cret"), api_key=sent)
        assert exc_info.value.status_code == 401
