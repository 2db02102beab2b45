"""Tests for the paginated CRM source."""

import json

import httpx
import pytest

from leadsync.lib.sources import CrmApiSource, build_crm_filter, build_source
from leadsync.lib.sync_engine.errors import JobSetupError, SourceUnavailableError

BASE_URL = "https://crm.example.com/rest/1/token/"


def _paged_handler(total: int, page_size: int = 50, calls: list | None = None):  # noqa: ANN202
    """Serve ``total`` leads in CRM-style pages keyed by ``start``."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        start = body["start"]
        items = [{"ID": str(n), "TITLE": f"Lead {n}"} for n in range(start + 1, min(start + page_size, total) + 1)]
        payload: dict = {"result": items, "total": total}
        if start + page_size < total:
            payload["next"] = start + page_size
        return httpx.Response(200, json=payload)

    return handler


def _client(handler) -> httpx.AsyncClient:  # noqa: ANN001
    return httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


class TestBuildCrmFilter:
    """Tests for build_crm_filter."""

    def test_known_keys_are_translated(self) -> None:
        result = build_crm_filter(
            {"updated_since": "2024-01-01", "date_from": "2023-01-01", "date_to": "2023-12-31", "ids": ["1", "2"]}
        )
        assert result == {
            ">=DATE_MODIFY": "2024-01-01",
            ">=DATE_CREATE": "2023-01-01",
            "<=DATE_CREATE": "2023-12-31",
            "@ID": ["1", "2"],
        }

    def test_empty_values_dropped_and_native_keys_kept(self) -> None:
        assert build_crm_filter({"ids": [], "updated_since": None, "STATUS_ID": "NEW"}) == {"STATUS_ID": "NEW"}


class TestCrmApiSource:
    """Tests for CrmApiSource paging."""

    async def test_pages_until_no_next(self) -> None:
        calls: list = []
        source = CrmApiSource(BASE_URL, client=_client(_paged_handler(120, calls=calls)), filters={"ids": ["1"]})
        chunks = [chunk async for chunk in source.chunks()]
        assert [len(c) for c in chunks] == [50, 50, 20]
        assert [c.cursor for c in chunks] == [{"start": 50}, {"start": 100}, {"start": 120}]
        assert chunks[0].records[0]["ID"] == "1"
        assert calls[0]["filter"] == {"@ID": ["1"]}
        assert calls[0]["order"] == {"ID": "ASC"}

    async def test_resumes_from_cursor(self) -> None:
        source = CrmApiSource(BASE_URL, client=_client(_paged_handler(120)))
        chunks = [chunk async for chunk in source.chunks({"start": 100})]
        assert len(chunks) == 1
        assert chunks[0].records[0]["ID"] == "101"

    async def test_count_records_reads_total(self) -> None:
        source = CrmApiSource(BASE_URL, client=_client(_paged_handler(73)))
        assert await source.count_records() == 73

    async def test_http_error_is_source_unavailable(self) -> None:
        source = CrmApiSource(BASE_URL, client=_client(lambda request: httpx.Response(503)))
        with pytest.raises(SourceUnavailableError) as exc_info:
            await source.count_records()
        assert exc_info.value.status_code == 503

    async def test_crm_error_payload(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": "QUERY_LIMIT_EXCEEDED", "error_description": "Too many"})

        source = CrmApiSource(BASE_URL, client=_client(handler))
        with pytest.raises(SourceUnavailableError, match="QUERY_LIMIT_EXCEEDED"):
            [chunk async for chunk in source.chunks()]

    async def test_non_json_response(self) -> None:
        source = CrmApiSource(BASE_URL, client=_client(lambda request: httpx.Response(200, text="<html>")))
        with pytest.raises(SourceUnavailableError, match="non-JSON"):
            await source.count_records()

    async def test_injected_client_is_not_closed(self) -> None:
        client = _client(_paged_handler(1))
        await CrmApiSource(BASE_URL, client=client).close()
        assert not client.is_closed
        await client.aclose()


class TestBuildSource:
    """Tests for build_source."""

    def test_csv_locator(self) -> None:
        source = build_source({"kind": "csv_file", "path": "/tmp/x.csv"}, 25)
        assert source.kind == "csv_file"

    def test_crm_locator_uses_configured_url(self) -> None:
        source = build_source({"kind": "crm_api", "filters": {}}, 50, crm_base_url=BASE_URL)
        assert source.kind == "crm_api"

    def test_crm_locator_without_url(self) -> None:
        with pytest.raises(JobSetupError, match="base_url"):
            build_source({"kind": "crm_api"}, 50)

    def test_unknown_kind(self) -> None:
        with pytest.raises(JobSetupError, match="Unknown source kind"):
            build_source({"kind": "ftp"}, 10)
