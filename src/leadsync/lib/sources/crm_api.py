"""Paginated CRM source (Bitrix-style REST webhooks).

List methods accept ``filter``/``order``/``select``/``start`` and answer
with ``result`` (one page), ``total`` and ``next`` (offset of the next page,
absent on the last one).
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
from loguru import logger

from leadsync.lib.mapping.record import Record
from leadsync.lib.sources.base import SourceChunk
from leadsync.lib.sync_engine.errors import SourceUnavailableError

DEFAULT_METHOD = "crm.lead.list"
DEFAULT_PAGE_SIZE = 50

# Descriptor key -> CRM filter key
_FILTER_KEYS = {
    "updated_since": ">=DATE_MODIFY",
    "date_from": ">=DATE_CREATE",
    "date_to": "<=DATE_CREATE",
    "ids": "@ID",
}


def build_crm_filter(filters: dict[str, Any] | None) -> dict[str, Any]:
    """Translate a job filter descriptor into the CRM ``filter`` parameter.

    Unknown keys pass through untouched so operators can use native
    CRM filter expressions.
    """
    crm_filter: dict[str, Any] = {}
    for key, value in (filters or {}).items():
        if value is None or value == [] or value == "":
            continue
        crm_filter[_FILTER_KEYS.get(key, key)] = value
    return crm_filter


class CrmApiSource:
    """Read CRM records page by page.

    Args:
        base_url: Webhook base URL (``https://<portal>/rest/<user>/<token>``).
        method: REST list method.
        filters: Job filter descriptor (see ``build_crm_filter``).
        select: Fields to request; defaults to all plus user fields.
        page_size: Page size the CRM uses, for cursor arithmetic.
        timeout: HTTP timeout in seconds.
        client: Optional pre-built client (not closed by this source).
    """

    kind = "crm_api"

    def __init__(
        self,
        base_url: str,
        method: str = DEFAULT_METHOD,
        *,
        filters: dict[str, Any] | None = None,
        select: list[str] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.method = method
        self.filter = build_crm_filter(filters)
        self.select = select or ["*", "UF_*"]
        self.page_size = page_size
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _fetch_page(self, start: int) -> dict[str, Any]:
        payload = {
            "filter": self.filter,
            "order": {"ID": "ASC"},
            "select": self.select,
            "start": start,
        }
        try:
            response = await self._client.post(self.method, json=payload)
            response.raise_for_status()
            data: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as exc:
            msg = f"HTTP {exc.response.status_code} from CRM method {self.method}"
            logger.error(msg)
            raise SourceUnavailableError(msg, status_code=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            msg = f"CRM request failed for {self.method}: {exc}"
            logger.error(msg)
            raise SourceUnavailableError(msg) from exc
        except json.JSONDecodeError as exc:
            msg = f"CRM returned non-JSON response for {self.method}"
            logger.error(msg)
            raise SourceUnavailableError(msg) from exc

        if "error" in data:
            msg = f"CRM error {data['error']}: {data.get('error_description', '')}".strip()
            logger.error(msg)
            raise SourceUnavailableError(msg)
        return data

    async def count_records(self) -> int | None:
        """Fetch the first page and report the CRM's ``total``."""
        data = await self._fetch_page(0)
        total = data.get("total")
        return int(total) if total is not None else None

    async def chunks(self, cursor: dict[str, Any] | None = None) -> AsyncIterator[SourceChunk]:
        """Yield one chunk per CRM page, starting at ``cursor["start"]``.

        Raises:
            SourceUnavailableError: If a page cannot be fetched.
        """
        start = int((cursor or {}).get("start", 0))
        index = 0
        while True:
            data = await self._fetch_page(start)
            items = data.get("result") or []
            if not items:
                break
            next_start = data.get("next")
            following = int(next_start) if next_start is not None else start + len(items)
            logger.debug(f"CRM page start={start} returned {len(items)} records")
            yield SourceChunk(
                records=[Record(item) for item in items],
                cursor={"start": following},
                index=index,
            )
            index += 1
            if next_start is None:
                break
            start = following

    async def close(self) -> None:
        """Close the underlying HTTP client if this source created it."""
        if self._owns_client:
            await self._client.aclose()

    async def discard(self) -> None:
        """Remote sources leave nothing behind."""
