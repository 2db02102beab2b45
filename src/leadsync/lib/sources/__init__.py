"""Source readers public API.

Provides the chunked CSV file reader, the paginated CRM reader, the
table reader used by exports, and construction of a reader from a job's
source locator.
"""

from collections.abc import Callable
from typing import Any

from sqlalchemy import Table
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadsync.lib.sources.base import SourceChunk, SourceReader
from leadsync.lib.sources.crm_api import CrmApiSource, build_crm_filter
from leadsync.lib.sources.csv_file import CsvFileSource, detect_delimiter, detect_encoding
from leadsync.lib.sources.table import TableSource, parse_day
from leadsync.lib.sync_engine.errors import JobSetupError

__all__ = [
    "CrmApiSource",
    "CsvFileSource",
    "SourceChunk",
    "SourceReader",
    "TableSource",
    "build_crm_filter",
    "build_source",
    "detect_delimiter",
    "detect_encoding",
]


def build_source(
    locator: dict[str, Any],
    batch_size: int,
    *,
    max_upload_bytes: int | None = None,
    crm_base_url: str | None = None,
    crm_method: str = "crm.lead.list",
    crm_timeout: float = 30.0,
    crm_page_size: int = 50,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    resolve_table: Callable[[str], Table] | None = None,
) -> SourceReader:
    """Build a source reader from a job's ``source_locator``.

    Args:
        locator: ``{"kind": "csv_file", "path": ...}``,
            ``{"kind": "crm_api", "base_url": ..., "method": ..., "filters": {...}}``, or
            ``{"kind": "table", "table": ..., "date_from": ..., "date_to": ...}``.
        batch_size: Rows per chunk for file sources.
        max_upload_bytes: Size ceiling for file sources.
        crm_base_url: Fallback CRM base URL when the locator has none.
        crm_method: Fallback CRM list method when the locator has none.
        crm_timeout: CRM request timeout in seconds.
        crm_page_size: CRM page size.
        session_factory: Session factory for table sources.
        resolve_table: Looks up a table source's table by name.

    Returns:
        A ready-to-use source reader.

    Raises:
        JobSetupError: If the locator is malformed.
    """
    kind = locator.get("kind")
    if kind == CsvFileSource.kind:
        path = locator.get("path")
        if not path:
            msg = "csv_file source locator requires 'path'"
            raise JobSetupError(msg)
        kwargs: dict[str, Any] = {}
        if max_upload_bytes is not None:
            kwargs["max_bytes"] = max_upload_bytes
        return CsvFileSource(path, batch_size, **kwargs)

    if kind == CrmApiSource.kind:
        base_url = locator.get("base_url") or crm_base_url
        if not base_url:
            msg = "crm_api source locator requires 'base_url' (or CRM_BASE_URL to be configured)"
            raise JobSetupError(msg)
        return CrmApiSource(
            base_url,
            locator.get("method") or crm_method,
            filters=locator.get("filters"),
            select=locator.get("select"),
            page_size=crm_page_size,
            timeout=crm_timeout,
        )

    if kind == TableSource.kind:
        name = locator.get("table")
        if not name:
            msg = "table source locator requires 'table'"
            raise JobSetupError(msg)
        if session_factory is None or resolve_table is None:
            msg = "table sources need a database session factory"
            raise JobSetupError(msg)
        return TableSource(
            session_factory,
            resolve_table(name),
            batch_size,
            date_from=parse_day(locator.get("date_from"), "date_from"),
            date_to=parse_day(locator.get("date_to"), "date_to"),
            timestamp_column=locator.get("timestamp_column") or "updated_at",
            key_column=locator.get("key_column") or "id",
        )

    msg = f"Unknown source kind: {kind!r}"
    raise JobSetupError(msg)
