"""Batch writer — bounded insert / upsert / timestamp-sync writes of mapped records.

Each ``write`` call is one transaction.  Any database error rolls the
whole sub-batch back and counts every record in it as failed; there is
no per-record retry.
"""

import enum
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import Table, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadsync.core.database import session_scope
from leadsync.lib.mapping.transforms import TransformError, to_timestamp
from leadsync.lib.sync_engine.errors import JobSetupError, UnknownTargetError
from leadsync.lib.sync_engine.store import WriteOutcome
from leadsync.models.base import Base

# asyncpg has a hard limit of 32767 query parameters per statement
_MAX_PARAMS = 32000

# Columns never overwritten by an upsert
_UPSERT_EXCLUDE_COLUMNS = frozenset({"created_at"})


class WriteMode(enum.StrEnum):
    """How mapped records are written to the target table."""

    INSERT = "insert"
    UPSERT = "upsert"
    SYNC = "sync"


def resolve_target(name: str) -> Table:
    """Return the ORM-registered table called ``name``.

    Raises:
        UnknownTargetError: If no such table is registered.
    """
    table = Base.metadata.tables.get(name)
    if table is None:
        msg = f"Unknown target table: {name!r}"
        raise UnknownTargetError(msg)
    return table


def _as_utc(value: Any) -> Any:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_connectivity_error(exc: BaseException) -> bool:
    """Return True if ``exc`` looks like a lost or refused connection."""
    if isinstance(exc, OperationalError | InterfaceError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


class SqlBatchWriter:
    """Write mapped records to one table.

    Args:
        session_factory: Factory for short-lived sessions.
        table: Destination table.
        mode: insert, upsert, or sync.
        conflict_key: Column identifying a record for upsert/sync.
        timestamp_field: Column compared by sync mode (last writer wins).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        table: Table,
        mode: WriteMode | str = WriteMode.INSERT,
        conflict_key: str = "id",
        timestamp_field: str = "updated_at",
    ) -> None:
        self.session_factory = session_factory
        self.table = table
        self.mode = WriteMode(mode)
        self.conflict_key = conflict_key
        self.timestamp_field = timestamp_field
        self.columns = frozenset(table.c.keys())

        if self.mode is not WriteMode.INSERT and conflict_key not in self.columns:
            msg = f"Conflict key {conflict_key!r} is not a column of {table.name!r}"
            raise JobSetupError(msg)
        if self.mode is WriteMode.SYNC and timestamp_field not in self.columns:
            msg = f"Sync mode needs timestamp column {timestamp_field!r} on {table.name!r}"
            raise JobSetupError(msg)

        self._string_columns = frozenset(name for name, column in table.c.items() if _python_type(column) is str)

    def _adapt(self, record: dict[str, Any]) -> dict[str, Any]:
        """Drop unknown keys and stringify scalars bound for text columns."""
        adapted: dict[str, Any] = {}
        for key, value in record.items():
            if key not in self.columns:
                continue
            if key in self._string_columns and isinstance(value, int | float) and not isinstance(value, bool):
                value = str(value)
            adapted[key] = value
        return adapted

    def _insert_construct(self, session: AsyncSession) -> Any:
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        msg = f"Upsert is not supported for dialect {dialect!r}"
        raise JobSetupError(msg)

    async def write(self, records: Sequence[dict[str, Any]], sub_batch_id: str) -> WriteOutcome:
        """Write one sub-batch in a single transaction.

        Args:
            records: Sparse mapped records.
            sub_batch_id: Identifier recorded with any error.

        Returns:
            Counts of succeeded / failed / skipped records.
        """
        rows = [self._adapt(record) for record in records]
        try:
            async with session_scope(self.session_factory) as session:
                if self.mode is WriteMode.INSERT:
                    outcome = await self._insert(session, rows)
                else:
                    outcome = await self._upsert(session, rows)
        except SQLAlchemyError as exc:
            detail = str(getattr(exc, "orig", None) or exc).splitlines()[0]
            message = f"{sub_batch_id}: write of {len(rows)} record(s) to {self.table.name} failed: {detail}"
            logger.warning(message)
            return WriteOutcome(failed=len(rows), error=message, connectivity_error=is_connectivity_error(exc))

        logger.debug(
            f"{sub_batch_id}: {self.mode} into {self.table.name} -> "
            f"{outcome.succeeded} written, {outcome.skipped} skipped, {outcome.failed} failed"
        )
        return outcome

    async def _insert(self, session: AsyncSession, rows: list[dict[str, Any]]) -> WriteOutcome:
        # Sparse records: fill absent columns with NULL so one executemany fits all
        keys = sorted({key for row in rows for key in row})
        params = [{key: row.get(key) for key in keys} for row in rows]
        for chunk in _param_chunks(params, len(keys)):
            await session.execute(insert(self.table), chunk)
        return WriteOutcome(succeeded=len(rows))

    async def _upsert(self, session: AsyncSession, rows: list[dict[str, Any]]) -> WriteOutcome:
        keyed: dict[Any, dict[str, Any]] = {}
        missing_key = 0
        for row in rows:
            key = row.get(self.conflict_key)
            if key is None:
                missing_key += 1
                continue
            keyed[key] = row
        # Earlier duplicates of a key within one sub-batch are superseded
        skipped = len(rows) - missing_key - len(keyed)

        bad_timestamps: list[Any] = []
        if self.mode is WriteMode.SYNC and keyed:
            bad_timestamps = self._normalize_timestamps(keyed)
            newer = await self._destination_not_older(session, keyed)
            skipped += len(newer)
            for key in newer:
                del keyed[key]

        await self._upsert_rows(session, list(keyed.values()))

        problems = []
        if missing_key:
            problems.append(f"{missing_key} record(s) without conflict key {self.conflict_key!r}")
        if bad_timestamps:
            shown = ", ".join(str(key) for key in bad_timestamps[:5])
            problems.append(f"{len(bad_timestamps)} record(s) with unparseable {self.timestamp_field!r} ({shown})")
        return WriteOutcome(
            succeeded=len(keyed),
            failed=missing_key + len(bad_timestamps),
            skipped=skipped,
            error="; ".join(problems) or None,
        )

    def _normalize_timestamps(self, keyed: dict[Any, dict[str, Any]]) -> list[Any]:
        """Coerce incoming timestamps to aware UTC datetimes in place.

        Records whose timestamp cannot be parsed are removed from ``keyed``;
        their keys are returned.
        """
        bad: list[Any] = []
        for key, row in list(keyed.items()):
            value = row.get(self.timestamp_field)
            if value is None:
                continue
            try:
                row[self.timestamp_field] = to_timestamp(value)
            except TransformError:
                del keyed[key]
                bad.append(key)
        return bad

    async def _destination_not_older(self, session: AsyncSession, keyed: dict[Any, dict[str, Any]]) -> set[Any]:
        """Keys whose destination timestamp is >= the incoming one."""
        key_col = self.table.c[self.conflict_key]
        ts_col = self.table.c[self.timestamp_field]
        existing: dict[Any, Any] = {}
        keys = list(keyed)
        for start in range(0, len(keys), _MAX_PARAMS):
            result = await session.execute(select(key_col, ts_col).where(key_col.in_(keys[start : start + _MAX_PARAMS])))
            existing.update({row[0]: row[1] for row in result.all()})

        not_older: set[Any] = set()
        for key, row in keyed.items():
            current = _as_utc(existing.get(key))
            incoming = _as_utc(row.get(self.timestamp_field))
            if current is not None and incoming is not None and current >= incoming:
                not_older.add(key)
        return not_older

    async def _upsert_rows(self, session: AsyncSession, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        construct = self._insert_construct(session)
        # Group by key set so a sparse record never nulls out columns it did not carry
        groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
        for row in rows:
            groups.setdefault(tuple(sorted(row)), []).append(row)

        for keys, group in groups.items():
            update_columns = [k for k in keys if k != self.conflict_key and k not in _UPSERT_EXCLUDE_COLUMNS]
            for chunk in _param_chunks(group, len(keys)):
                stmt = construct(self.table).values(chunk)
                if update_columns:
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[self.conflict_key],
                        set_={col: stmt.excluded[col] for col in update_columns},
                    )
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=[self.conflict_key])
                await session.execute(stmt)


def _python_type(column: Any) -> type | None:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def _param_chunks(rows: list[dict[str, Any]], width: int) -> list[list[dict[str, Any]]]:
    """Split rows so each statement stays under the bind-parameter limit."""
    size = max(1, _MAX_PARAMS // max(width, 1))
    return [rows[i : i + size] for i in range(0, len(rows), size)]
