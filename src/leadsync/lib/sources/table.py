"""Table source: walk a local table by modification time.

Used by export jobs.  Rows are read in ``(updated_at, key)`` order with a
keyset cursor, so rows that share a timestamp are neither skipped nor read
twice across chunk and resume boundaries.  Rows without a timestamp are
not exported.
"""

from collections.abc import AsyncIterator
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import Table, and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadsync.lib.mapping.record import Record
from leadsync.lib.mapping.transforms import TransformError, to_timestamp
from leadsync.lib.sources.base import SourceChunk
from leadsync.lib.sync_engine.errors import JobSetupError, SourceUnavailableError


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=UTC)


def parse_day(value: Any, name: str) -> date | None:
    """Parse an optional ``YYYY-MM-DD`` bound.

    Raises:
        JobSetupError: If the value is not a date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        msg = f"table source {name} must be YYYY-MM-DD, got {value!r}"
        raise JobSetupError(msg) from exc


class TableSource:
    """Read rows of a registered table, oldest modification first.

    Args:
        session_factory: Factory for short-lived read sessions.
        table: The table to walk.
        batch_size: Rows per chunk.
        date_from: First day included (UTC), or None for no lower bound.
        date_to: Last day included (UTC), or None for no upper bound.
        timestamp_column: Column holding the modification time.
        key_column: Unique column breaking timestamp ties.
    """

    kind = "table"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        table: Table,
        batch_size: int,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        timestamp_column: str = "updated_at",
        key_column: str = "id",
    ) -> None:
        for column in (timestamp_column, key_column):
            if column not in table.c:
                msg = f"Table {table.name!r} has no column {column!r}"
                raise JobSetupError(msg)
        if date_from and date_to and date_from > date_to:
            msg = f"date_from {date_from} is after date_to {date_to}"
            raise JobSetupError(msg)
        self.session_factory = session_factory
        self.table = table
        self.batch_size = batch_size
        self.date_from = date_from
        self.date_to = date_to
        self.ts = table.c[timestamp_column]
        self.key = table.c[key_column]

    def _window(self) -> list[Any]:
        conditions = [self.ts.is_not(None)]
        if self.date_from is not None:
            conditions.append(self.ts >= _day_start(self.date_from))
        if self.date_to is not None:
            conditions.append(self.ts < _day_start(self.date_to + timedelta(days=1)))
        return conditions

    def _after(self, cursor: dict[str, Any]) -> Any:
        try:
            after_ts = to_timestamp(cursor["after_ts"])
            after_key = cursor["after_key"]
        except (KeyError, TypeError, TransformError) as exc:
            msg = f"Malformed table cursor: {cursor}"
            raise SourceUnavailableError(msg) from exc
        return or_(self.ts > after_ts, and_(self.ts == after_ts, self.key > after_key))

    async def count_records(self) -> int | None:
        """Count the rows inside the date window."""
        stmt = select(func.count()).select_from(self.table).where(*self._window())
        try:
            async with self.session_factory() as session:
                return int((await session.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            msg = f"Could not count rows of {self.table.name!r}: {exc}"
            raise SourceUnavailableError(msg) from exc

    async def _fetch(self, cursor: dict[str, Any] | None) -> list[dict[str, Any]]:
        conditions = self._window()
        if cursor:
            conditions.append(self._after(cursor))
        stmt = select(self.table).where(*conditions).order_by(self.ts, self.key).limit(self.batch_size)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [dict(row) for row in result.mappings()]
        except SQLAlchemyError as exc:
            msg = f"Could not read rows of {self.table.name!r}: {exc}"
            logger.error(msg)
            raise SourceUnavailableError(msg) from exc

    async def chunks(self, cursor: dict[str, Any] | None = None) -> AsyncIterator[SourceChunk]:
        """Yield chunks of up to ``batch_size`` rows after ``cursor``.

        Raises:
            SourceUnavailableError: If the table cannot be read or the
                cursor is malformed.
        """
        index = 0
        while True:
            rows = await self._fetch(cursor)
            if not rows:
                break
            last = rows[-1]
            cursor = {
                "after_ts": to_timestamp(last[self.ts.name]).isoformat(),
                "after_key": last[self.key.name],
            }
            logger.debug(f"Table {self.table.name} returned {len(rows)} rows up to {cursor['after_ts']}")
            yield SourceChunk(records=[Record(row) for row in rows], cursor=cursor, index=index)
            index += 1
            if len(rows) < self.batch_size:
                break

    async def close(self) -> None:
        """Sessions are per read; nothing to release."""

    async def discard(self) -> None:
        """Exported rows stay where they are."""
