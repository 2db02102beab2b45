"""Schema drift service — reflect source and target tables and add missing columns."""

import re

from loguru import logger
from sqlalchemy import inspect, text
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncEngine

from leadsync.lib.schema_drift import ColumnInfo, SchemaDiff, compare_columns
from leadsync.lib.sync_engine.errors import SourceUnavailableError, UnknownTargetError

_TYPE_ARGS = re.compile(r"\(.*?\)")


async def reflect_columns(engine: AsyncEngine, table: str, *, schema: str | None = None) -> list[ColumnInfo]:
    """List a table's columns with normalized type names.

    Raises:
        NoSuchTableError: If the table does not exist.
    """

    def _inspect(sync_conn) -> list[ColumnInfo]:  # noqa: ANN001
        columns = inspect(sync_conn).get_columns(table, schema=schema)
        return [
            ColumnInfo(
                name=column["name"],
                data_type=_TYPE_ARGS.sub("", column["type"].compile(dialect=sync_conn.dialect)).strip().lower(),
                nullable=column.get("nullable", True),
            )
            for column in columns
        ]

    async with engine.connect() as conn:
        return await conn.run_sync(_inspect)


async def reconcile_schema(
    target_engine: AsyncEngine,
    source_engine: AsyncEngine,
    *,
    table: str,
    source_table: str | None = None,
    schema: str | None = None,
    dry_run: bool = True,
) -> SchemaDiff:
    """Compare ``source_table`` with ``table`` and optionally apply the additive DDL.

    Args:
        target_engine: Engine for the database that receives columns.
        source_engine: Engine for the database whose schema is authoritative.
        table: Target table name.
        source_table: Source table name (defaults to ``table``).
        schema: Target schema qualifier.
        dry_run: Only report the planned statements.

    Returns:
        The computed SchemaDiff.

    Raises:
        SourceUnavailableError: If the source table cannot be reflected.
        UnknownTargetError: If the target table does not exist.
    """
    source_name = source_table or table
    try:
        source_columns = await reflect_columns(source_engine, source_name)
    except NoSuchTableError as exc:
        msg = f"Source table {source_name!r} not found"
        raise SourceUnavailableError(msg) from exc
    try:
        target_columns = await reflect_columns(target_engine, table, schema=schema)
    except NoSuchTableError as exc:
        msg = f"Target table {table!r} not found"
        raise UnknownTargetError(msg) from exc

    diff = compare_columns(table, source_columns, target_columns, schema=schema)
    statements = diff.all_statements()
    if dry_run or not statements:
        return diff

    async with target_engine.begin() as conn:
        for statement in statements:
            logger.info(f"Executing: {statement}")
            await conn.execute(text(statement))
    logger.info(f"Added {len(diff.missing)} column(s) to {table}")
    return diff
