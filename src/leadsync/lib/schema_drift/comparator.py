"""Compare a source column listing with a target table and plan DDL.

Only additive changes are planned: columns present at the source and
absent from the target are added (always nullable, so existing rows stay
valid), and columns that are NOT NULL at the source get an index.
"""

import re
from dataclasses import dataclass, field

from loguru import logger

# Source data_type (information_schema spelling) -> DDL type
TYPE_MAP: dict[str, str] = {
    "text": "TEXT",
    "character varying": "TEXT",
    "varchar": "TEXT",
    "character": "TEXT",
    "char": "TEXT",
    "integer": "INTEGER",
    "bigint": "BIGINT",
    "smallint": "SMALLINT",
    "boolean": "BOOLEAN",
    "numeric": "NUMERIC",
    "decimal": "NUMERIC",
    "real": "REAL",
    "double precision": "DOUBLE PRECISION",
    "float": "DOUBLE PRECISION",
    "timestamp with time zone": "TIMESTAMPTZ",
    "timestamp without time zone": "TIMESTAMP",
    "timestamp": "TIMESTAMP",
    "datetime": "TIMESTAMP",
    "timestamptz": "TIMESTAMPTZ",
    "date": "DATE",
    "time": "TIME",
    "time without time zone": "TIME",
    "uuid": "UUID",
    "json": "JSON",
    "jsonb": "JSONB",
    "array": "TEXT[]",
    "text[]": "TEXT[]",
}

# Columns that never get an automatic index
_INDEX_EXEMPT = frozenset({"id", "created_at", "updated_at"})

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


@dataclass(frozen=True)
class ColumnInfo:
    """One column as reported by a schema listing."""

    name: str
    data_type: str
    nullable: bool = True


@dataclass
class SchemaDiff:
    """Planned changes to bring the target in line with the source."""

    table: str
    source_column_count: int
    target_column_count: int
    missing: list[ColumnInfo] = field(default_factory=list)
    unsupported: list[ColumnInfo] = field(default_factory=list)
    statements: list[str] = field(default_factory=list)
    index_statements: list[str] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not self.missing and not self.unsupported

    def all_statements(self) -> list[str]:
        return [*self.statements, *self.index_statements]


def map_data_type(source_type: str) -> str | None:
    """Return the DDL type for a source ``data_type`` or None if unsupported."""
    return TYPE_MAP.get(source_type.strip().lower())


def quote_identifier(name: str) -> str:
    """Double-quote a plain SQL identifier.

    Raises:
        ValueError: If the name is not a plain identifier.
    """
    if not _IDENTIFIER.match(name):
        msg = f"Refusing to use unsafe identifier: {name!r}"
        raise ValueError(msg)
    return f'"{name}"'


def compare_columns(
    table: str,
    source_columns: list[ColumnInfo],
    target_columns: list[ColumnInfo],
    *,
    schema: str | None = None,
) -> SchemaDiff:
    """Plan ``ADD COLUMN IF NOT EXISTS`` statements for missing columns.

    Args:
        table: Target table name.
        source_columns: Columns present at the source.
        target_columns: Columns already on the target table.
        schema: Optional schema qualifier for the DDL.

    Returns:
        A SchemaDiff listing missing and unsupported columns and the DDL.
    """
    existing = {c.name for c in target_columns}
    qualified = quote_identifier(table) if schema is None else f"{quote_identifier(schema)}.{quote_identifier(table)}"
    diff = SchemaDiff(
        table=table,
        source_column_count=len(source_columns),
        target_column_count=len(target_columns),
    )

    for column in source_columns:
        if column.name in existing:
            continue
        ddl_type = map_data_type(column.data_type)
        if ddl_type is None or not _IDENTIFIER.match(column.name):
            logger.warning(f"Unsupported column {column.name!r} ({column.data_type}), skipping")
            diff.unsupported.append(column)
            continue

        diff.missing.append(column)
        diff.statements.append(
            f"ALTER TABLE {qualified} ADD COLUMN IF NOT EXISTS {quote_identifier(column.name)} {ddl_type}"
        )
        if not column.nullable and column.name not in _INDEX_EXEMPT:
            index_name = quote_identifier(f"idx_{table}_{column.name}"[:63])
            diff.index_statements.append(
                f"CREATE INDEX IF NOT EXISTS {index_name} ON {qualified} ({quote_identifier(column.name)})"
            )

    logger.info(
        f"Schema diff for {table}: {len(diff.missing)} missing, {len(diff.unsupported)} unsupported "
        f"(source={diff.source_column_count}, target={diff.target_column_count})"
    )
    return diff
