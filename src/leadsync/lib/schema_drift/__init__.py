"""Schema drift library public API.

Compares a source table's columns with a target table and plans the
additive DDL that reconciles them.
"""

from leadsync.lib.schema_drift.comparator import (
    TYPE_MAP,
    ColumnInfo,
    SchemaDiff,
    compare_columns,
    map_data_type,
    quote_identifier,
)

__all__ = [
    "TYPE_MAP",
    "ColumnInfo",
    "SchemaDiff",
    "compare_columns",
    "map_data_type",
    "quote_identifier",
]
