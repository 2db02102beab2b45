"""Tests for source/target column comparison."""

import pytest

from leadsync.lib.schema_drift import ColumnInfo, compare_columns, map_data_type, quote_identifier


def _cols(*specs: tuple[str, str, bool]) -> list[ColumnInfo]:
    return [ColumnInfo(name, data_type, nullable) for name, data_type, nullable in specs]


class TestCompareColumns:
    """Tests for compare_columns."""

    def test_in_sync(self) -> None:
        columns = _cols(("id", "text", False), ("nome", "text", True))
        diff = compare_columns("leads", columns, columns)
        assert diff.in_sync
        assert diff.all_statements() == []

    def test_missing_columns_are_added_nullable(self) -> None:
        source = _cols(("id", "text", False), ("idade", "integer", False), ("extra", "jsonb", True))
        target = _cols(("id", "text", False))
        diff = compare_columns("leads", source, target)

        assert [c.name for c in diff.missing] == ["idade", "extra"]
        assert diff.statements == [
            'ALTER TABLE "leads" ADD COLUMN IF NOT EXISTS "idade" INTEGER',
            'ALTER TABLE "leads" ADD COLUMN IF NOT EXISTS "extra" JSONB',
        ]
        assert all("NOT NULL" not in s for s in diff.statements)
        assert diff.index_statements == ['CREATE INDEX IF NOT EXISTS "idx_leads_idade" ON "leads" ("idade")']

    def test_timestamp_columns_are_not_indexed(self) -> None:
        source = _cols(("updated_at", "timestamp with time zone", False))
        diff = compare_columns("leads", source, [])
        assert diff.statements == ['ALTER TABLE "leads" ADD COLUMN IF NOT EXISTS "updated_at" TIMESTAMPTZ']
        assert diff.index_statements == []

    def test_unsupported_types_are_reported(self) -> None:
        diff = compare_columns("leads", _cols(("shape", "geometry", True)), [])
        assert [c.name for c in diff.unsupported] == ["shape"]
        assert diff.statements == []
        assert not diff.in_sync

    def test_schema_qualified(self) -> None:
        diff = compare_columns("leads", _cols(("nome", "varchar", True)), [], schema="pr_42")
        assert diff.statements == ['ALTER TABLE "pr_42"."leads" ADD COLUMN IF NOT EXISTS "nome" TEXT']


class TestHelpers:
    """Tests for type mapping and identifier quoting."""

    def test_map_data_type_is_case_insensitive(self) -> None:
        assert map_data_type(" Character Varying ") == "TEXT"
        assert map_data_type("money") is None

    def test_quote_identifier_rejects_injection(self) -> None:
        with pytest.raises(ValueError, match="unsafe identifier"):
            quote_identifier('leads"; DROP TABLE x; --')
