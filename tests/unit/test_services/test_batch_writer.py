"""Tests for the SQL batch writer against SQLite."""

from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from leadsync.lib.sync_engine.errors import JobSetupError, UnknownTargetError
from leadsync.models.lead import Lead
from leadsync.services.batch_writer import (
    SqlBatchWriter,
    WriteMode,
    _param_chunks,
    is_connectivity_error,
    resolve_target,
)


async def _leads(session) -> dict[str, Lead]:
    result = await session.execute(select(Lead).execution_options(populate_existing=True))
    return {lead.id: lead for lead in result.scalars().all()}


class TestResolveTarget:
    """Tests for resolve_target."""

    def test_known_table(self) -> None:
        assert resolve_target("leads").name == "leads"

    def test_unknown_table_raises(self) -> None:
        with pytest.raises(UnknownTargetError, match="nope"):
            resolve_target("nope")


class TestWriterSetup:
    """Tests for SqlBatchWriter construction checks."""

    def test_upsert_requires_known_conflict_key(self, session_factory) -> None:
        with pytest.raises(JobSetupError, match="Conflict key"):
            SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.UPSERT, "bitrix_id")

    def test_sync_requires_timestamp_column(self, session_factory) -> None:
        with pytest.raises(JobSetupError, match="timestamp"):
            SqlBatchWriter(session_factory, resolve_target("leads"), "sync", "id", timestamp_field="modified")

    def test_insert_ignores_conflict_key(self, session_factory) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), "insert", "not_a_column")
        assert writer.mode is WriteMode.INSERT


class TestInsertMode:
    """Tests for plain inserts."""

    async def test_writes_sparse_records(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"))
        outcome = await writer.write(
            [
                {"id": "1", "nome": "Ana"},
                {"id": "2", "scouter": "Bruno", "idade": 22},
                {"id": "3", "unknown_field": "dropped"},
            ],
            "chunk-0/0",
        )

        assert (outcome.succeeded, outcome.failed, outcome.skipped) == (3, 0, 0)
        assert outcome.error is None
        leads = await _leads(async_session)
        assert leads["1"].nome == "Ana"
        assert leads["1"].scouter is None
        assert leads["2"].scouter == "Bruno"
        assert leads["2"].idade == 22

    async def test_numbers_bound_for_text_columns_are_stringified(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"))
        await writer.write([{"id": 42, "telefone": 11999990000}], "chunk-0/0")

        leads = await _leads(async_session)
        assert leads["42"].telefone == "11999990000"

    async def test_duplicate_key_fails_whole_sub_batch(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"))
        await writer.write([{"id": "1", "nome": "Ana"}], "chunk-0/0")

        outcome = await writer.write([{"id": "2", "nome": "Bia"}, {"id": "1", "nome": "Dup"}], "chunk-1/0")

        assert outcome.failed == 2
        assert outcome.succeeded == 0
        assert outcome.connectivity_error is False
        assert outcome.error.startswith("chunk-1/0:")
        leads = await _leads(async_session)
        assert set(leads) == {"1"}
        assert leads["1"].nome == "Ana"


class TestUpsertMode:
    """Tests for keyed upserts."""

    async def test_updates_existing_and_inserts_new(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.UPSERT)
        await writer.write([{"id": "1", "nome": "Ana", "scouter": "Bruno"}], "chunk-0/0")

        outcome = await writer.write([{"id": "1", "nome": "Ana Maria"}, {"id": "2", "nome": "Bia"}], "chunk-1/0")

        assert outcome.succeeded == 2
        leads = await _leads(async_session)
        assert leads["1"].nome == "Ana Maria"
        # Sparse update keeps columns the record did not carry
        assert leads["1"].scouter == "Bruno"
        assert leads["2"].nome == "Bia"

    async def test_duplicates_in_one_sub_batch_keep_last(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.UPSERT)

        outcome = await writer.write([{"id": "1", "nome": "first"}, {"id": "1", "nome": "second"}], "chunk-0/0")

        assert (outcome.succeeded, outcome.skipped) == (1, 1)
        leads = await _leads(async_session)
        assert leads["1"].nome == "second"

    async def test_records_without_key_fail(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.UPSERT)

        outcome = await writer.write([{"nome": "keyless"}, {"id": "5", "nome": "Eva"}], "chunk-0/0")

        assert (outcome.succeeded, outcome.failed, outcome.skipped) == (1, 1, 0)
        assert "without conflict key" in outcome.error
        assert set(await _leads(async_session)) == {"5"}

    async def test_key_only_record_does_not_overwrite(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.UPSERT)
        await writer.write([{"id": "1", "nome": "Ana"}], "chunk-0/0")

        outcome = await writer.write([{"id": "1"}], "chunk-1/0")

        assert outcome.succeeded == 1
        assert (await _leads(async_session))["1"].nome == "Ana"


class TestSyncMode:
    """Tests for timestamp-compared sync writes."""

    async def test_newer_destination_is_skipped(self, session_factory, async_session) -> None:
        now = datetime.now(UTC)
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.SYNC)
        await writer.write(
            [
                {"id": "1", "nome": "kept", "updated_at": now},
                {"id": "2", "nome": "old", "updated_at": now - timedelta(days=1)},
            ],
            "chunk-0/0",
        )

        outcome = await writer.write(
            [
                {"id": "1", "nome": "stale", "updated_at": now - timedelta(hours=1)},
                {"id": "2", "nome": "fresh", "updated_at": now},
                {"id": "3", "nome": "new", "updated_at": now},
            ],
            "chunk-1/0",
        )

        assert (outcome.succeeded, outcome.skipped, outcome.failed) == (2, 1, 0)
        leads = await _leads(async_session)
        assert leads["1"].nome == "kept"
        assert leads["2"].nome == "fresh"
        assert leads["3"].nome == "new"

    async def test_equal_timestamp_is_skipped(self, session_factory) -> None:
        stamp = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.SYNC)
        await writer.write([{"id": "1", "nome": "a", "updated_at": stamp}], "chunk-0/0")

        outcome = await writer.write([{"id": "1", "nome": "b", "updated_at": stamp}], "chunk-1/0")

        assert outcome.skipped == 1
        assert outcome.succeeded == 0

    async def test_text_and_date_timestamps_are_compared(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.SYNC)
        await writer.write(
            [
                {"id": "1", "nome": "old", "updated_at": datetime(2024, 1, 1, tzinfo=UTC)},
                {"id": "2", "nome": "kept", "updated_at": datetime(2024, 12, 1, tzinfo=UTC)},
            ],
            "chunk-0/0",
        )

        outcome = await writer.write(
            [
                {"id": "1", "nome": "fresh", "updated_at": "2024-06-01"},
                {"id": "2", "nome": "stale", "updated_at": date(2024, 6, 1)},
            ],
            "chunk-1/0",
        )

        assert (outcome.succeeded, outcome.skipped, outcome.failed) == (1, 1, 0)
        leads = await _leads(async_session)
        assert leads["1"].nome == "fresh"
        assert leads["1"].updated_at.replace(tzinfo=UTC) == datetime(2024, 6, 1, tzinfo=UTC)
        assert leads["2"].nome == "kept"

    async def test_unparseable_timestamp_fails_only_that_record(self, session_factory, async_session) -> None:
        writer = SqlBatchWriter(session_factory, resolve_target("leads"), WriteMode.SYNC)

        outcome = await writer.write(
            [
                {"id": "1", "nome": "bad", "updated_at": "not a date"},
                {"id": "2", "nome": "good", "updated_at": "2024-06-01T10:00:00Z"},
            ],
            "chunk-0/0",
        )

        assert (outcome.succeeded, outcome.skipped, outcome.failed) == (1, 0, 1)
        assert "unparseable 'updated_at' (1)" in outcome.error
        assert set(await _leads(async_session)) == {"2"}


class TestHelpers:
    """Tests for module helpers."""

    def test_param_chunks_respect_limit(self) -> None:
        rows = [{"a": i, "b": i} for i in range(20_000)]
        chunks = _param_chunks(rows, 2)
        assert [len(c) for c in chunks] == [16_000, 4_000]

    def test_param_chunks_empty(self) -> None:
        assert _param_chunks([], 3) == []

    def test_operational_error_is_connectivity(self) -> None:
        exc = OperationalError("SELECT 1", {}, Exception("connection refused"))
        assert is_connectivity_error(exc) is True

    def test_plain_error_is_not_connectivity(self) -> None:
        assert is_connectivity_error(ValueError("boom")) is False
