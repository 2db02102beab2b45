"""Job controller: drives one job from source to destination.

The controller is the only writer of its job's row.  It pulls chunks from
a source reader, resolves every record through the job's mapping set,
hands mapped sub-batches to a batch writer, and reports progress on a
heartbeat.  Pause and cancel are cooperative and observed only between
chunks, so a chunk is never left half-written.
"""

import time
import uuid
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime

from leadsync.core.logging import job_logger
from leadsync.lib.mapping.resolver import resolve_record
from leadsync.lib.mapping.rules import MappingRule
from leadsync.lib.sources.base import SourceChunk, SourceReader
from leadsync.lib.sync_engine.control import ControlToken
from leadsync.lib.sync_engine.errors import (
    JobSetupError,
    JobPreemptedError,
    ResumeInconsistencyError,
    SourceUnavailableError,
    SyncEngineError,
)
from leadsync.lib.sync_engine.progress import JobEventBus, ProgressReporter
from leadsync.lib.sync_engine.state import (
    CANCEL_MESSAGE,
    CANCEL_REASON,
    MAX_ERROR_ENTRIES,
    PAUSE_REASON,
    ControlRequest,
    ErrorLog,
    JobCounters,
    JobStatus,
    ProgressSnapshot,
    assert_transition,
)
from leadsync.lib.sync_engine.store import BatchWriter, JobRecord, JobStore, WriteOutcome

SourceFactory = Callable[[JobRecord], SourceReader]
WriterFactory = Callable[[JobRecord], BatchWriter]


class JobController:
    """Run one job to a terminal or paused state.

    Args:
        job_id: The job to run.
        store: Durable job state.
        source_factory: Builds the source reader for the job.
        writer_factory: Builds the batch writer for the job's target.
        token: In-process pause/cancel token.
        bus: Event bus for progress observers.
        heartbeat_interval: Seconds between throttled progress writes.
        status_check_every: Re-read the persisted control state every N chunks.
        max_error_entries: Error log capacity.
        max_consecutive_write_failures: Connectivity failures in a row
            before the job is failed.
        clock: Monotonic clock used by the progress reporter.
    """

    def __init__(
        self,
        job_id: uuid.UUID,
        *,
        store: JobStore,
        source_factory: SourceFactory,
        writer_factory: WriterFactory,
        token: ControlToken | None = None,
        bus: JobEventBus | None = None,
        heartbeat_interval: float = 2.0,
        status_check_every: int = 10,
        max_error_entries: int = MAX_ERROR_ENTRIES,
        max_consecutive_write_failures: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.job_id = job_id
        self.store = store
        self.source_factory = source_factory
        self.writer_factory = writer_factory
        self.token = token or ControlToken()
        self.status_check_every = status_check_every
        self.max_error_entries = max_error_entries
        self.max_consecutive_write_failures = max_consecutive_write_failures
        self.reporter = ProgressReporter(store, job_id, interval=heartbeat_interval, clock=clock, bus=bus)
        self.log = job_logger(job_id)

        self.counters = JobCounters()
        self.errors = ErrorLog(capacity=max_error_entries)
        self.cursor: dict | None = None
        self.total_records: int | None = None

    def snapshot(self, status: JobStatus = JobStatus.PROCESSING) -> ProgressSnapshot:
        if self.total_records is not None and self.counters.processed > self.total_records:
            # The remote grew after it was counted
            self.total_records = self.counters.processed
        return ProgressSnapshot(
            status=status,
            counters=JobCounters(self.counters.succeeded, self.counters.failed, self.counters.skipped),
            errors=list(self.errors.entries),
            cursor=self.cursor,
            total_records=self.total_records,
        )

    async def _finish(
        self,
        status: JobStatus,
        *,
        error_message: str | None = None,
        pause_reason: str | None = None,
    ) -> JobStatus:
        """Persist final counters and the new status in one write."""
        snapshot = self.snapshot(status)
        stamp = datetime.now(UTC)
        await self.store.set_status(
            self.job_id,
            status,
            snapshot=snapshot,
            completed_at=stamp if status != JobStatus.PAUSED else None,
            error_message=error_message,
            pause_reason=pause_reason,
            expected=JobStatus.PROCESSING,
        )
        await self.reporter.notify(snapshot)
        c = self.counters
        self.log.bind(json_output=True, status=str(status), **c.as_dict()).info(
            f"Job {self.job_id} -> {status}: processed={c.processed} succeeded={c.succeeded} "
            f"failed={c.failed} skipped={c.skipped}"
            + (f" ({error_message})" if error_message else "")
        )
        return status

    async def _fail(self, message: str) -> JobStatus:
        self.log.error(f"Job {self.job_id} failed: {message}")
        return await self._finish(JobStatus.FAILED, error_message=message)

    async def _observe_control(self, chunks_done: int) -> ControlRequest | None:
        """Check the in-process token, and the persisted state every N chunks.

        Raises:
            JobPreemptedError: If another process already moved the row out
                of ``processing``.
        """
        if self.token.requested is not None:
            return self.token.requested
        if chunks_done == 0 or chunks_done % self.status_check_every != 0:
            return None
        status, control_request = await self.store.read_control(self.job_id)
        if status != JobStatus.PROCESSING:
            raise JobPreemptedError(status)
        if control_request == ControlRequest.CANCEL:
            return ControlRequest.CANCEL
        if control_request == ControlRequest.PAUSE:
            return ControlRequest.PAUSE
        return None

    async def _stop_for(self, request: ControlRequest) -> JobStatus:
        if request == ControlRequest.CANCEL:
            return await self._finish(JobStatus.FAILED, error_message=CANCEL_MESSAGE, pause_reason=CANCEL_REASON)
        return await self._finish(JobStatus.PAUSED, pause_reason=PAUSE_REASON)

    def _map_chunk(self, chunk: SourceChunk, rules: list[MappingRule]) -> tuple[list[dict], int]:
        """Resolve a chunk; return the mapped records and the unmappable count."""
        mapped: list[dict] = []
        unmappable = 0
        base = self.counters.processed
        for position, record in enumerate(chunk.records, start=1):
            context = f"record {base + position}"
            result = resolve_record(record, rules)
            for message in result.errors:
                self.errors.append(context, message)
            if result.is_empty:
                unmappable += 1
                self.errors.append(context, "Record mapped to no target fields")
                continue
            mapped.append(result.values)
        return mapped, unmappable

    async def _setup(self, job: JobRecord) -> tuple[list[MappingRule], SourceReader, BatchWriter]:
        rules = await self.store.load_rules(job.mapping_set_id)
        writer = self.writer_factory(job)
        unknown = sorted({r.target_field for r in rules if r.active} - writer.columns)
        if unknown:
            msg = f"Mapping set targets unknown column(s) of {job.target_descriptor!r}: {', '.join(unknown)}"
            raise JobSetupError(msg)
        source = self.source_factory(job)
        return rules, source, writer

    async def run(self) -> JobStatus:
        """Run the job until exhaustion, pause, cancel, or failure.

        If another process moves the row out of ``processing`` mid-run, the
        controller stops at the next chunk boundary without writing again.

        Returns:
            The status the job was left in.

        Raises:
            InvalidTransitionError: If the job is not pending or paused.
        """
        try:
            return await self._run()
        except JobPreemptedError as exc:
            self.log.warning(f"Job {self.job_id} stopped: {exc}")
            return JobStatus(exc.status)

    async def _run(self) -> JobStatus:
        job = await self.store.load_job(self.job_id)
        assert_transition(job.status, JobStatus.PROCESSING)
        resuming = job.status == JobStatus.PAUSED

        self.counters = JobCounters(job.succeeded, job.failed, job.skipped)
        self.errors = ErrorLog.from_entries(job.errors, self.max_error_entries)
        self.cursor = job.cursor
        self.total_records = job.total_records

        await self.store.set_status(
            self.job_id,
            JobStatus.PROCESSING,
            started_at=None if resuming else datetime.now(UTC),
        )
        self.log.info(
            f"{'Resuming' if resuming else 'Starting'} job {self.job_id} ({job.job_type}) "
            f"-> {job.target_descriptor}, batch_size={job.batch_size}, cursor={job.cursor}"
        )

        try:
            rules, source, writer = await self._setup(job)
        except SyncEngineError as exc:
            return await self._fail(str(exc))

        try:
            return await self._drive(job, rules, source, writer, resuming=resuming)
        except JobPreemptedError:
            raise
        except SyncEngineError as exc:
            return await self._fail(str(exc))
        except Exception as exc:
            await self._fail(f"Unexpected error: {exc}")
            raise
        finally:
            await source.close()

    async def _drive(
        self,
        job: JobRecord,
        rules: list[MappingRule],
        source: SourceReader,
        writer: BatchWriter,
        *,
        resuming: bool,
    ) -> JobStatus:
        if job.dry_run:
            self.total_records = await source.count_records()
            self.log.info(f"Dry run for job {self.job_id}: {self.total_records} record(s) would be processed")
            return await self._finish(JobStatus.COMPLETED)

        if self.total_records is None:
            self.total_records = await source.count_records()
            await self.reporter.flush(self.snapshot())

        chunks: AsyncIterator[SourceChunk] = aiter(source.chunks(self.cursor))
        chunks_done = 0
        consecutive_failures = 0

        while True:
            request = await self._observe_control(chunks_done)
            if request is not None:
                return await self._stop_for(request)

            try:
                chunk = await anext(chunks)
            except StopAsyncIteration:
                break
            except SourceUnavailableError as exc:
                if resuming and chunks_done == 0:
                    msg = f"Cannot resume from cursor {self.cursor}: {exc}"
                    raise ResumeInconsistencyError(msg) from exc
                raise

            mapped, unmappable = self._map_chunk(chunk, rules)
            outcome = WriteOutcome()
            if mapped:
                outcome = await writer.write(mapped, f"chunk {chunk.index}")
            self.counters.record(
                succeeded=outcome.succeeded,
                failed=outcome.failed + unmappable,
                skipped=outcome.skipped,
            )
            if outcome.error:
                self.errors.append(f"chunk {chunk.index}", outcome.error)
            self.cursor = chunk.cursor
            chunks_done += 1

            if mapped:
                consecutive_failures = consecutive_failures + 1 if outcome.connectivity_error else 0
            if consecutive_failures >= self.max_consecutive_write_failures:
                msg = (
                    f"Destination unreachable: {consecutive_failures} consecutive sub-batch failures "
                    f"(last: {outcome.error})"
                )
                return await self._fail(msg)

            await self.reporter.maybe_flush(self.snapshot())

        status = JobStatus.COMPLETED_WITH_ERRORS if self.counters.failed > 0 else JobStatus.COMPLETED
        await self._finish(status)
        try:
            await source.discard()
        except OSError as exc:
            self.log.warning(f"Job {self.job_id} finished but its source could not be removed: {exc}")
        return status
