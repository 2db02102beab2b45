"""Sync job service — create, run, control, and query batch import/sync jobs.

The controller owns a running job's row.  This service only creates jobs,
flags pause/cancel requests, moves jobs that are *not* running, and reads
job state.
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadsync.core.background import JobSupervisor, event_bus, supervisor
from leadsync.core.config import Settings, get_settings
from leadsync.core.database import get_session_factory
from leadsync.lib.sources import CsvFileSource, SourceReader, build_source
from leadsync.lib.sync_engine.control import ControlToken
from leadsync.lib.sync_engine.controller import JobController
from leadsync.lib.sync_engine.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    MappingSetNotFoundError,
    ResumeInconsistencyError,
)
from leadsync.lib.sync_engine.progress import JobEventBus
from leadsync.lib.sync_engine.state import (
    CANCEL_MESSAGE,
    CANCEL_REASON,
    ORPHANED_REASON,
    ControlRequest,
    JobStatus,
    assert_transition,
)
from leadsync.lib.sync_engine.store import JobRecord
from leadsync.models.mapping_set import MappingSet
from leadsync.models.sync_job import SyncJob
from leadsync.services.batch_writer import SqlBatchWriter, WriteMode, resolve_target
from leadsync.services.job_store import SqlJobStore

JOB_TYPES = ("csv_import", "crm_resync", "export")

# Default write mode per job type
_DEFAULT_WRITE_MODE = {
    "csv_import": WriteMode.INSERT,
    "crm_resync": WriteMode.UPSERT,
    "export": WriteMode.SYNC,
}


def default_batch_size(job_type: str, settings: Settings) -> int:
    """Return the configured batch size for a job type."""
    return {
        "csv_import": settings.import_batch_size,
        "crm_resync": settings.resync_batch_size,
        "export": settings.export_batch_size,
    }[job_type]


async def create_sync_job(
    session: AsyncSession,
    *,
    job_type: str,
    source_locator: dict[str, Any],
    target_descriptor: str,
    mapping_set_id: uuid.UUID,
    batch_size: int | None = None,
    dry_run: bool = False,
    write_mode: str | None = None,
    conflict_key: str = "id",
    settings: Settings | None = None,
) -> SyncJob:
    """Create a new sync job in ``pending``.

    Args:
        session: Database session.
        job_type: csv_import, crm_resync, or export.
        source_locator: Where to read records from.
        target_descriptor: Destination table name.
        mapping_set_id: Mapping set fixed for the job's lifetime.
        batch_size: Records per chunk (defaults per job type).
        dry_run: Only count the source records.
        write_mode: insert, upsert, or sync (defaults per job type).
        conflict_key: Column used by upsert/sync.
        settings: Application settings (loaded if omitted).

    Returns:
        The created SyncJob.

    Raises:
        ValueError: If the job type, write mode, or batch size is invalid.
        MappingSetNotFoundError: If the mapping set does not exist.
        UnknownTargetError: If the target table is not registered.
    """
    settings = settings or get_settings()
    if job_type not in JOB_TYPES:
        msg = f"Unknown job type: {job_type!r}"
        raise ValueError(msg)
    mode = WriteMode(write_mode) if write_mode else _DEFAULT_WRITE_MODE[job_type]
    size = batch_size or default_batch_size(job_type, settings)
    if size < 1:
        msg = f"batch_size must be positive, got {size}"
        raise ValueError(msg)

    table = resolve_target(target_descriptor)
    if mode is not WriteMode.INSERT and conflict_key not in table.c:
        msg = f"Conflict key {conflict_key!r} is not a column of {target_descriptor!r}"
        raise ValueError(msg)
    if await session.get(MappingSet, mapping_set_id) is None:
        msg = f"Mapping set {mapping_set_id} not found"
        raise MappingSetNotFoundError(msg)

    job = SyncJob(
        job_type=job_type,
        status=JobStatus.PENDING,
        source_locator=source_locator,
        target_descriptor=target_descriptor,
        mapping_set_id=mapping_set_id,
        batch_size=size,
        dry_run=dry_run,
        write_mode=str(mode),
        conflict_key=conflict_key,
        errors=[],
    )
    session.add(job)
    await session.commit()
    await session.refresh(job)
    logger.info(f"Created {job_type} job {job.id} -> {target_descriptor} (batch_size={size}, dry_run={dry_run})")
    return job


def build_controller(
    job_id: uuid.UUID,
    *,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    token: ControlToken,
    bus: JobEventBus | None = None,
) -> JobController:
    """Wire a controller to the SQL store, the configured sources, and a SQL writer."""

    def source_factory(job: JobRecord) -> SourceReader:
        return build_source(
            job.source_locator,
            job.batch_size,
            max_upload_bytes=settings.max_upload_bytes,
            crm_base_url=settings.crm_base_url,
            crm_method=settings.crm_lead_method,
            crm_timeout=settings.crm_timeout,
            crm_page_size=settings.crm_page_size,
            session_factory=session_factory,
            resolve_table=resolve_target,
        )

    def writer_factory(job: JobRecord) -> SqlBatchWriter:
        return SqlBatchWriter(
            session_factory,
            resolve_target(job.target_descriptor),
            job.write_mode,
            job.conflict_key,
        )

    return JobController(
        job_id,
        store=SqlJobStore(session_factory),
        source_factory=source_factory,
        writer_factory=writer_factory,
        token=token,
        bus=bus,
        heartbeat_interval=settings.heartbeat_interval,
        status_check_every=settings.status_check_every,
        max_error_entries=settings.max_error_entries,
        max_consecutive_write_failures=settings.max_consecutive_write_failures,
    )


def start_sync_job(
    job_id: uuid.UUID,
    *,
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    runner: JobSupervisor | None = None,
) -> asyncio.Task[Any]:
    """Launch the job's controller as a supervised background task.

    Raises:
        JobAlreadyRunningError: If the job already has a live task.
    """
    runner = runner or supervisor
    token = ControlToken()
    controller = build_controller(
        job_id,
        settings=settings or get_settings(),
        session_factory=session_factory or get_session_factory(),
        token=token,
        bus=event_bus,
    )
    return runner.start(job_id, controller.run(), token)


async def _require_job(session: AsyncSession, job_id: uuid.UUID) -> SyncJob:
    job = await get_sync_job(session, job_id)
    if job is None:
        msg = f"Sync job {job_id} not found"
        raise JobNotFoundError(msg)
    return job


async def pause_sync_job(
    session: AsyncSession,
    job_id: uuid.UUID,
    *,
    runner: JobSupervisor | None = None,
) -> SyncJob:
    """Request a pause; the job stops at its next chunk boundary.

    A no-op unless the job is ``processing``.

    Raises:
        JobNotFoundError: If the job does not exist.
    """
    runner = runner or supervisor
    job = await _require_job(session, job_id)
    if job.status != JobStatus.PROCESSING:
        logger.info(f"Pause ignored for job {job_id} in status {job.status}")
        return job
    job.control_request = ControlRequest.PAUSE
    await session.commit()
    runner.request_pause(job_id)
    logger.info(f"Pause requested for job {job_id}")
    return job


def _heartbeat_is_stale(job: SyncJob, older_than: int) -> bool:
    last_seen = job.heartbeat_at or job.updated_at
    if last_seen is None:
        return True
    if last_seen.tzinfo is None:
        last_seen = last_seen.replace(tzinfo=UTC)
    return last_seen < datetime.now(UTC) - timedelta(seconds=older_than)


async def cancel_sync_job(
    session: AsyncSession,
    job_id: uuid.UUID,
    *,
    settings: Settings | None = None,
    runner: JobSupervisor | None = None,
) -> SyncJob:
    """Cancel a job.

    A ``processing`` job may be owned by a controller in another process,
    so it is only flagged and fails at its next chunk boundary.  Pending
    and paused jobs, and ``processing`` jobs whose heartbeat is older than
    ``stale_job_timeout`` with no live task here, are failed immediately.

    Raises:
        JobNotFoundError: If the job does not exist.
        InvalidTransitionError: If the job is already terminal.
    """
    settings = settings or get_settings()
    runner = runner or supervisor
    job = await _require_job(session, job_id)
    assert_transition(job.status, JobStatus.FAILED)

    if job.status == JobStatus.PROCESSING and (
        runner.is_running(job_id) or not _heartbeat_is_stale(job, settings.stale_job_timeout)
    ):
        job.control_request = ControlRequest.CANCEL
        await session.commit()
        runner.request_cancel(job_id)
        logger.info(f"Cancel requested for running job {job_id}")
        return job

    job.status = JobStatus.FAILED
    job.pause_reason = CANCEL_REASON
    job.error_message = CANCEL_MESSAGE
    job.control_request = None
    job.completed_at = datetime.now(UTC)
    await session.commit()
    await session.refresh(job)
    logger.info(f"Cancelled job {job_id}")
    return job


def check_resumable(job: SyncJob) -> None:
    """Verify a paused job's source can still honour its cursor.

    Raises:
        ResumeInconsistencyError: If the source artifact is gone.
    """
    locator = job.source_locator or {}
    if locator.get("kind") == CsvFileSource.kind and not Path(locator.get("path", "")).is_file():
        msg = f"Cannot resume job {job.id}: source file {locator.get('path')!r} no longer exists"
        raise ResumeInconsistencyError(msg)


async def resume_sync_job(
    session: AsyncSession,
    job_id: uuid.UUID,
    *,
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    runner: JobSupervisor | None = None,
) -> SyncJob:
    """Resume a paused job from its persisted cursor.

    Raises:
        JobNotFoundError: If the job does not exist.
        InvalidTransitionError: If the job is not paused.
        ResumeInconsistencyError: If the cursor can no longer be honoured;
            the job is failed first.
    """
    job = await _require_job(session, job_id)
    if job.status != JobStatus.PAUSED:
        raise InvalidTransitionError(job.status, JobStatus.PROCESSING)

    try:
        check_resumable(job)
    except ResumeInconsistencyError as exc:
        job.status = JobStatus.FAILED
        job.error_message = str(exc)
        job.completed_at = datetime.now(UTC)
        await session.commit()
        logger.error(str(exc))
        raise

    start_sync_job(job_id, settings=settings, session_factory=session_factory, runner=runner)
    logger.info(f"Resuming job {job_id} from cursor {job.cursor}")
    return job


async def get_sync_job(session: AsyncSession, job_id: uuid.UUID) -> SyncJob | None:
    """Get a sync job by ID, always reading its latest persisted state."""
    result = await session.execute(
        select(SyncJob).where(SyncJob.id == job_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_sync_jobs(
    session: AsyncSession,
    *,
    status: str | None = None,
    job_type: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[SyncJob], int]:
    """List sync jobs newest first with optional filters.

    Args:
        session: Database session.
        status: Filter by status.
        job_type: Filter by job type.
        page: Page number.
        page_size: Items per page.

    Returns:
        Tuple of (jobs, total count).
    """
    query = select(SyncJob)
    count_query = select(func.count(SyncJob.id))

    if status:
        query = query.where(SyncJob.status == status)
        count_query = count_query.where(SyncJob.status == status)
    if job_type:
        query = query.where(SyncJob.job_type == job_type)
        count_query = count_query.where(SyncJob.job_type == job_type)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(SyncJob.created_at.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def recover_stale_jobs(
    session: AsyncSession,
    *,
    older_than: int,
    runner: JobSupervisor | None = None,
) -> list[SyncJob]:
    """Pause ``processing`` jobs whose heartbeat is stale and that have no live task.

    Such jobs were orphaned by a crashed or restarted worker; pausing them
    with reason ``orphaned`` lets an operator resume from the last cursor.

    Args:
        session: Database session.
        older_than: Heartbeat age in seconds after which a job is stale.
        runner: Supervisor whose live tasks are exempt.

    Returns:
        The jobs that were paused.
    """
    runner = runner or supervisor
    cutoff = datetime.now(UTC) - timedelta(seconds=older_than)
    result = await session.execute(
        select(SyncJob).where(
            SyncJob.status == JobStatus.PROCESSING,
            or_(
                SyncJob.heartbeat_at < cutoff,
                and_(SyncJob.heartbeat_at.is_(None), SyncJob.updated_at < cutoff),
            ),
        )
    )
    live = runner.running_job_ids()
    recovered = [job for job in result.scalars().all() if job.id not in live]
    for job in recovered:
        job.status = JobStatus.PAUSED
        job.pause_reason = ORPHANED_REASON
        job.control_request = None
        logger.warning(f"Job {job.id} had no heartbeat since {job.heartbeat_at or job.updated_at}; paused as orphaned")
    if recovered:
        await session.commit()
    return recovered
