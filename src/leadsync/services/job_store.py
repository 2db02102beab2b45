"""SQL-backed job state store used by the job controller.

Every method opens its own short-lived session so a running job never
holds a transaction across chunk reads or writes.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadsync.core.database import session_scope
from leadsync.lib.mapping.rules import MappingRule as RuleDef
from leadsync.lib.sync_engine.errors import JobNotFoundError, JobPreemptedError
from leadsync.lib.sync_engine.state import JobStatus, ProgressSnapshot, assert_transition
from leadsync.lib.sync_engine.store import JobRecord
from leadsync.models.sync_job import SyncJob
from leadsync.schemas.sync_jobs import SyncJobResponse
from leadsync.services.mapping_service import load_rules


def job_record_from_model(job: SyncJob) -> JobRecord:
    """Detach the fields the controller needs from an ORM job."""
    return JobRecord(
        id=job.id,
        job_type=job.job_type,
        status=JobStatus(job.status),
        source_locator=dict(job.source_locator or {}),
        target_descriptor=job.target_descriptor,
        mapping_set_id=job.mapping_set_id,
        batch_size=job.batch_size,
        dry_run=job.dry_run,
        write_mode=job.write_mode,
        conflict_key=job.conflict_key,
        cursor=dict(job.cursor) if job.cursor is not None else None,
        total_records=job.total_records,
        succeeded=job.succeeded,
        failed=job.failed,
        skipped=job.skipped,
        errors=list(job.errors or []),
        control_request=job.control_request,
    )


class SqlJobStore:
    """Job state persisted in the ``sync_jobs`` table.

    Args:
        session_factory: Factory for short-lived sessions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _get(self, session: AsyncSession, job_id: uuid.UUID, *, lock: bool = False) -> SyncJob:
        job = await session.get(SyncJob, job_id, populate_existing=True, with_for_update=lock)
        if job is None:
            msg = f"Sync job {job_id} not found"
            raise JobNotFoundError(msg)
        return job

    async def load_job(self, job_id: uuid.UUID) -> JobRecord:
        async with session_scope(self.session_factory) as session:
            return job_record_from_model(await self._get(session, job_id))

    async def load_rules(self, mapping_set_id: uuid.UUID) -> list[RuleDef]:
        async with session_scope(self.session_factory) as session:
            return await load_rules(session, mapping_set_id)

    async def read_control(self, job_id: uuid.UUID) -> tuple[JobStatus, str | None]:
        async with session_scope(self.session_factory) as session:
            result = await session.execute(
                select(SyncJob.status, SyncJob.control_request).where(SyncJob.id == job_id)
            )
            row = result.one_or_none()
        if row is None:
            msg = f"Sync job {job_id} not found"
            raise JobNotFoundError(msg)
        return JobStatus(row.status), row.control_request

    async def load_status(self, job_id: uuid.UUID) -> dict[str, Any]:
        async with session_scope(self.session_factory) as session:
            job = await self._get(session, job_id)
            return SyncJobResponse.model_validate(job).model_dump(mode="json")

    async def save_progress(self, job_id: uuid.UUID, snapshot: ProgressSnapshot) -> None:
        """Persist a heartbeat while the job is still ``processing``.

        Raises:
            JobPreemptedError: If the row was moved out of ``processing``.
            JobNotFoundError: If the job does not exist.
        """
        async with session_scope(self.session_factory) as session:
            result = await session.execute(
                update(SyncJob)
                .where(SyncJob.id == job_id, SyncJob.status == JobStatus.PROCESSING)
                .values(**snapshot.to_fields(), heartbeat_at=datetime.now(UTC))
            )
            if result.rowcount == 0:
                job = await self._get(session, job_id)
                raise JobPreemptedError(job.status)

    async def set_status(
        self,
        job_id: uuid.UUID,
        status: JobStatus,
        *,
        snapshot: ProgressSnapshot | None = None,
        started_at: datetime | None = None,
        completed_at: datetime | None = None,
        error_message: str | None = None,
        pause_reason: str | None = None,
        expected: JobStatus | None = None,
    ) -> None:
        """Move the job to ``status``, persisting ``snapshot`` in the same write.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobPreemptedError: If ``expected`` is given and the row is no
                longer in it.
            InvalidTransitionError: If the transition is not allowed.
        """
        async with session_scope(self.session_factory) as session:
            job = await self._get(session, job_id, lock=True)
            if expected is not None and job.status != expected:
                raise JobPreemptedError(job.status)
            assert_transition(job.status, status)

            values: dict[str, Any] = {
                "status": str(status),
                "control_request": None,
                "pause_reason": pause_reason,
                "heartbeat_at": datetime.now(UTC),
            }
            if snapshot is not None:
                values.update(snapshot.to_fields())
            if started_at is not None:
                values["started_at"] = started_at
            if completed_at is not None:
                values["completed_at"] = completed_at
            if error_message is not None or status == JobStatus.PROCESSING:
                values["error_message"] = error_message

            for key, value in values.items():
                setattr(job, key, value)
