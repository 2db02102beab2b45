"""Interfaces the controller needs from persistence and the destination."""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from leadsync.lib.mapping.rules import MappingRule
from leadsync.lib.sync_engine.state import JobStatus, ProgressSnapshot


@dataclass
class JobRecord:
    """Detached view of a job row, as loaded by the controller at start."""

    id: uuid.UUID
    job_type: str
    status: JobStatus
    source_locator: dict[str, Any]
    target_descriptor: str
    mapping_set_id: uuid.UUID
    batch_size: int
    dry_run: bool = False
    write_mode: str = "insert"
    conflict_key: str = "id"
    cursor: dict[str, Any] | None = None
    total_records: int | None = None
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)
    control_request: str | None = None


@dataclass
class WriteOutcome:
    """Result of one sub-batch write.

    Attributes:
        succeeded: Records written.
        failed: Records counted as failed (the whole sub-batch on error).
        skipped: Records not written because the destination was newer.
        error: Error message carrying the sub-batch id, if the write failed.
        connectivity_error: True when the failure looks like a lost connection.
    """

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    error: str | None = None
    connectivity_error: bool = False

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped


class JobStore(Protocol):
    """Durable job state."""

    async def load_job(self, job_id: uuid.UUID) -> JobRecord: ...

    async def load_rules(self, mapping_set_id: uuid.UUID) -> list[MappingRule]: ...

    async def read_control(self, job_id: uuid.UUID) -> tuple[JobStatus, str | None]: ...

    async def load_status(self, job_id: uuid.UUID) -> dict[str, Any]:
        """The job's full status payload, as served to status queries."""
        ...

    async def save_progress(self, job_id: uuid.UUID, snapshot: ProgressSnapshot) -> None: ...

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
    ) -> None: ...


class BatchWriter(Protocol):
    """Bounded writes of mapped records to one destination table."""

    columns: frozenset[str]

    async def write(self, records: Sequence[dict[str, Any]], sub_batch_id: str) -> WriteOutcome: ...
