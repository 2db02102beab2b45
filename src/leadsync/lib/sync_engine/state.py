"""Job status machine, counters, and the bounded error log."""

import enum
from dataclasses import dataclass, field
from typing import Any

from leadsync.lib.sync_engine.errors import InvalidTransitionError

MAX_ERROR_ENTRIES = 100

CANCEL_REASON = "cancelled"
CANCEL_MESSAGE = "Cancelled by operator"
PAUSE_REASON = "paused by operator"
ORPHANED_REASON = "orphaned"


class JobStatus(enum.StrEnum):
    """Persisted job status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAUSED = "paused"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class ControlRequest(enum.StrEnum):
    """Operator requests observed by a running job at chunk boundaries."""

    PAUSE = "pause"
    CANCEL = "cancel"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.COMPLETED_WITH_ERRORS, JobStatus.FAILED})
STARTABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PAUSED})

_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PAUSED, JobStatus.FAILED, JobStatus.COMPLETED, JobStatus.COMPLETED_WITH_ERRORS}
    ),
    JobStatus.PAUSED: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
}


def can_transition(current: str, requested: str) -> bool:
    """Return True if ``current`` may move to ``requested``."""
    return JobStatus(requested) in _TRANSITIONS.get(JobStatus(current), frozenset())


def assert_transition(current: str, requested: str) -> None:
    """Validate a status change.

    Raises:
        InvalidTransitionError: If the change is not allowed.
    """
    if not can_transition(current, requested):
        raise InvalidTransitionError(current, requested)


def is_terminal(status: str) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


@dataclass
class JobCounters:
    """Monotonic record counters; ``processed`` is always the sum of the others."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def record(self, *, succeeded: int = 0, failed: int = 0, skipped: int = 0) -> None:
        """Add one step's outcome counts.

        Raises:
            ValueError: If any count is negative.
        """
        if min(succeeded, failed, skipped) < 0:
            msg = f"Counter increments must be non-negative: {succeeded=}, {failed=}, {skipped=}"
            raise ValueError(msg)
        self.succeeded += succeeded
        self.failed += failed
        self.skipped += skipped

    def as_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
        }


@dataclass
class ErrorLog:
    """Append-with-cap error list.

    Once ``capacity`` entries are held, further errors only increment
    ``dropped``.
    """

    capacity: int = MAX_ERROR_ENTRIES
    entries: list[dict[str, str]] = field(default_factory=list)
    dropped: int = 0

    @classmethod
    def from_entries(cls, entries: list[dict[str, str]] | None, capacity: int = MAX_ERROR_ENTRIES) -> "ErrorLog":
        """Rebuild a log from persisted entries (used on resume)."""
        return cls(capacity=capacity, entries=list(entries or [])[:capacity])

    def append(self, context: str, message: str) -> bool:
        """Record an error; return False if the log was already full."""
        if len(self.entries) >= self.capacity:
            self.dropped += 1
            return False
        self.entries.append({"context": context, "message": message})
        return True

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class ProgressSnapshot:
    """The field set persisted at each heartbeat."""

    status: JobStatus
    counters: JobCounters
    errors: list[dict[str, str]]
    cursor: dict[str, Any] | None = None
    total_records: int | None = None

    def to_fields(self) -> dict[str, Any]:
        """Column values for the job row."""
        return {
            **self.counters.as_dict(),
            "errors": list(self.errors),
            "cursor": self.cursor,
            "total_records": self.total_records,
        }
