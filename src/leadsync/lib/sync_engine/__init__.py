"""Sync job engine public API.

Provides the job status machine, cooperative control token, progress
reporting, and the controller that drives a job from source to target.
"""

from leadsync.lib.sync_engine.control import ControlToken
from leadsync.lib.sync_engine.controller import JobController
from leadsync.lib.sync_engine.errors import (
    InvalidTransitionError,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobSetupError,
    MappingSetNotFoundError,
    ResumeInconsistencyError,
    SourceUnavailableError,
    SyncEngineError,
    UnknownTargetError,
)
from leadsync.lib.sync_engine.progress import JobEventBus, ProgressReporter
from leadsync.lib.sync_engine.state import (
    TERMINAL_STATUSES,
    ControlRequest,
    ErrorLog,
    JobCounters,
    JobStatus,
    ProgressSnapshot,
    assert_transition,
    can_transition,
)
from leadsync.lib.sync_engine.store import BatchWriter, JobRecord, JobStore, WriteOutcome

__all__ = [
    "TERMINAL_STATUSES",
    "BatchWriter",
    "ControlRequest",
    "ControlToken",
    "ErrorLog",
    "InvalidTransitionError",
    "JobAlreadyRunningError",
    "JobController",
    "JobCounters",
    "JobEventBus",
    "JobNotFoundError",
    "JobRecord",
    "JobSetupError",
    "JobStatus",
    "JobStore",
    "MappingSetNotFoundError",
    "ProgressReporter",
    "ProgressSnapshot",
    "ResumeInconsistencyError",
    "SourceUnavailableError",
    "SyncEngineError",
    "UnknownTargetError",
    "WriteOutcome",
    "assert_transition",
    "can_transition",
]
