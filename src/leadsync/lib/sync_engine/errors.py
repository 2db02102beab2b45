"""Exception hierarchy for the sync job engine."""


class SyncEngineError(Exception):
    """Base class for job engine errors."""


class JobSetupError(SyncEngineError):
    """A job cannot start: bad source, mapping set, or target."""


class MappingSetNotFoundError(JobSetupError):
    """The referenced mapping set does not exist."""


class UnknownTargetError(JobSetupError):
    """The target descriptor does not name a known table."""


class SourceUnavailableError(SyncEngineError):
    """The source cannot be read (missing file, unreachable remote API).

    Args:
        message: Human-readable error description.
        status_code: Optional HTTP status code from a remote source.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResumeInconsistencyError(SyncEngineError):
    """A paused job's cursor can no longer be honoured."""


class InvalidTransitionError(SyncEngineError):
    """A status change is not allowed from the job's current state.

    Args:
        current: The job's current status.
        requested: The status that was requested.
    """

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move job from {current!r} to {requested!r}")


class JobNotFoundError(SyncEngineError):
    """No job exists with the given id."""


class JobAlreadyRunningError(SyncEngineError):
    """A task for this job id is already active in this process."""


class JobPreemptedError(SyncEngineError):
    """The job row left ``processing`` while its controller was still running.

    Args:
        status: The status the row was moved to.
    """

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"Job was moved to {status!r} by another process")
