"""Background job supervisor.

Runs each sync job as one supervised asyncio task keyed by job id, with
an explicit lifecycle (start, observe, join) and at most one active task
per job.  Tasks run in the same process as the API server or CLI.
"""

import asyncio
import uuid
from collections.abc import Coroutine
from typing import Any, Protocol

from loguru import logger

from leadsync.lib.sync_engine.control import ControlToken
from leadsync.lib.sync_engine.errors import JobAlreadyRunningError
from leadsync.lib.sync_engine.progress import JobEventBus


class BackgroundJobRunner(Protocol):
    """Protocol for supervised background job execution."""

    def start(self, job_id: uuid.UUID, coro: Coroutine[Any, Any, Any], token: ControlToken) -> asyncio.Task[Any]:
        """Start running ``coro`` for ``job_id``.

        Raises:
            JobAlreadyRunningError: If a task for ``job_id`` is still active.
        """
        ...

    def is_running(self, job_id: uuid.UUID) -> bool:
        """Return True if a task for ``job_id`` is active in this process."""
        ...


class JobSupervisor:
    """In-process supervisor using asyncio tasks.

    Finished tasks are forgotten and any exception they raised is logged,
    so nothing fails silently in the background.
    """

    def __init__(self) -> None:
        self._tasks: dict[uuid.UUID, asyncio.Task[Any]] = {}
        self._tokens: dict[uuid.UUID, ControlToken] = {}

    def start(self, job_id: uuid.UUID, coro: Coroutine[Any, Any, Any], token: ControlToken) -> asyncio.Task[Any]:
        """Start running ``coro`` for ``job_id``.

        Args:
            job_id: The job the task runs.
            coro: The controller coroutine.
            token: Control token read by the controller.

        Returns:
            The created task.

        Raises:
            JobAlreadyRunningError: If a task for ``job_id`` is still active.
        """
        if self.is_running(job_id):
            coro.close()
            msg = f"Job {job_id} is already running"
            raise JobAlreadyRunningError(msg)

        task = asyncio.create_task(coro, name=f"sync-job-{job_id}")
        self._tasks[job_id] = task
        self._tokens[job_id] = token
        task.add_done_callback(lambda t: self._on_done(job_id, t))
        logger.info(f"Started background task for job {job_id}")
        return task

    def _on_done(self, job_id: uuid.UUID, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
            self._tokens.pop(job_id, None)
        if task.cancelled():
            logger.warning(f"Background task for job {job_id} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Background task for job {job_id} raised")
        else:
            logger.info(f"Background task for job {job_id} finished with {task.result()}")

    def is_running(self, job_id: uuid.UUID) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def running_job_ids(self) -> set[uuid.UUID]:
        return {job_id for job_id, task in self._tasks.items() if not task.done()}

    def request_pause(self, job_id: uuid.UUID) -> bool:
        """Flag a running job to pause at its next chunk boundary."""
        token = self._tokens.get(job_id)
        if token is None:
            return False
        token.request_pause()
        return True

    def request_cancel(self, job_id: uuid.UUID) -> bool:
        """Flag a running job to cancel at its next chunk boundary."""
        token = self._tokens.get(job_id)
        if token is None:
            return False
        token.request_cancel()
        return True

    async def join(self, job_id: uuid.UUID) -> Any:
        """Wait for the job's task to finish and return its result.

        Returns None if no task is known for ``job_id``.
        """
        task = self._tasks.get(job_id)
        if task is None:
            return None
        return await asyncio.shield(task)

    async def shutdown(self) -> None:
        """Ask every running job to pause and wait for them to stop."""
        tasks = list(self._tasks.values())
        for job_id in list(self._tokens):
            self.request_pause(job_id)
        if tasks:
            logger.info(f"Waiting for {len(tasks)} background job(s) to pause")
            await asyncio.gather(*tasks, return_exceptions=True)


# Singleton instances for the application
supervisor = JobSupervisor()
event_bus = JobEventBus()
