"""Throttled progress persistence and per-job change notifications."""

import asyncio
import time
import uuid
from collections.abc import Callable
from typing import Any

from loguru import logger

from leadsync.lib.sync_engine.state import ProgressSnapshot
from leadsync.lib.sync_engine.store import JobStore


class JobEventBus:
    """Fan out job status payloads to observers subscribed by job id.

    Each subscriber gets its own bounded queue; a slow subscriber loses
    its oldest pending payloads rather than blocking the job.

    Args:
        maxsize: Per-subscriber queue size.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._maxsize = maxsize
        self._subscribers: dict[str, set[asyncio.Queue[dict[str, Any]]]] = {}

    def subscribe(self, job_id: uuid.UUID | str) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.setdefault(str(job_id), set()).add(queue)
        return queue

    def unsubscribe(self, job_id: uuid.UUID | str, queue: asyncio.Queue[dict[str, Any]]) -> None:
        queues = self._subscribers.get(str(job_id))
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[str(job_id)]

    def subscriber_count(self, job_id: uuid.UUID | str) -> int:
        return len(self._subscribers.get(str(job_id), ()))

    def publish(self, job_id: uuid.UUID | str, payload: dict[str, Any]) -> None:
        """Deliver a payload to every subscriber of ``job_id``."""
        for queue in list(self._subscribers.get(str(job_id), ())):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(payload)


class ProgressReporter:
    """Owns the heartbeat timer and the single write path for job progress.

    Args:
        store: Job state store.
        job_id: Job being reported.
        interval: Minimum seconds between throttled flushes.
        clock: Monotonic clock (injectable for tests).
        bus: Optional event bus notified after every persist.  Subscribers
            receive the job's full status payload, re-read from the store.
    """

    def __init__(
        self,
        store: JobStore,
        job_id: uuid.UUID,
        *,
        interval: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        bus: JobEventBus | None = None,
    ) -> None:
        self.store = store
        self.job_id = job_id
        self.interval = interval
        self.clock = clock
        self.bus = bus
        self.flush_count = 0
        self._last_flush = clock()

    def due(self) -> bool:
        return self.clock() - self._last_flush >= self.interval

    async def maybe_flush(self, snapshot: ProgressSnapshot) -> bool:
        """Persist ``snapshot`` if the heartbeat interval has elapsed.

        Returns:
            True if a flush happened.
        """
        if not self.due():
            return False
        await self.flush(snapshot)
        return True

    async def flush(self, snapshot: ProgressSnapshot) -> None:
        """Persist ``snapshot`` now and notify observers."""
        await self.store.save_progress(self.job_id, snapshot)
        await self.notify(snapshot)

    async def notify(self, snapshot: ProgressSnapshot) -> None:
        """Restart the heartbeat timer and publish the persisted job state."""
        self._last_flush = self.clock()
        self.flush_count += 1
        logger.debug(
            f"Job {self.job_id} heartbeat: processed={snapshot.counters.processed} "
            f"succeeded={snapshot.counters.succeeded} failed={snapshot.counters.failed} "
            f"skipped={snapshot.counters.skipped}"
        )
        if self.bus is not None and self.bus.subscriber_count(self.job_id):
            self.bus.publish(self.job_id, await self.store.load_status(self.job_id))
