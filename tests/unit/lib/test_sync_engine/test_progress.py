"""Tests for the progress reporter, event bus, and control token."""

import uuid
from unittest.mock import AsyncMock

from leadsync.lib.sync_engine.control import ControlToken
from leadsync.lib.sync_engine.progress import JobEventBus, ProgressReporter
from leadsync.lib.sync_engine.state import ControlRequest, JobCounters, JobStatus, ProgressSnapshot


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _snapshot(succeeded: int = 0) -> ProgressSnapshot:
    return ProgressSnapshot(status=JobStatus.PROCESSING, counters=JobCounters(succeeded=succeeded), errors=[])


class TestProgressReporter:
    """Tests for the heartbeat throttle."""

    async def test_flushes_at_most_once_per_interval(self) -> None:
        store = AsyncMock()
        clock = FakeClock()
        reporter = ProgressReporter(store, uuid.uuid4(), interval=2.0, clock=clock)

        assert await reporter.maybe_flush(_snapshot(1)) is False
        clock.now = 1.9
        assert await reporter.maybe_flush(_snapshot(2)) is False
        clock.now = 2.0
        assert await reporter.maybe_flush(_snapshot(3)) is True
        clock.now = 3.0
        assert await reporter.maybe_flush(_snapshot(4)) is False

        assert store.save_progress.await_count == 1
        assert reporter.flush_count == 1

    async def test_flush_bypasses_throttle(self) -> None:
        store = AsyncMock()
        reporter = ProgressReporter(store, uuid.uuid4(), interval=60.0, clock=FakeClock())
        await reporter.flush(_snapshot())
        await reporter.flush(_snapshot())
        assert store.save_progress.await_count == 2

    async def test_flush_publishes_persisted_status(self) -> None:
        bus = JobEventBus()
        job_id = uuid.uuid4()
        queue = bus.subscribe(job_id)
        store = AsyncMock()
        store.load_status.return_value = {"id": str(job_id), "status": "processing", "pause_reason": None}
        reporter = ProgressReporter(store, job_id, clock=FakeClock(), bus=bus)

        await reporter.flush(_snapshot(5))

        store.save_progress.assert_awaited_once()
        store.load_status.assert_awaited_once_with(job_id)
        assert queue.get_nowait() == {"id": str(job_id), "status": "processing", "pause_reason": None}

    async def test_no_status_read_without_subscribers(self) -> None:
        store = AsyncMock()
        reporter = ProgressReporter(store, uuid.uuid4(), clock=FakeClock(), bus=JobEventBus())

        await reporter.flush(_snapshot(5))

        store.load_status.assert_not_awaited()


class TestJobEventBus:
    """Tests for JobEventBus fan-out."""

    def test_publish_reaches_only_that_job(self) -> None:
        bus = JobEventBus()
        a, b = uuid.uuid4(), uuid.uuid4()
        queue_a = bus.subscribe(a)
        queue_b = bus.subscribe(b)
        bus.publish(a, {"n": 1})
        assert queue_a.qsize() == 1
        assert queue_b.empty()

    def test_full_queue_drops_oldest(self) -> None:
        bus = JobEventBus(maxsize=2)
        job_id = uuid.uuid4()
        queue = bus.subscribe(job_id)
        for n in range(3):
            bus.publish(job_id, {"n": n})
        assert [queue.get_nowait()["n"] for _ in range(2)] == [1, 2]

    def test_unsubscribe(self) -> None:
        bus = JobEventBus()
        job_id = uuid.uuid4()
        queue = bus.subscribe(job_id)
        assert bus.subscriber_count(job_id) == 1
        bus.unsubscribe(job_id, queue)
        assert bus.subscriber_count(job_id) == 0
        bus.publish(job_id, {"n": 1})


class TestControlToken:
    """Tests for ControlToken precedence."""

    def test_cancel_overrides_pause(self) -> None:
        token = ControlToken()
        token.request_pause()
        token.request_cancel()
        assert token.requested is ControlRequest.CANCEL

    def test_pause_does_not_override_cancel(self) -> None:
        token = ControlToken()
        token.request_cancel()
        token.request_pause()
        assert token.requested is ControlRequest.CANCEL
        token.clear()
        assert token.requested is None
