"""
Unit Tests - Refresh Scheduler
"""
import asyncio
from datetime import date

import pytest

from footfall.domain import ALL_STORES, Store
from footfall.ingestion.upstream_client import UpstreamError
from footfall.orchestration.scheduler import RefreshScheduler

TODAY = date(2025, 12, 3)


class RecordingRefresh:
    """Refresh callable that records calls and fails on chosen days"""

    def __init__(self, failing=()):
        self.calls = []
        self.failing = set(failing)
        self.gate = None

    async def __call__(self, day, scope):
        if self.gate is not None:
            await self.gate.wait()
        self.calls.append((day, scope))
        if day in self.failing:
            raise UpstreamError(500, "boom")


class StoppingTicker:
    """Records sleeps and parks forever after ``limit`` of them"""

    def __init__(self, limit: int):
        self.limit = limit
        self.sleeps = []
        self.parked = asyncio.Event()

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if len(self.sleeps) >= self.limit:
            self.parked.set()
            await asyncio.Event().wait()


def make_scheduler(refresh, clock, **kwargs) -> RefreshScheduler:
    return RefreshScheduler(refresh, clock=clock, **kwargs)


class TestQueue:
    """Tests for the background refresh queue"""

    async def test_worker_runs_queued_job(self, clock):
        """A queued job is picked up by a worker"""
        refresh = RecordingRefresh()
        scheduler = make_scheduler(refresh, clock)
        await scheduler.start(scheduled=False)

        assert scheduler.enqueue(TODAY, ALL_STORES) is True
        await asyncio.wait_for(scheduler.join(), timeout=5)

        assert refresh.calls == [(TODAY, ALL_STORES)]
        assert scheduler.pending == 0
        await scheduler.stop()

    async def test_pending_key_is_deduplicated(self, clock):
        """The same (day, scope) waits in the queue only once"""
        refresh = RecordingRefresh()
        scheduler = make_scheduler(refresh, clock)

        assert scheduler.enqueue(TODAY, ALL_STORES) is True
        assert scheduler.enqueue(TODAY, ALL_STORES) is False
        assert scheduler.enqueue(TODAY, Store("4201")) is True

        await scheduler.start(scheduled=False)
        await asyncio.wait_for(scheduler.join(), timeout=5)

        assert len(refresh.calls) == 2
        await scheduler.stop()

    async def test_full_queue_drops(self, clock):
        """A full queue rejects new keys without raising"""
        scheduler = make_scheduler(RecordingRefresh(), clock, queue_size=1)

        assert scheduler.enqueue(TODAY, ALL_STORES) is True
        assert scheduler.enqueue(date(2025, 12, 2), ALL_STORES) is False
        assert scheduler.pending == 1

    async def test_key_can_be_queued_again_after_it_ran(self, clock):
        """A finished key is no longer pending"""
        refresh = RecordingRefresh()
        scheduler = make_scheduler(refresh, clock)
        await scheduler.start(scheduled=False)

        scheduler.enqueue(TODAY, ALL_STORES)
        await asyncio.wait_for(scheduler.join(), timeout=5)
        scheduler.enqueue(TODAY, ALL_STORES)
        await asyncio.wait_for(scheduler.join(), timeout=5)

        assert len(refresh.calls) == 2
        await scheduler.stop()

    async def test_failures_reported_not_raised(self, clock):
        """Failed jobs go to the error handler and the worker keeps going"""
        errors = []
        refresh = RecordingRefresh(failing={TODAY})
        scheduler = make_scheduler(
            refresh,
            clock,
            workers=1,
            on_error=lambda day, scope, exc: errors.append((day, scope, exc)),
        )
        await scheduler.start(scheduled=False)

        scheduler.enqueue(TODAY, ALL_STORES)
        scheduler.enqueue(date(2025, 12, 2), ALL_STORES)
        await asyncio.wait_for(scheduler.join(), timeout=5)

        assert len(refresh.calls) == 2
        assert len(errors) == 1
        assert errors[0][0] == TODAY
        assert isinstance(errors[0][2], UpstreamError)
        assert scheduler.is_running
        await scheduler.stop()

    async def test_stop_cancels_running_job(self, clock):
        """stop() cancels a job blocked mid-refresh"""
        refresh = RecordingRefresh()
        refresh.gate = asyncio.Event()
        scheduler = make_scheduler(refresh, clock)
        await scheduler.start(scheduled=False)
        scheduler.enqueue(TODAY, ALL_STORES)
        await asyncio.sleep(0)

        await scheduler.stop()

        assert refresh.calls == []
        assert not scheduler.is_running

    async def test_raising_error_handler_does_not_kill_worker(self, clock):
        """A broken error handler is logged and the next job still runs"""
        refresh = RecordingRefresh(failing={TODAY})

        def broken_handler(day, scope, exc):
            raise RuntimeError("handler bug")

        scheduler = make_scheduler(refresh, clock, workers=1, on_error=broken_handler)
        await scheduler.start(scheduled=False)

        scheduler.enqueue(TODAY, ALL_STORES)
        scheduler.enqueue(date(2025, 12, 2), ALL_STORES)
        await asyncio.wait_for(scheduler.join(), timeout=5)

        assert [day for day, _ in refresh.calls] == [TODAY, date(2025, 12, 2)]
        assert scheduler.pending == 0
        await scheduler.stop()

    async def test_stop_discards_queued_jobs(self, clock):
        """stop() empties the queue and forgets pending keys"""
        refresh = RecordingRefresh()
        refresh.gate = asyncio.Event()
        scheduler = make_scheduler(refresh, clock, workers=1)
        await scheduler.start(scheduled=False)
        scheduler.enqueue(TODAY, ALL_STORES)
        scheduler.enqueue(date(2025, 12, 2), ALL_STORES)
        await asyncio.sleep(0)

        await scheduler.stop()

        assert scheduler.pending == 0
        await asyncio.wait_for(scheduler.join(), timeout=5)

        refresh.gate = None
        await scheduler.start(scheduled=False)
        assert scheduler.enqueue(date(2025, 12, 2), ALL_STORES) is True
        await asyncio.wait_for(scheduler.join(), timeout=5)
        assert refresh.calls == [(date(2025, 12, 2), ALL_STORES)]
        await scheduler.stop()


class TestScheduledLoops:
    """Tests for startup backfill and recurring refresh"""

    async def test_backfill_covers_today_and_previous_days(self, clock):
        """Backfill walks back from today and skips failed days"""
        refresh = RecordingRefresh(failing={date(2025, 12, 2)})
        scheduler = make_scheduler(refresh, clock, backfill_days=3)

        refreshed = await scheduler.run_backfill()

        assert [day for day, _ in refresh.calls] == [
            date(2025, 12, 3),
            date(2025, 12, 2),
            date(2025, 12, 1),
            date(2025, 11, 30),
        ]
        assert all(scope == ALL_STORES for _, scope in refresh.calls)
        assert refreshed == 3

    async def test_loop_waits_then_backfills_then_repeats(self, clock):
        """Startup delay, backfill, then one refresh of today per interval"""
        refresh = RecordingRefresh()
        ticker = StoppingTicker(limit=4)
        scheduler = RefreshScheduler(
            refresh,
            clock=clock,
            ticker=ticker,
            backfill_days=2,
            startup_delay_seconds=5,
            refresh_interval_seconds=300,
        )

        await scheduler.start()
        await asyncio.wait_for(ticker.parked.wait(), timeout=5)
        await scheduler.stop()

        assert ticker.sleeps == [5, 300, 300, 300]
        # backfill of 3 days, then today after each completed interval
        assert len(refresh.calls) == 3 + 2
        assert refresh.calls[3:] == [(TODAY, ALL_STORES)] * 2

    async def test_today_not_refreshed_twice_after_backfill(self, clock):
        """The first recurring refresh waits an interval after the backfill"""
        refresh = RecordingRefresh()
        ticker = StoppingTicker(limit=2)
        scheduler = RefreshScheduler(refresh, clock=clock, ticker=ticker, backfill_days=1)

        await scheduler.start()
        await asyncio.wait_for(ticker.parked.wait(), timeout=5)
        await scheduler.stop()

        assert refresh.calls == [(TODAY, ALL_STORES), (date(2025, 12, 2), ALL_STORES)]

    async def test_loop_survives_failures(self, clock):
        """Recurring refreshes continue after a failure"""
        refresh = RecordingRefresh(failing={TODAY})
        ticker = StoppingTicker(limit=3)
        scheduler = RefreshScheduler(refresh, clock=clock, ticker=ticker, backfill_days=0)

        await scheduler.start()
        await asyncio.wait_for(ticker.parked.wait(), timeout=5)
        await scheduler.stop()

        assert refresh.calls == [(TODAY, ALL_STORES)] * 2


def test_from_settings(test_settings):
    """Scheduler picks up the rollup settings"""
    scheduler = RefreshScheduler.from_settings(RecordingRefresh(), test_settings.rollup)

    assert scheduler.workers == test_settings.rollup.workers
    assert scheduler.backfill_days == 3
    assert scheduler.refresh_interval_seconds == 300


def test_workers_must_be_positive():
    """Zero workers is rejected"""
    with pytest.raises(ValueError):
        RefreshScheduler(RecordingRefresh(), workers=0)
