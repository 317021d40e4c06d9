"""
Refresh Scheduler

Runs rollup refreshes outside the request path:
- a bounded queue drained by worker tasks (stale-day refreshes)
- a startup backfill of today and the previous few days
- a recurring refresh of today's all-stores rollup

Background failures never reach a caller. Each one is logged, counted in
Prometheus and handed to the optional error handler.
"""

import asyncio
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Set, Tuple

import structlog
from prometheus_client import Counter, Gauge, Histogram

from footfall.config import get_settings
from footfall.config.settings import RollupSettings
from footfall.domain import ALL_STORES, Clock, StoreScope, SystemClock, ensure_utc

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

REFRESH_JOBS = Counter(
    "footfall_refresh_jobs_total",
    "Rollup refreshes run outside the request path",
    ["trigger", "status"],
)

REFRESH_DURATION = Histogram(
    "footfall_refresh_duration_seconds",
    "Time spent refreshing one day's rollup",
    ["trigger"],
)

REFRESH_QUEUE_DEPTH = Gauge(
    "footfall_refresh_queue_depth",
    "Background refreshes waiting for a worker",
)

REFRESH_DROPPED = Counter(
    "footfall_refresh_dropped_total",
    "Background refreshes rejected because the queue was full",
)


RefreshFn = Callable[[date, StoreScope], Awaitable[Any]]
ErrorHandler = Callable[[date, StoreScope, BaseException], None]
RefreshKey = Tuple[date, str]


class Ticker(Protocol):
    """Waits between scheduled runs; replaced in tests"""

    async def sleep(self, seconds: float) -> None:
        ...


class AsyncioTicker:
    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class RefreshScheduler:
    """
    Background refresh runner.

    ``enqueue`` never blocks and never raises: a key that is already waiting
    or running is skipped, and a full queue drops the request (the stale
    rollup keeps being served until the next request asks again).

    Example:
        scheduler = RefreshScheduler(cache.refresh_day_for_store)
        await scheduler.start()
        scheduler.enqueue(date.today(), ALL_STORES)
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        refresh: RefreshFn,
        clock: Optional[Clock] = None,
        ticker: Optional[Ticker] = None,
        queue_size: int = 100,
        workers: int = 2,
        refresh_interval_seconds: float = 300,
        backfill_days: int = 3,
        startup_delay_seconds: float = 5.0,
        on_error: Optional[ErrorHandler] = None,
    ):
        if workers < 1:
            raise ValueError("workers must be positive")
        self._refresh = refresh
        self.clock = clock or SystemClock()
        self.ticker = ticker or AsyncioTicker()
        self.workers = workers
        self.refresh_interval_seconds = refresh_interval_seconds
        self.backfill_days = backfill_days
        self.startup_delay_seconds = startup_delay_seconds
        self.on_error = on_error

        self._queue: "asyncio.Queue[Tuple[date, StoreScope]]" = asyncio.Queue(maxsize=queue_size)
        self._pending: Set[RefreshKey] = set()
        self._tasks: List[asyncio.Task] = []
        self._running = False

    @classmethod
    def from_settings(
        cls,
        refresh: RefreshFn,
        settings: Optional[RollupSettings] = None,
        clock: Optional[Clock] = None,
    ) -> "RefreshScheduler":
        settings = settings or get_settings().rollup
        return cls(
            refresh,
            clock=clock,
            queue_size=settings.queue_size,
            workers=settings.workers,
            refresh_interval_seconds=settings.refresh_interval_seconds,
            backfill_days=settings.backfill_days,
            startup_delay_seconds=settings.startup_delay_seconds,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._pending)

    # -------------------------------------------------------------------------
    # Queue
    # -------------------------------------------------------------------------

    def enqueue(self, day: date, scope: StoreScope) -> bool:
        """
        Ask for a background refresh of one (day, scope).

        Returns:
            True if the job was queued, False if it was already pending or
            the queue was full
        """
        key = (day, scope.key)
        if key in self._pending:
            logger.debug("Refresh already pending", day=day.isoformat(), scope=scope.key)
            return False
        try:
            self._queue.put_nowait((day, scope))
        except asyncio.QueueFull:
            REFRESH_DROPPED.inc()
            logger.warning(
                "Refresh queue full, dropping request",
                day=day.isoformat(),
                scope=scope.key,
                queue_size=self._queue.maxsize,
            )
            return False
        self._pending.add(key)
        REFRESH_QUEUE_DEPTH.set(self._queue.qsize())
        return True

    async def join(self) -> None:
        """Wait until every queued job has finished"""
        await self._queue.join()

    async def _worker(self, worker_id: int) -> None:
        while True:
            day, scope = await self._queue.get()
            REFRESH_QUEUE_DEPTH.set(self._queue.qsize())
            try:
                await self.run_refresh(day, scope, trigger="background")
            finally:
                self._pending.discard((day, scope.key))
                self._queue.task_done()

    # -------------------------------------------------------------------------
    # Single refresh
    # -------------------------------------------------------------------------

    async def run_refresh(self, day: date, scope: StoreScope, trigger: str) -> bool:
        """
        Refresh one (day, scope), reporting instead of raising.

        Returns:
            True on success
        """
        start_time = asyncio.get_running_loop().time()
        try:
            await self._refresh(day, scope)
        except Exception as e:
            REFRESH_JOBS.labels(trigger=trigger, status="error").inc()
            logger.error(
                "Rollup refresh failed",
                trigger=trigger,
                day=day.isoformat(),
                scope=scope.key,
                error=str(e),
                error_type=type(e).__name__,
            )
            if self.on_error is not None:
                try:
                    self.on_error(day, scope, e)
                except Exception:
                    logger.exception("Refresh error handler failed", day=day.isoformat(), scope=scope.key)
            return False

        REFRESH_DURATION.labels(trigger=trigger).observe(asyncio.get_running_loop().time() - start_time)
        REFRESH_JOBS.labels(trigger=trigger, status="success").inc()
        return True

    # -------------------------------------------------------------------------
    # Scheduled loops
    # -------------------------------------------------------------------------

    def today(self) -> date:
        return ensure_utc(self.clock.now()).date()

    async def run_backfill(self, days_back: Optional[int] = None) -> int:
        """
        Refresh the all-stores rollup for today and the previous ``days_back`` days.

        Days run one after another; a failed day is logged and skipped.

        Returns:
            Number of days refreshed successfully
        """
        days_back = self.backfill_days if days_back is None else days_back
        today = self.today()
        refreshed = 0
        for offset in range(days_back + 1):
            day = today - timedelta(days=offset)
            if await self.run_refresh(day, ALL_STORES, trigger="backfill"):
                refreshed += 1
        logger.info("Startup backfill finished", days=days_back + 1, refreshed=refreshed)
        return refreshed

    async def refresh_today(self) -> bool:
        return await self.run_refresh(self.today(), ALL_STORES, trigger="scheduled")

    async def _scheduled_loop(self) -> None:
        await self.ticker.sleep(self.startup_delay_seconds)
        # Backfill already covers today; the first recurring run waits a full interval
        await self.run_backfill()
        while True:
            await self.ticker.sleep(self.refresh_interval_seconds)
            await self.refresh_today()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, scheduled: bool = True) -> None:
        """
        Start the queue workers and, when ``scheduled``, the backfill and
        recurring refresh loop.
        """
        if self._running:
            return
        self._running = True
        for worker_id in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(worker_id)))
        if scheduled:
            self._tasks.append(asyncio.create_task(self._scheduled_loop()))
        logger.info(
            "Refresh scheduler started",
            workers=self.workers,
            scheduled=scheduled,
            refresh_interval_seconds=self.refresh_interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel workers and loops; queued jobs are discarded"""
        if not self._running:
            return
        logger.info("Stopping refresh scheduler")
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            discarded += 1
        self._pending.clear()
        REFRESH_QUEUE_DEPTH.set(0)
        logger.info("Refresh scheduler stopped", discarded=discarded)
