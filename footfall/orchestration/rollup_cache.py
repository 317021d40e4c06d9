"""
Rollup Cache

Read-through cache over the rollup tables. A range read:
1. loads every stored daily rollup for the range in one query
2. refreshes missing days synchronously (the caller waits)
3. queues a background refresh for today's rollup once it is stale,
   while still answering with the stored values
4. merges days and hours into one ``VisitorStats``

A refresh fetches the day upstream, aggregates it, upserts the daily and
hourly rollups and appends the canonical rows to the raw event store.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Protocol, Tuple

import structlog
from prometheus_client import Counter
from pydantic import BaseModel, ConfigDict, Field

from footfall.config import Settings, get_settings
from footfall.database.event_store import EventStore
from footfall.database.models import DailyRollup
from footfall.database.rollup_store import RollupStore
from footfall.domain import (
    AGE_BUCKETS,
    ALL_STORES,
    HOURS_PER_DAY,
    WEEKDAY_COLUMNS,
    WEEKDAY_LABELS,
    Clock,
    Gender,
    StoreScope,
    SystemClock,
    average_age,
    ensure_utc,
    iter_days,
)
from footfall.ingestion.upstream_client import DisplayForceClient
from footfall.transformation.aggregator import RollupSummary, aggregate_visitors
from footfall.transformation.normalizers import to_visitor_records
from .scheduler import RefreshScheduler

logger = structlog.get_logger(__name__)


ROLLUP_LOOKUPS = Counter(
    "footfall_rollup_lookups_total",
    "Daily rollups read for range queries, by cache state",
    ["state"],
)


class RollupUnavailableError(RuntimeError):
    """A refresh completed but the rollup still could not be read back"""


class BackgroundQueue(Protocol):
    def enqueue(self, day: date, scope: StoreScope) -> bool:
        ...


# =============================================================================
# RESPONSE MODEL
# =============================================================================

class GenderHours(BaseModel):
    male: Dict[int, int]
    female: Dict[int, int]


class VisitorStats(BaseModel):
    """Merged statistics for a day range, serialized in the dashboard's camelCase"""

    model_config = ConfigDict(populate_by_name=True)

    total: int
    men: int
    women: int
    average_age: int = Field(alias="averageAge")
    by_day_of_week: Dict[str, int] = Field(alias="byDayOfWeek")
    by_age_group: Dict[str, int] = Field(alias="byAgeGroup")
    by_hour: Dict[int, int] = Field(alias="byHour")
    by_gender_hour: GenderHours = Field(alias="byGenderHour")


def _empty_hours() -> Dict[int, int]:
    return {hour: 0 for hour in range(HOURS_PER_DAY)}


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class RollupCache:
    """
    Serves range statistics from stored rollups, refreshing on demand.

    Example:
        cache = RollupCache(client, RollupStore(), EventStore())
        stats = await cache.get_range_stats(date(2025, 12, 1), date(2025, 12, 7), ALL_STORES)
    """

    def __init__(
        self,
        client: DisplayForceClient,
        rollups: RollupStore,
        events: EventStore,
        background: Optional[BackgroundQueue] = None,
        clock: Optional[Clock] = None,
        staleness_window: timedelta = timedelta(minutes=5),
        unknown_gender: Gender = Gender.FEMALE,
    ):
        self.client = client
        self.rollups = rollups
        self.events = events
        self.background = background
        self.clock = clock or SystemClock()
        self.staleness_window = staleness_window
        self.unknown_gender = unknown_gender

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh_day_for_store(self, day: date, scope: StoreScope = ALL_STORES) -> RollupSummary:
        """
        Rebuild one (day, scope) rollup from upstream.

        The fetch is all-or-nothing: an upstream error propagates before any
        write happens. Rollups are written before raw events.

        Raises:
            UpstreamError: Upstream answered with a non-success status
            UpstreamConfigError: No upstream token configured
        """
        visitors = await self.client.fetch_day(day, scope)
        summary = aggregate_visitors(visitors, self.unknown_gender)

        await self.rollups.upsert_daily(day, scope, summary)
        await self.rollups.upsert_hourly(day, scope, summary.hourly_totals, summary.hourly_gender)
        await self.events.insert_events(to_visitor_records(visitors, scope, self.unknown_gender))

        logger.info(
            "Rollup refreshed",
            day=day.isoformat(),
            scope=scope.key,
            total=summary.total,
            male=summary.male,
            female=summary.female,
        )
        return summary

    async def refresh_range(self, start: date, end: date, scope: StoreScope = ALL_STORES) -> List[date]:
        """Refresh every day in [start, end] in order, stopping at the first failure"""
        days = iter_days(start, end)
        for day in days:
            await self.refresh_day_for_store(day, scope)
        return days

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def _is_stale(self, row: DailyRollup, day: date) -> bool:
        now = ensure_utc(self.clock.now())
        if day != now.date():
            return False
        if row.updated_at is None:
            return True
        return now - ensure_utc(row.updated_at) > self.staleness_window

    def _schedule_background(self, day: date, scope: StoreScope) -> None:
        if self.background is None:
            logger.warning("No background refresher, serving stale rollup", day=day.isoformat(), scope=scope.key)
            return
        self.background.enqueue(day, scope)

    async def _resolve_day(self, day: date, scope: StoreScope, row: Optional[DailyRollup]) -> DailyRollup:
        if row is None:
            ROLLUP_LOOKUPS.labels(state="miss").inc()
            logger.info("Rollup missing, refreshing before answering", day=day.isoformat(), scope=scope.key)
            await self.refresh_day_for_store(day, scope)
            row = (await self.rollups.get_daily([day], scope)).get(day)
            if row is None:
                raise RollupUnavailableError(f"Rollup for {day.isoformat()} ({scope.key}) missing after refresh")
            return row

        if self._is_stale(row, day):
            ROLLUP_LOOKUPS.labels(state="stale").inc()
            self._schedule_background(day, scope)
        else:
            ROLLUP_LOOKUPS.labels(state="hit").inc()
        return row

    async def get_range_stats(self, start: date, end: date, scope: StoreScope = ALL_STORES) -> VisitorStats:
        """
        Statistics for [start, end] (inclusive UTC days) under one scope.

        Raises:
            ValueError: end is before start
            UpstreamError: A missing day could not be fetched
        """
        days = iter_days(start, end)
        stored = await self.rollups.get_daily(days, scope)

        rows: List[Tuple[date, DailyRollup]] = []
        for day in days:
            rows.append((day, await self._resolve_day(day, scope, stored.get(day))))

        return await self._merge(rows, scope)

    async def _merge(self, rows: List[Tuple[date, DailyRollup]], scope: StoreScope) -> VisitorStats:
        total = men = women = age_sum = age_count = 0
        by_age_group = {bucket.label: 0 for bucket in AGE_BUCKETS}
        by_day_of_week = {label: 0 for label in WEEKDAY_LABELS}
        by_hour = _empty_hours()
        male_hours = _empty_hours()
        female_hours = _empty_hours()

        for day, row in rows:
            total += row.total_visitors or 0
            men += row.male or 0
            women += row.female or 0
            age_sum += row.avg_age_sum or 0
            age_count += row.avg_age_count or 0
            for bucket in AGE_BUCKETS:
                by_age_group[bucket.label] += getattr(row, bucket.column) or 0
            for column, label in zip(WEEKDAY_COLUMNS, WEEKDAY_LABELS):
                by_day_of_week[label] += getattr(row, column) or 0

            for hourly in await self.rollups.get_hourly(day, scope):
                by_hour[hourly.hour] += hourly.total or 0
                male_hours[hourly.hour] += hourly.male or 0
                female_hours[hourly.hour] += hourly.female or 0

        return VisitorStats(
            total=total,
            men=men,
            women=women,
            average_age=average_age(age_sum, age_count),
            by_day_of_week=by_day_of_week,
            by_age_group=by_age_group,
            by_hour=by_hour,
            by_gender_hour=GenderHours(male=male_hours, female=female_hours),
        )


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_rollup_cache(
    client: Optional[DisplayForceClient] = None,
    rollups: Optional[RollupStore] = None,
    events: Optional[EventStore] = None,
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> Tuple[RollupCache, RefreshScheduler]:
    """Wire a cache and its background scheduler from settings"""
    settings = settings or get_settings()
    clock = clock or SystemClock()

    cache = RollupCache(
        client=client or DisplayForceClient.from_settings(settings.upstream),
        rollups=rollups or RollupStore(clock=clock),
        events=events or EventStore(),
        clock=clock,
        staleness_window=timedelta(seconds=settings.rollup.staleness_window_seconds),
        unknown_gender=Gender(settings.rollup.unknown_gender_default),
    )
    scheduler = RefreshScheduler.from_settings(cache.refresh_day_for_store, settings.rollup, clock=clock)
    cache.background = scheduler
    return cache, scheduler
