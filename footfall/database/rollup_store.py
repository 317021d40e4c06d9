"""
Rollup Store

Keyed upserts and reads for ``rollup_daily`` and ``rollup_hourly``.
Every write goes through INSERT ... ON CONFLICT DO UPDATE on the primary
key, so concurrent refreshes of the same (day, scope) converge on one row
(last write wins) instead of duplicating it.
"""

from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from footfall.domain import Clock, Gender, HOURS_PER_DAY, StoreScope, SystemClock
from footfall.transformation.aggregator import RollupSummary
from .connection import get_db, insert_for
from .models import DailyRollup, HourlyRollup

logger = structlog.get_logger(__name__)

_DAILY_KEY = ("day", "store_scope")
_HOURLY_KEY = ("day", "store_scope", "hour")


class RollupStore:
    """
    Persistence for daily and hourly rollups.

    Example:
        store = RollupStore()
        await store.upsert_daily(day, ALL_STORES, summary)
        rows = await store.get_daily([day], ALL_STORES)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Optional[Clock] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    async def upsert_daily(self, day: date, scope: StoreScope, summary: RollupSummary) -> None:
        """Insert or overwrite the (day, scope) row and bump ``updated_at``"""
        values = {
            "day": day,
            "store_scope": scope.key,
            **summary.to_daily_columns(),
            "updated_at": self._clock.now(),
        }
        async with get_db(self._session_factory) as db:
            stmt = insert_for(db, DailyRollup).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(_DAILY_KEY),
                set_={name: stmt.excluded[name] for name in values if name not in _DAILY_KEY},
            )
            await db.execute(stmt)

        logger.debug("Daily rollup upserted", day=str(day), scope=scope.key, total=summary.total)

    async def upsert_hourly(
        self,
        day: date,
        scope: StoreScope,
        hourly_totals: Mapping[int, int],
        hourly_gender_totals: Mapping[Gender, Mapping[int, int]],
    ) -> None:
        """Write all 24 hour rows; hours missing from the inputs are stored as zero"""
        male = hourly_gender_totals.get(Gender.MALE) or {}
        female = hourly_gender_totals.get(Gender.FEMALE) or {}
        rows = [
            {
                "day": day,
                "store_scope": scope.key,
                "hour": hour,
                "total": int(hourly_totals.get(hour, 0) or 0),
                "male": int(male.get(hour, 0) or 0),
                "female": int(female.get(hour, 0) or 0),
            }
            for hour in range(HOURS_PER_DAY)
        ]
        async with get_db(self._session_factory) as db:
            stmt = insert_for(db, HourlyRollup).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(_HOURLY_KEY),
                set_={
                    "total": stmt.excluded.total,
                    "male": stmt.excluded.male,
                    "female": stmt.excluded.female,
                },
            )
            await db.execute(stmt)

    async def get_daily(self, days: Iterable[date], scope: StoreScope) -> Dict[date, DailyRollup]:
        """Rollups that exist for ``days``, keyed by day"""
        days = list(days)
        if not days:
            return {}
        async with get_db(self._session_factory) as db:
            result = await db.execute(
                select(DailyRollup).where(
                    DailyRollup.store_scope == scope.key,
                    DailyRollup.day.in_(days),
                )
            )
            rows = result.scalars().all()
        return {row.day: row for row in rows}

    async def get_hourly(self, day: date, scope: StoreScope) -> List[HourlyRollup]:
        async with get_db(self._session_factory) as db:
            result = await db.execute(
                select(HourlyRollup)
                .where(
                    HourlyRollup.day == day,
                    HourlyRollup.store_scope == scope.key,
                )
                .order_by(HourlyRollup.hour)
            )
            return list(result.scalars().all())
