"""
Raw Event Store

Idempotent bulk insert and paginated range reads over ``visitor_events``.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from footfall.domain import StoreScope
from .connection import get_db, insert_for
from .models import VisitorEvent

logger = structlog.get_logger(__name__)


@dataclass
class VisitorPage:
    """One page of raw visitor events plus the size of the full result"""
    items: List[VisitorEvent] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 40

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


class EventStore:
    """
    Persistence for raw visitor events.

    Duplicate (visitor_id, timestamp) pairs are dropped by the database,
    so refreshing a day any number of times stores each visit once.
    """

    chunk_size = 1000

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    async def insert_events(self, records: Sequence[Mapping[str, Any]]) -> None:
        """Insert canonical rows, ignoring natural-key conflicts"""
        if not records:
            return

        async with get_db(self._session_factory) as db:
            for i in range(0, len(records), self.chunk_size):
                chunk: List[Dict[str, Any]] = [dict(r) for r in records[i:i + self.chunk_size]]
                stmt = insert_for(db, VisitorEvent).values(chunk)
                stmt = stmt.on_conflict_do_nothing(index_elements=["visitor_id", "timestamp"])
                await db.execute(stmt)

        logger.debug("Visitor events written", attempted=len(records))

    async def query_range(
        self,
        start_day: date,
        end_day: date,
        scope: StoreScope,
        page: int = 1,
        page_size: int = 40,
    ) -> VisitorPage:
        """
        Newest-first page of events recorded between two days (inclusive).

        ``AllStores`` applies no store filter.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        conditions = [
            VisitorEvent.day_date >= start_day,
            VisitorEvent.day_date <= end_day,
        ]
        if not scope.is_all:
            conditions.append(VisitorEvent.store_id == scope.store_id)

        async with get_db(self._session_factory) as db:
            total = await db.scalar(
                select(func.count()).select_from(VisitorEvent).where(*conditions)
            )
            result = await db.execute(
                select(VisitorEvent)
                .where(*conditions)
                .order_by(VisitorEvent.timestamp.desc(), VisitorEvent.visitor_id)
                .limit(page_size)
                .offset((page - 1) * page_size)
            )
            items = list(result.scalars().all())

        return VisitorPage(items=items, total=int(total or 0), page=page, page_size=page_size)
