"""
Test Suite Configuration
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from footfall.config import Settings
from footfall.config.settings import DatabaseSettings, RollupSettings, UpstreamSettings
from footfall.database.connection import create_session_factory
from footfall.database.event_store import EventStore
from footfall.database.models import Base
from footfall.database.rollup_store import RollupStore
from footfall.domain import StoreScope
from footfall.ingestion.upstream_client import UpstreamError


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeUpstream:
    """
    Stands in for DisplayForceClient: serves canned visitors per day and
    records every fetch.
    """

    def __init__(self, visitors_by_day: Optional[Dict[date, List[Dict[str, Any]]]] = None):
        self.visitors_by_day = visitors_by_day or {}
        self.failing_days: Dict[date, Exception] = {}
        self.calls: List[tuple] = []
        self.devices: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def fetch_day(self, day: date, scope: StoreScope) -> List[Dict[str, Any]]:
        self.calls.append((day, scope))
        if day in self.failing_days:
            raise self.failing_days[day]
        visitors = self.visitors_by_day.get(day, [])
        if scope.store_id:
            visitors = [v for v in visitors if str(v["tracks"][0]["device_id"]) == scope.store_id]
        return visitors

    def fail(self, day: date, status_code: int = 503) -> None:
        self.failing_days[day] = UpstreamError(status_code, "upstream unavailable")

    async def list_devices(self) -> List[Dict[str, Any]]:
        return self.devices


def make_visitor(
    visitor_id: str,
    start: str,
    sex: Any = 1,
    age: Any = 30,
    device_id: Any = 4201,
    smile: str = "no",
) -> Dict[str, Any]:
    """Raw visitor record shaped like the upstream list payload"""
    return {
        "id": visitor_id,
        "start": start,
        "end": start,
        "sex": sex,
        "age": age,
        "tracks": [{"id": f"trk-{visitor_id}", "device_id": device_id, "start": start}],
        "additional_attributes": {"smile": smile},
    }


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 12, 3, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now) -> FixedClock:
    return FixedClock(now)


@pytest.fixture
def visitor_factory() -> Callable[..., Dict[str, Any]]:
    return make_visitor


@pytest.fixture
def sample_visitors() -> List[Dict[str, Any]]:
    """One day of visits across two stores (Monday 2025-12-01)"""
    return [
        make_visitor("v1", "2025-12-01T09:15:00Z", sex=1, age=22, device_id=4201, smile="yes"),
        make_visitor("v2", "2025-12-01T09:40:00Z", sex=2, age=31, device_id=4201),
        make_visitor("v3", "2025-12-01T13:05:00Z", sex=2, age=47, device_id=4202),
        make_visitor("v4", "2025-12-01T18:30:00Z", sex=1, age=65, device_id=4202),
        make_visitor("v5", "2025-12-01T18:45:00Z", sex=0, age=None, device_id=4201),
    ]


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'footfall.db'}"),
        upstream=UpstreamSettings(token="test-token", base_url="https://upstream.test/public/v1"),
        rollup=RollupSettings(scheduler_enabled=False),
    )


@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite so every session sees the same database"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'footfall.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
def rollup_store(session_factory, clock) -> RollupStore:
    return RollupStore(session_factory, clock=clock)


@pytest.fixture
def event_store(session_factory) -> EventStore:
    return EventStore(session_factory)
