"""
Domain Vocabulary

Value types shared by ingestion, aggregation, storage and serving:
the store partition key, the canonical gender enum and the fixed
age/weekday bucket layouts used by every rollup.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Protocol


# =============================================================================
# STORE SCOPE
# =============================================================================

ALL_STORES_KEY = "all"


class StoreScope:
    """
    Partition key for rollups: either every store or one store.

    Scopes compare structurally, so ``AllStores() == ALL_STORES`` and
    ``Store("42") == Store("42")``. ``key`` is the non-null value persisted
    in the rollup tables.
    """

    key: str
    store_id: Optional[str]

    @property
    def is_all(self) -> bool:
        return isinstance(self, AllStores)

    @staticmethod
    def parse(value: Optional[str]) -> "StoreScope":
        """Build a scope from an optional request value ("all" or empty means every store)"""
        if value is None:
            return ALL_STORES
        value = str(value).strip()
        if not value or value.lower() == ALL_STORES_KEY:
            return ALL_STORES
        return Store(value)

    @staticmethod
    def from_key(key: str) -> "StoreScope":
        """Inverse of ``scope.key``"""
        if key == ALL_STORES_KEY:
            return ALL_STORES
        return Store(key)


@dataclass(frozen=True)
class AllStores(StoreScope):
    """Every store aggregated together"""

    @property
    def key(self) -> str:
        return ALL_STORES_KEY

    @property
    def store_id(self) -> Optional[str]:
        return None

    def __str__(self) -> str:
        return ALL_STORES_KEY


@dataclass(frozen=True)
class Store(StoreScope):
    """A single store, identified by its upstream device id"""

    id: str

    def __post_init__(self) -> None:
        if not self.id or self.id.lower() == ALL_STORES_KEY:
            raise ValueError(f"Invalid store id: {self.id!r}")

    @property
    def key(self) -> str:
        return self.id

    @property
    def store_id(self) -> Optional[str]:
        return self.id

    def __str__(self) -> str:
        return self.id


ALL_STORES = AllStores()


# =============================================================================
# GENDER
# =============================================================================

class Gender(str, Enum):
    """Canonical two-value gender, stored as a single letter"""
    MALE = "M"
    FEMALE = "F"

    @classmethod
    def from_upstream(cls, value: Any, default: Optional["Gender"] = None) -> "Gender":
        """
        Map any source encoding onto the enum.

        Upstream sends ``sex`` as an integer (1 = male, 2 = female); storage
        and some older feeds use letters or words. Anything unrecognised
        falls back to ``default`` (female unless configured otherwise).
        """
        if default is None:
            default = cls.FEMALE
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            if value == 1:
                return cls.MALE
            if value == 2:
                return cls.FEMALE
            return default
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("m", "male", "masculino"):
                return cls.MALE
            if text in ("f", "female", "feminino"):
                return cls.FEMALE
        return default


# =============================================================================
# BUCKET LAYOUTS
# =============================================================================

class AgeBucket(NamedTuple):
    label: str
    column: str
    low: int
    high: Optional[int]


AGE_BUCKETS: List[AgeBucket] = [
    AgeBucket("18-25", "age_18_25", 18, 25),
    AgeBucket("26-35", "age_26_35", 26, 35),
    AgeBucket("36-45", "age_36_45", 36, 45),
    AgeBucket("46-60", "age_46_60", 46, 60),
    AgeBucket("60+", "age_60_plus", 61, None),
]

# Indexed by date.weekday() (Monday == 0)
WEEKDAY_COLUMNS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

# Labels the dashboard renders, same order as WEEKDAY_COLUMNS
WEEKDAY_LABELS = ("Seg", "Ter", "Qua", "Qui", "Sex", "Sáb", "Dom")

HOURS_PER_DAY = 24


def average_age(age_sum: int, age_count: int) -> int:
    """Mean age rounded half up; 0 when no age was usable"""
    if age_count <= 0:
        return 0
    return math.floor(age_sum / age_count + 0.5)


# =============================================================================
# UTC DAY HELPERS
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Clock(Protocol):
    """Source of the current instant; swapped for a fixed clock in tests"""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return utc_now()


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops the offset)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iter_days(start: date, end: date) -> List[date]:
    """Inclusive list of calendar days from start to end"""
    if end < start:
        raise ValueError(f"end ({end}) is before start ({start})")
    days = []
    current = start
    while current <= end:
        days.append(current)
        current += timedelta(days=1)
    return days


def day_bounds(day: date) -> tuple:
    """ISO-8601 UTC window covering one calendar day"""
    iso = day.isoformat()
    return f"{iso}T00:00:00Z", f"{iso}T23:59:59Z"
