"""
Visitor Aggregator

Turns one day's raw visitor records into the rollup shape stored in
``rollup_daily`` / ``rollup_hourly``. Pure: no I/O, never raises on bad
records. Fields are normalized row by row, then counted with Polars.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

import polars as pl
import structlog

from footfall.domain import (
    AGE_BUCKETS,
    Gender,
    HOURS_PER_DAY,
    WEEKDAY_COLUMNS,
    average_age,
)
from .normalizers import parse_age, parse_gender, parse_timestamp

logger = structlog.get_logger(__name__)

_SCHEMA = {
    "gender": pl.Utf8,
    "age": pl.Int64,
    "weekday": pl.Int8,
    "hour": pl.Int8,
}


def _empty_hours() -> Dict[int, int]:
    return {hour: 0 for hour in range(HOURS_PER_DAY)}


@dataclass
class RollupSummary:
    """Counters for one batch of visitor records"""
    total: int = 0
    male: int = 0
    female: int = 0
    age_sum: int = 0
    age_count: int = 0
    # Events with a missing, non-positive or under-18 age: in no bucket
    age_unbucketed: int = 0
    age_buckets: Dict[str, int] = field(default_factory=lambda: {b.label: 0 for b in AGE_BUCKETS})
    weekdays: Dict[str, int] = field(default_factory=lambda: {c: 0 for c in WEEKDAY_COLUMNS})
    hourly_totals: Dict[int, int] = field(default_factory=_empty_hours)
    hourly_gender: Dict[Gender, Dict[int, int]] = field(
        default_factory=lambda: {Gender.MALE: _empty_hours(), Gender.FEMALE: _empty_hours()}
    )

    @property
    def average_age(self) -> int:
        return average_age(self.age_sum, self.age_count)

    def to_daily_columns(self) -> Dict[str, int]:
        """Column values for a ``DailyRollup`` row"""
        columns = {
            "total_visitors": self.total,
            "male": self.male,
            "female": self.female,
            "avg_age_sum": self.age_sum,
            "avg_age_count": self.age_count,
        }
        for bucket in AGE_BUCKETS:
            columns[bucket.column] = self.age_buckets.get(bucket.label, 0)
        for column in WEEKDAY_COLUMNS:
            columns[column] = self.weekdays.get(column, 0)
        return columns


def _to_frame(events: Iterable[Any], unknown_gender: Gender) -> pl.DataFrame:
    data: Dict[str, List[Any]] = {name: [] for name in _SCHEMA}
    for raw in events:
        if not isinstance(raw, Mapping):
            raw = {}
        timestamp = parse_timestamp(raw)
        data["gender"].append(parse_gender(raw, unknown_gender).value)
        data["age"].append(parse_age(raw))
        data["weekday"].append(timestamp.weekday() if timestamp else None)
        data["hour"].append(timestamp.hour if timestamp else None)
    return pl.DataFrame(data, schema=_SCHEMA)


def _bucket_expr(bucket) -> pl.Expr:
    age = pl.col("age")
    if bucket.high is None:
        condition = age >= bucket.low
    else:
        condition = age.is_between(bucket.low, bucket.high)
    return condition.sum().alias(bucket.column)


def aggregate_visitors(
    events: Iterable[Any],
    unknown_gender: Gender = Gender.FEMALE,
) -> RollupSummary:
    """
    Aggregate raw visitor records into a ``RollupSummary``.

    Every record counts toward total and gender. Age feeds sum/count only
    when positive, and a bucket only when it falls in one. Weekday and hour
    come from the UTC visit start; records without one skip those buckets.

    Args:
        events: Raw upstream records (any order)
        unknown_gender: Gender used for unrecognised ``sex`` codes

    Returns:
        RollupSummary with every bucket present
    """
    df = _to_frame(events, unknown_gender)
    age = pl.col("age")
    gender = pl.col("gender")
    first_bucket_low = min(b.low for b in AGE_BUCKETS)

    counts = df.select(
        pl.len().alias("total"),
        (gender == Gender.MALE.value).sum().alias("male"),
        (gender == Gender.FEMALE.value).sum().alias("female"),
        age.filter(age > 0).sum().alias("age_sum"),
        age.filter(age > 0).count().alias("age_count"),
        (age.is_null() | (age < first_bucket_low)).sum().alias("age_unbucketed"),
        *[_bucket_expr(bucket) for bucket in AGE_BUCKETS],
    ).row(0, named=True)

    summary = RollupSummary(
        total=int(counts["total"] or 0),
        male=int(counts["male"] or 0),
        female=int(counts["female"] or 0),
        age_sum=int(counts["age_sum"] or 0),
        age_count=int(counts["age_count"] or 0),
        age_unbucketed=int(counts["age_unbucketed"] or 0),
    )
    for bucket in AGE_BUCKETS:
        summary.age_buckets[bucket.label] = int(counts[bucket.column] or 0)

    weekday_counts = df.drop_nulls("weekday").group_by("weekday").agg(pl.len().alias("n"))
    for weekday, n in weekday_counts.iter_rows():
        summary.weekdays[WEEKDAY_COLUMNS[weekday]] = int(n)

    hourly = df.drop_nulls("hour").group_by("hour").agg(
        pl.len().alias("total"),
        (gender == Gender.MALE.value).sum().alias("male"),
        (gender == Gender.FEMALE.value).sum().alias("female"),
    )
    for hour, total, male, female in hourly.iter_rows():
        summary.hourly_totals[hour] = int(total)
        summary.hourly_gender[Gender.MALE][hour] = int(male)
        summary.hourly_gender[Gender.FEMALE][hour] = int(female)

    logger.debug(
        "Aggregated visitor batch",
        total=summary.total,
        untimed=summary.total - sum(summary.hourly_totals.values()),
    )
    return summary
