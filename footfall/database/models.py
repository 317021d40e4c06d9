"""
Database Models - Rollup Cache Schema

Fact Tables:
- VisitorEvent: one row per detected visit, keyed by (visitor_id, timestamp)

Aggregate Tables:
- DailyRollup: per (day, store_scope) counters for dashboard range queries
- HourlyRollup: per (day, store_scope, hour) counters, always 24 rows per day

``store_scope`` holds ``StoreScope.key``: "all" for the every-store rollup,
otherwise the upstream device id. It is never NULL, so plain equality and
the primary key cover the "all stores" row as well.
"""

from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# FACT TABLES
# =============================================================================

class VisitorEvent(Base):
    """
    Visitor Event Fact Table

    Immutable record of one visit as reported by the sensor API.
    Inserted with ON CONFLICT DO NOTHING; never updated.
    """
    __tablename__ = "visitor_events"

    visitor_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    day_date: Mapped[date] = mapped_column(Date, nullable=False)

    store_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    store_name: Mapped[Optional[str]] = mapped_column(String(200))

    gender: Mapped[str] = mapped_column(String(1), nullable=False)  # Gender value
    age: Mapped[Optional[int]] = mapped_column(Integer)
    day_of_week: Mapped[str] = mapped_column(String(3), nullable=False)
    smile: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_visitor_events_day", "day_date"),
        Index("ix_visitor_events_store_day", "store_id", "day_date"),
        Index("ix_visitor_events_timestamp", "timestamp"),
    )


# =============================================================================
# AGGREGATE TABLES
# =============================================================================

class DailyRollup(Base):
    """
    Daily Visitor Rollup

    Age is kept as sum + count so ranges merge without averaging averages.
    Each row covers one calendar day, so only that day's weekday column is
    nonzero; summing weekday columns over a range gives the weekly histogram.
    """
    __tablename__ = "rollup_daily"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    store_scope: Mapped[str] = mapped_column(String(100), primary_key=True)

    total_visitors: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    male: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    female: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    avg_age_sum: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    avg_age_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Age buckets
    age_18_25: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    age_26_35: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    age_36_45: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    age_46_60: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    age_60_plus: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Weekday buckets
    monday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tuesday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wednesday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    thursday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    friday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    saturday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sunday: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Audit
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_rollup_daily_scope_day", "store_scope", "day"),
    )


class HourlyRollup(Base):
    """
    Hourly Visitor Rollup

    Written 24 rows at a time; hours without visits are stored as zero.
    """
    __tablename__ = "rollup_hourly"

    day: Mapped[date] = mapped_column(Date, primary_key=True)
    store_scope: Mapped[str] = mapped_column(String(100), primary_key=True)
    hour: Mapped[int] = mapped_column(Integer, primary_key=True)

    total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    male: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    female: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("hour >= 0 AND hour <= 23", name="ck_rollup_hourly_hour"),
    )
