"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_session_factory
from .event_store import EventStore, VisitorPage
from .models import Base, DailyRollup, HourlyRollup, VisitorEvent
from .rollup_store import RollupStore

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_session_factory",
    "EventStore",
    "VisitorPage",
    "RollupStore",
    "Base",
    "DailyRollup",
    "HourlyRollup",
    "VisitorEvent",
]
