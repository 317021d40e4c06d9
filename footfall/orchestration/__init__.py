"""
Rollup Orchestration Module
"""
from .rollup_cache import (
    RollupCache,
    RollupUnavailableError,
    VisitorStats,
    create_rollup_cache,
)
from .scheduler import RefreshScheduler

__all__ = [
    "RollupCache",
    "RollupUnavailableError",
    "VisitorStats",
    "create_rollup_cache",
    "RefreshScheduler",
]
