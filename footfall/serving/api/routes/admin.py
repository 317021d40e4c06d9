"""
Admin Endpoints

Manual rollup refresh for a day range.
"""

from datetime import date
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from footfall.domain import ensure_utc
from footfall.ingestion.upstream_client import UpstreamConfigError, UpstreamError
from footfall.orchestration.rollup_cache import RollupCache
from ..dependencies import check_range, get_rollup_cache, parse_scope, upstream_failure

logger = structlog.get_logger(__name__)
router = APIRouter()


class RefreshResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    days: List[date]
    store_id: str = Field(alias="storeId")


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_rollups(
    start: Optional[date] = None,
    end: Optional[date] = None,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    cache: RollupCache = Depends(get_rollup_cache),
) -> RefreshResponse:
    """
    Rebuild rollups for [start, end] now.

    ``start`` defaults to the current UTC day and ``end`` to ``start``.
    Stops at the first day that fails upstream.
    """
    start = start or ensure_utc(cache.clock.now()).date()
    end = end or start
    check_range(start, end)
    scope = parse_scope(device_id)

    logger.info("Manual refresh requested", start=start.isoformat(), end=end.isoformat(), scope=scope.key)
    try:
        days = await cache.refresh_range(start, end, scope)
    except (UpstreamError, UpstreamConfigError) as e:
        raise upstream_failure(e)
    return RefreshResponse(ok=True, days=days, store_id=scope.key)
