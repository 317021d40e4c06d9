"""
Visitor Statistics Endpoint

Range statistics served from the rollup cache.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from footfall.ingestion.upstream_client import UpstreamConfigError, UpstreamError
from footfall.orchestration.rollup_cache import RollupCache, RollupUnavailableError, VisitorStats
from ..dependencies import check_range, get_rollup_cache, parse_scope, upstream_failure

router = APIRouter()


@router.get("/visitors", response_model=VisitorStats)
async def visitor_stats(
    start: date,
    end: date,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    cache: RollupCache = Depends(get_rollup_cache),
) -> VisitorStats:
    """
    Merged visitor statistics for [start, end] (UTC days).

    Missing days are fetched before answering; a stale rollup for today is
    served as-is while a background refresh runs.
    """
    check_range(start, end)
    scope = parse_scope(device_id)
    try:
        return await cache.get_range_stats(start, end, scope)
    except (UpstreamError, UpstreamConfigError) as e:
        raise upstream_failure(e)
    except RollupUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
