"""
Route Dependencies

Services are built once in the application lifespan and stored on
``app.state``; routes receive them through these providers so tests can
swap in their own instances.
"""

from datetime import date
from typing import Optional

from fastapi import HTTPException, Request

from footfall.database.event_store import EventStore
from footfall.domain import StoreScope
from footfall.ingestion.upstream_client import DisplayForceClient, UpstreamConfigError, UpstreamError
from footfall.orchestration.rollup_cache import RollupCache


def get_rollup_cache(request: Request) -> RollupCache:
    return request.app.state.rollup_cache


def get_event_store(request: Request) -> EventStore:
    return request.app.state.event_store


def get_upstream_client(request: Request) -> DisplayForceClient:
    return request.app.state.upstream_client


def parse_scope(device_id: Optional[str]) -> StoreScope:
    """Store scope from the ``deviceId`` query parameter"""
    try:
        return StoreScope.parse(device_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def check_range(start: date, end: date) -> None:
    if end < start:
        raise HTTPException(status_code=400, detail="end must not be before start")


def upstream_failure(error: Exception) -> HTTPException:
    """HTTP error for a failed upstream call"""
    if isinstance(error, UpstreamConfigError):
        return HTTPException(status_code=500, detail=str(error))
    if isinstance(error, UpstreamError):
        return HTTPException(
            status_code=502,
            detail={"error": "upstream request failed", "status": error.status_code, "body": error.body},
        )
    return HTTPException(status_code=500, detail=str(error))
