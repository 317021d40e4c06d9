"""
Raw Visitor List Endpoint

Paged listing of canonical visitor events from the raw event store.
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from footfall.database.event_store import EventStore
from ..dependencies import check_range, get_event_store, parse_scope

router = APIRouter()

MAX_PAGE_SIZE = 1000


class VisitorItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    visitor_id: str
    timestamp: datetime
    day_date: date
    store_id: str
    store_name: Optional[str]
    gender: str
    age: Optional[int]
    day_of_week: str
    smile: bool


class VisitorListResponse(BaseModel):
    """Paginated visitor list"""
    model_config = ConfigDict(populate_by_name=True)

    items: List[VisitorItem]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    total_pages: int = Field(alias="totalPages")


@router.get("/list", response_model=VisitorListResponse)
async def list_visitors(
    start: date,
    end: date,
    device_id: Optional[str] = Query(None, alias="deviceId"),
    page: int = 1,
    page_size: int = Query(40, alias="pageSize"),
    events: EventStore = Depends(get_event_store),
) -> VisitorListResponse:
    """Visitor events in [start, end], newest first"""
    check_range(start, end)
    scope = parse_scope(device_id)
    page = max(1, page)
    page_size = min(max(1, page_size), MAX_PAGE_SIZE)

    result = await events.query_range(start, end, scope, page=page, page_size=page_size)
    return VisitorListResponse(
        items=[VisitorItem.model_validate(row) for row in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
    )
