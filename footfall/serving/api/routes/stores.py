"""
Store Listing Endpoint

Devices visible to the upstream token, used to populate the store picker.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from footfall.ingestion.upstream_client import DisplayForceClient, UpstreamConfigError, UpstreamError
from ..dependencies import get_upstream_client, upstream_failure

router = APIRouter()


class StoreListResponse(BaseModel):
    devices: List[Dict[str, Any]]
    total: int


@router.get("", response_model=StoreListResponse)
async def list_stores(client: DisplayForceClient = Depends(get_upstream_client)) -> StoreListResponse:
    try:
        devices = await client.list_devices()
    except (UpstreamError, UpstreamConfigError) as e:
        raise upstream_failure(e)
    return StoreListResponse(devices=devices, total=len(devices))
