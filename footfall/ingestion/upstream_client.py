"""
DisplayForce Upstream Client

Paginated fetch of one UTC day's visitor records, plus the device listing
used to populate the store picker. A non-success response aborts the whole
call: callers get every record for the day or an ``UpstreamError``, never a
partial list. No retries are attempted here.
"""

from datetime import date
from typing import Any, Dict, List, Optional

import httpx
import structlog
from prometheus_client import Counter

from footfall.config import get_settings
from footfall.config.settings import UpstreamSettings
from footfall.domain import ALL_STORES, StoreScope, day_bounds

logger = structlog.get_logger(__name__)


UPSTREAM_REQUESTS = Counter(
    "footfall_upstream_requests_total",
    "Requests sent to the upstream analytics API",
    ["endpoint", "status"],
)

VISITOR_LIST_PATH = "/stats/visitor/list"
DEVICE_LIST_PATH = "/device/list"

# Sent with every visitor list request
VISITOR_FEATURE_FLAGS: Dict[str, Any] = {
    "tracks": True,
    "face_quality": True,
    "glasses": True,
    "facial_hair": True,
    "hair_color": True,
    "hair_type": True,
    "headwear": True,
    "additional_attributes": ["smile", "pitch", "yaw", "x", "y", "height"],
}


def _as_count(value: Any) -> Optional[int]:
    """Declared pagination total as an int; None when absent or unparseable"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


class UpstreamError(Exception):
    """Upstream answered with a non-success status"""

    def __init__(self, status_code: int, body: str, url: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Upstream API error [{status_code}] {body}".strip())


class UpstreamConfigError(RuntimeError):
    """No API token configured"""


class DisplayForceClient:
    """
    Async client for the DisplayForce public API.

    Example:
        client = DisplayForceClient.from_settings()
        visitors = await client.fetch_day(date(2025, 12, 1), Store("4201"))
    """

    def __init__(
        self,
        token: Optional[str],
        base_url: str = "https://api.displayforce.ai/public/v1",
        page_size: int = 500,
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Optional[UpstreamSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DisplayForceClient":
        settings = settings or get_settings().upstream
        token = settings.token.get_secret_value() if settings.token is not None else None
        return cls(
            token=token,
            base_url=settings.base_url,
            page_size=settings.page_size,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    def _client(self) -> httpx.AsyncClient:
        if not self.token:
            raise UpstreamConfigError("DISPLAYFORCE_TOKEN is not configured")
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-API-Token": self.token, "Accept": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _json(response: httpx.Response, endpoint: str) -> Any:
        if not response.is_success:
            UPSTREAM_REQUESTS.labels(endpoint=endpoint, status="error").inc()
            raise UpstreamError(response.status_code, response.text, str(response.request.url))
        try:
            body = response.json()
        except ValueError:
            UPSTREAM_REQUESTS.labels(endpoint=endpoint, status="error").inc()
            raise UpstreamError(response.status_code, "response body is not JSON", str(response.request.url)) from None
        UPSTREAM_REQUESTS.labels(endpoint=endpoint, status="success").inc()
        return body

    def _visitor_query(self, day: date, scope: StoreScope, offset: int) -> Dict[str, Any]:
        start, end = day_bounds(day)
        body: Dict[str, Any] = {
            "start": start,
            "end": end,
            "limit": self.page_size,
            "offset": offset,
            **VISITOR_FEATURE_FLAGS,
        }
        if scope.store_id:
            body["device_id"] = scope.store_id
        return body

    async def fetch_day(self, day: date, scope: StoreScope = ALL_STORES) -> List[Dict[str, Any]]:
        """
        Every visitor record for one UTC day.

        Pages until a short page, until ``pagination.total`` is reached, or
        after the first page when the response carries no pagination block.

        Raises:
            UpstreamError: Any page came back with a non-success status
            UpstreamConfigError: No token configured
        """
        visitors: List[Dict[str, Any]] = []
        offset = 0
        pages = 0

        async with self._client() as client:
            while True:
                response = await client.post(VISITOR_LIST_PATH, json=self._visitor_query(day, scope, offset))
                body = self._json(response, "visitor_list")
                pages += 1

                if not isinstance(body, dict):
                    body = {}
                items = body.get("payload") or body.get("data") or []
                if not isinstance(items, list):
                    items = []
                visitors.extend(items)

                pagination = body.get("pagination")
                if not isinstance(pagination, dict):
                    break
                if len(items) < self.page_size:
                    break
                total = _as_count(pagination.get("total"))
                if total and len(visitors) >= total:
                    break
                offset += self.page_size

        logger.info(
            "Fetched upstream visitors",
            day=day.isoformat(),
            scope=scope.key,
            visitors=len(visitors),
            pages=pages,
        )
        return visitors

    async def list_devices(self) -> List[Dict[str, Any]]:
        """Devices (stores) visible to the token"""
        async with self._client() as client:
            response = await client.get(DEVICE_LIST_PATH)
            body = self._json(response, "device_list")

        if isinstance(body, list):
            return body
        if not isinstance(body, dict):
            return []
        devices = body.get("devices") or body.get("payload") or body.get("data") or []
        return devices if isinstance(devices, list) else []
