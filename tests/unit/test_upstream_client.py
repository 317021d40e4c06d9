"""
Unit Tests - DisplayForce Upstream Client
"""
import json
from datetime import date

import httpx
import pytest

from footfall.domain import ALL_STORES, Store
from footfall.ingestion.upstream_client import (
    DisplayForceClient,
    UpstreamConfigError,
    UpstreamError,
)

BASE_URL = "https://upstream.test/public/v1"


def make_client(handler, page_size: int = 500, token: str = "test-token") -> DisplayForceClient:
    return DisplayForceClient(
        token=token,
        base_url=BASE_URL,
        page_size=page_size,
        transport=httpx.MockTransport(handler),
    )


def page(count: int, offset: int = 0, total=None) -> dict:
    body = {"payload": [{"id": f"v{offset + i}"} for i in range(count)]}
    if total is not None:
        body["pagination"] = {"total": total, "limit": 500, "offset": offset}
    return body


class TestFetchDay:
    """Tests for DisplayForceClient.fetch_day"""

    async def test_pages_until_short_page(self):
        """Offsets advance by the page size until a short page"""
        requests = []
        sizes = [500, 500, 200]

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            requests.append(body)
            count = sizes[len(requests) - 1]
            return httpx.Response(200, json=page(count, body["offset"], total=1200))

        visitors = await make_client(handler).fetch_day(date(2025, 12, 1))

        assert len(requests) == 3
        assert len(visitors) == 1200
        assert [r["offset"] for r in requests] == [0, 500, 1000]
        assert len({v["id"] for v in visitors}) == 1200

    async def test_request_body_and_headers(self):
        """Day bounds, device, feature flags and token are sent"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("X-API-Token")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=page(3, total=3))

        await make_client(handler).fetch_day(date(2025, 12, 1), Store("4201"))

        body = seen["body"]
        assert seen["url"] == f"{BASE_URL}/stats/visitor/list"
        assert seen["token"] == "test-token"
        assert body["start"] == "2025-12-01T00:00:00Z"
        assert body["end"] == "2025-12-01T23:59:59Z"
        assert body["limit"] == 500
        assert body["device_id"] == "4201"
        assert body["tracks"] is True
        assert "smile" in body["additional_attributes"]

    async def test_all_stores_sends_no_device(self):
        """The all-stores scope omits device_id"""
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=page(1, total=1))

        await make_client(handler).fetch_day(date(2025, 12, 1), ALL_STORES)

        assert "device_id" not in bodies[0]

    async def test_no_pagination_block_means_single_page(self):
        """Without pagination only the first page is read"""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"data": [{"id": str(i)} for i in range(500)]})

        visitors = await make_client(handler).fetch_day(date(2025, 12, 1))

        assert len(calls) == 1
        assert len(visitors) == 500

    async def test_stops_when_total_reached(self):
        """A full page that reaches the declared total ends paging"""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=page(2, total=2))

        visitors = await make_client(handler, page_size=2).fetch_day(date(2025, 12, 1))

        assert len(calls) == 1
        assert len(visitors) == 2

    async def test_string_total_is_coerced(self):
        """A numeric string total is compared as a number"""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=page(2, total="2"))

        visitors = await make_client(handler, page_size=2).fetch_day(date(2025, 12, 1))

        assert len(calls) == 1
        assert len(visitors) == 2

    async def test_unparseable_total_is_ignored(self):
        """A garbage total falls back to paging until a short page"""
        sizes = [2, 1]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            calls.append(body)
            return httpx.Response(200, json=page(sizes[len(calls) - 1], body["offset"], total="many"))

        visitors = await make_client(handler, page_size=2).fetch_day(date(2025, 12, 1))

        assert [c["offset"] for c in calls] == [0, 2]
        assert len(visitors) == 3

    async def test_error_page_aborts_whole_day(self):
        """A failed page raises instead of returning a partial day"""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 2:
                return httpx.Response(503, text="maintenance")
            return httpx.Response(200, json=page(500, total=1200))

        with pytest.raises(UpstreamError) as exc_info:
            await make_client(handler).fetch_day(date(2025, 12, 1))

        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "maintenance"
        assert len(calls) == 2

    async def test_non_json_body(self):
        """A success status with a non-JSON body is an upstream error"""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        with pytest.raises(UpstreamError):
            await make_client(handler).fetch_day(date(2025, 12, 1))

    async def test_missing_token(self):
        """No request is sent without a token"""
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        client = make_client(handler, token="")

        assert client.is_configured is False
        with pytest.raises(UpstreamConfigError):
            await client.fetch_day(date(2025, 12, 1))


class TestListDevices:
    """Tests for DisplayForceClient.list_devices"""

    @pytest.mark.parametrize(
        "body",
        [
            [{"id": 1}, {"id": 2}],
            {"devices": [{"id": 1}, {"id": 2}]},
            {"payload": [{"id": 1}, {"id": 2}]},
        ],
    )
    async def test_shapes(self, body):
        """Bare lists and wrapped device lists are both accepted"""
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path.endswith("/device/list")
            return httpx.Response(200, json=body)

        devices = await make_client(handler).list_devices()

        assert [d["id"] for d in devices] == [1, 2]

    async def test_error(self):
        """Device list errors surface as UpstreamError"""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="bad token")

        with pytest.raises(UpstreamError) as exc_info:
            await make_client(handler).list_devices()

        assert exc_info.value.status_code == 401


def test_from_settings(test_settings):
    """Client is built from the upstream settings"""
    client = DisplayForceClient.from_settings(test_settings.upstream)

    assert client.token == "test-token"
    assert client.base_url == BASE_URL
    assert client.page_size == 500
