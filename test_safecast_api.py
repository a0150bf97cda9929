#!/usr/bin/env python3
"""
Tests for the Safecast REST API client and the client-side filters,
using httpx.MockTransport in place of the upstream services.
"""

import asyncio
import os
import sys
from datetime import datetime, timezone

import httpx
import pytest

# Add repository root to path for src imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.measurements import BoundingBox, normalize_measurement
from src.safecast_api import (
    HTTPStatusError,
    MalformedResponseError,
    NoResponseError,
    SafecastAPIClient,
    parse_timestamp,
    within_box,
    within_id_range,
    within_radius,
    within_window,
)


def make_client(handler) -> SafecastAPIClient:
    return SafecastAPIClient(api_url="https://api.test", simplemap_url="https://map.test",
                             timeout=5.0, transport=httpx.MockTransport(handler))


def test_latest_markers_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        return httpx.Response(200, json={"markers": [{"id": 1, "lat": 35.0, "lon": 139.0}, "junk"]})

    markers = asyncio.run(make_client(handler).measurements(35.0, 139.0, 1500, 25))
    assert markers == [{"id": 1, "lat": 35.0, "lon": 139.0}]
    assert seen["url"].host == "map.test"
    assert seen["url"].path == "/api/latest"
    assert seen["url"].params["radius_m"] == "1500"
    print("✅ latest readings fetched from simplemap")


def test_transport_failure_is_no_response():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NoResponseError) as excinfo:
        asyncio.run(make_client(handler).devices())
    assert excinfo.value.status_code is None
    print("✅ unreachable upstream raises NoResponseError")


def test_timeout_is_no_response():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(NoResponseError) as excinfo:
        asyncio.run(make_client(handler).devices())
    assert "timeout" in excinfo.value.message
    print("✅ deadline exceeded raises NoResponseError")


def test_non_2xx_is_http_status_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(HTTPStatusError) as excinfo:
        asyncio.run(make_client(handler).tracks())
    assert excinfo.value.status_code == 500
    assert excinfo.value.response_data == {"error": "boom"}
    print("✅ non-2xx raises HTTPStatusError with status and body")


def test_non_json_body_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(MalformedResponseError):
        asyncio.run(make_client(handler).devices())

    def wrong_shape(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"markers": "nope"})

    with pytest.raises(MalformedResponseError):
        asyncio.run(make_client(wrong_shape).measurements(0, 0, 10, 1))
    print("✅ unusable bodies raise MalformedResponseError")


def test_missing_year_is_empty_track_list():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tracks/months/1999/2"
        return httpx.Response(404, text="not found")

    assert asyncio.run(make_client(handler).tracks(year=1999, month=2)) == []

    def index_missing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    with pytest.raises(HTTPStatusError):
        asyncio.run(make_client(index_missing).tracks())
    print("✅ 404 for a year or month means no tracks")


def test_track_path_is_quoted():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["raw_path"] = request.url.raw_path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"markers": []})

    asyncio.run(make_client(handler).track("a b/c", from_id=5))
    assert seen["raw_path"].startswith(b"/api/track/a%20b%2Fc.json")
    assert seen["params"] == {"from": "5"}
    print("✅ track ids are path-quoted and unset bounds omitted")


def test_device_measurements_use_classic_api():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "api.test"
        assert request.url.params["device_id"] == "dev-1"
        return httpx.Response(200, json=[{"id": 1, "value": 30, "unit": "cpm"}])

    rows = asyncio.run(make_client(handler).device_measurements(
        "dev-1", "2024-01-01T00:00:00Z", "2024-01-31T00:00:00Z"))
    assert rows[0]["unit"] == "cpm"
    print("✅ device measurements read from the classic API")


def _markers():
    raw = [
        {"id": 1, "lat": 35.0, "lon": 139.0, "captured_at": "2024-01-01T00:00:00Z"},
        {"id": 2, "lat": 36.0, "lon": 140.0, "captured_at": "2024-01-02T00:00:00+00:00"},
        {"id": 3, "lat": 37.0, "lon": 141.0, "captured_at": "not a date"},
        {"id": "x", "lat": None, "lon": None},
    ]
    return [normalize_measurement(marker, include_uploader=False) for marker in raw]


def test_box_filter_is_inclusive():
    kept = within_box(_markers(), BoundingBox(35.0, 36.0, 139.0, 140.0))
    assert [m.id for m in kept] == [1, 2]
    print("✅ bounding box edges are inclusive")


def test_radius_filter_attaches_distance():
    kept = within_radius(_markers(), 35.0, 139.0, 1500.0)
    assert [m.id for m in kept] == [1]
    assert kept[0].distance_m == 0.0
    print("✅ radius filter keeps readings within the circle")


def test_id_range_filter():
    markers = _markers()
    assert len(within_id_range(markers)) == 4
    assert [m.id for m in within_id_range(markers, from_id=2)] == [2, 3]
    assert [m.id for m in within_id_range(markers, from_id=1, to_id=2)] == [1, 2]
    print("✅ marker id range is inclusive and drops non-numeric ids")


def test_window_filter():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    end = datetime(2024, 1, 1, 23, 59, 59, tzinfo=timezone.utc)
    assert [m.id for m in within_window(_markers(), start, end)] == [1]
    assert parse_timestamp("2024-01-01T00:00:00").tzinfo is not None
    assert parse_timestamp("garbage") is None
    print("✅ capture window filter drops unparseable timestamps")


if __name__ == "__main__":
    print("🚀 Testing Safecast API client")
    print("=" * 50)
    test_latest_markers_request()
    test_transport_failure_is_no_response()
    test_timeout_is_no_response()
    test_non_2xx_is_http_status_error()
    test_non_json_body_is_malformed()
    test_missing_year_is_empty_track_list()
    test_track_path_is_quoted()
    test_device_measurements_use_classic_api()
    test_box_filter_is_inclusive()
    test_radius_filter_attaches_distance()
    test_id_range_filter()
    test_window_filter()
    print("\n🎉 All Safecast API tests passed!")
