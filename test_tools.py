#!/usr/bin/env python3
"""
End-to-end tests for the tool layer and the REST surface.

The database is a recording fake, the Safecast API is the real client on
an httpx.MockTransport, and the clock is fixed, so routing and response
shapes are deterministic.
"""

import asyncio
import json
import os
import sys
from datetime import datetime, timezone

import httpx
import pytest
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.testclient import TestClient

# Add repository root to path for src imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.analytics import AnalyticsEngine, AnalyticsUnavailableError
from src.measurements import BoundingBox
from src.rest import register_routes
from src.routing import BackendRequiredError
from src.safecast_api import SafecastAPIClient
from src.tools import (
    InvalidParameterError,
    NotFoundError,
    ToolContext,
    call,
    classify_error,
    failure,
    result_key,
)
from src.tools.dispatch import TOOLS, _accepted

TOKYO = BoundingBox(35.0, 36.0, 139.0, 140.0)
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class FakeDatabase:
    """Stands in for RadiationDatabase; returns canned rows and records each statement."""

    def __init__(self, rows=None, available=True, realtime="realtime_measurements",
                 tables=(), marker=None):
        self.available = available
        self.rows = list(rows or [])
        self.realtime = realtime
        self.tables = list(tables)
        self.marker = marker
        self.statements = []

    async def run(self, statement):
        self.statements.append(statement.build())
        return [dict(row) for row in self.rows]

    async def count(self, statement):
        statement.build_count()
        return len(self.rows)

    async def fetchrow(self, sql, *args):
        return self.marker

    async def realtime_table(self):
        return self.realtime

    async def table_names(self):
        return self.tables


class RecordingAudit:
    def __init__(self):
        self.records = []
        self.ai_sessions = []

    def record(self, tool_name, params, result_count, duration_ms, client_info="mcp"):
        self.records.append((tool_name, dict(params), result_count, client_info))

    def record_ai_session(self, tool_name, query, duration_ms, error=None):
        self.ai_sessions.append((tool_name, query, error))


def api_returning(markers=None, tracks=None, seen=None) -> SafecastAPIClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path.startswith("/api/tracks"):
            return httpx.Response(200, json={"tracks": tracks or []})
        if request.url.path == "/devices.json":
            return httpx.Response(200, json=[])
        return httpx.Response(200, json={"markers": markers or []})

    return SafecastAPIClient(api_url="https://api.test", simplemap_url="https://map.test",
                             transport=httpx.MockTransport(handler))


def make_context(database=None, api=None, analytics=None, audit=None) -> ToolContext:
    return ToolContext(database=database, api=api or api_returning(), analytics=analytics,
                       audit=audit, clock=lambda: NOW)


def tokyo_rows(n):
    return [{"id": i, "doserate": 0.05 + i / 1000, "lat": 35.0 + i / 100, "lon": 139.0 + i / 100,
             "captured_at": NOW, "device_id": None} for i in range(n)]


def test_area_search_from_database():
    database = FakeDatabase(rows=tokyo_rows(10))
    envelope = asyncio.run(call(make_context(database=database), "search_area",
                                {"min_lat": 35, "max_lat": 36, "min_lon": 139, "max_lon": 140, "limit": 10}))
    assert envelope["source"] == "database"
    assert envelope["count"] <= 10
    assert envelope["total_available"] == 10
    assert envelope["bbox"] == TOKYO.to_payload()
    for measurement in envelope["measurements"]:
        location = measurement["location"]
        assert TOKYO.contains(location["latitude"], location["longitude"])
        assert measurement["unit"] == "µSv/h"
    sql, args = database.statements[0]
    assert args[:4] == [35.0, 36.0, 139.0, 140.0] or set([35.0, 36.0, 139.0, 140.0]) <= set(args)
    assert args[-1] == 10
    print("✅ area search answered by the database inside the box")


def test_area_search_from_api_filters_locally():
    seen = []
    markers = [
        {"id": 1, "lat": 35.5, "lon": 139.5, "value": 0.1, "unit": "usv"},
        {"id": 2, "lat": 36.0, "lon": 140.0, "value": 0.1, "unit": "usv"},
        {"id": 3, "lat": 36.2, "lon": 139.5, "value": 0.1, "unit": "usv"},
        {"id": 4, "lat": 35.5, "lon": 138.9, "value": 0.1, "unit": "usv"},
    ]
    ctx = make_context(database=FakeDatabase(available=False), api=api_returning(markers=markers, seen=seen))
    envelope = asyncio.run(call(ctx, "search_area",
                                {"min_lat": "35", "max_lat": "36", "min_lon": "139", "max_lon": "140"}))
    assert envelope["source"] == "api"
    assert [m["id"] for m in envelope["measurements"]] == [1, 2]
    assert envelope["total_in_bbox"] == 2
    assert envelope["total_fetched"] == 4
    params = seen[0].url.params
    assert float(params["lat"]) == 35.5 and float(params["lon"]) == 139.5
    print("✅ REST API results re-filtered to the box")


def test_radius_filter_on_api_path():
    markers = [
        {"id": 1, "lat": 35.0, "lon": 139.0, "value": 20, "unit": "cpm"},
        {"id": 2, "lat": 35.01, "lon": 139.0, "value": 22, "unit": "cpm"},
        {"id": 3, "lat": 35.02, "lon": 139.0, "value": 25, "unit": "cpm"},
    ]
    ctx = make_context(api=api_returning(markers=markers))
    envelope = asyncio.run(call(ctx, "query_radiation", {"lat": 35.0, "lon": 139.0, "radius_m": 1500}))
    assert envelope["source"] == "api"
    assert [m["id"] for m in envelope["measurements"]] == [1, 2]
    assert all(m["distance_m"] <= 1500 for m in envelope["measurements"])
    assert envelope["query"] == {"lat": 35.0, "lon": 139.0, "radius_m": 1500.0}
    print("✅ readings outside the radius are dropped")


def test_counts_per_second_rows_reported_per_minute():
    rows = [{"id": 9, "value": 42, "unit": "cps", "latitude": 35.1, "longitude": 139.1, "captured_at": NOW}]
    ctx = make_context(database=FakeDatabase(rows=rows))
    envelope = asyncio.run(call(ctx, "query_radiation", {"lat": 35.1, "lon": 139.1}))
    assert envelope["source"] == "database"
    assert envelope["measurements"][0]["unit"] == "cpm"
    assert "counts per minute" in envelope["_ai_hint"]
    print("✅ CPS unit labels corrected to CPM")


def test_database_only_tool_without_database():
    ctx = make_context(database=FakeDatabase(available=False))
    with pytest.raises(BackendRequiredError) as excinfo:
        asyncio.run(call(ctx, "list_spectra", {}))
    status, message = classify_error(excinfo.value)
    assert status == 503
    assert message.startswith("database connection required")

    envelope = failure(message, result_key("list_spectra"))
    assert envelope == {"error": True, "message": message, "count": 0, "source": None, "spectra": []}
    print("✅ database-only tools fail with 503 and a failure envelope")


def test_parameter_validation():
    ctx = make_context(database=FakeDatabase())
    cases = [
        ("query_radiation", {"lat": 91, "lon": 0}),
        ("query_radiation", {"lat": 0, "lon": 0, "radius_m": 10}),
        ("query_radiation", {"lat": "abc", "lon": 0}),
        ("search_area", {"min_lat": 36, "max_lat": 35, "min_lon": 139, "max_lon": 140}),
        ("search_area", {"min_lat": 35, "max_lat": 36}),
        ("list_tracks", {"month": 4}),
        ("get_track", {"track_id": "1", "from": 10, "to": 5}),
        ("sensor_history", {"device_id": "d", "start_date": "2025-02-01", "end_date": "2025-01-01"}),
        ("sensor_history", {"device_id": "d", "start_date": "01/02/2025"}),
        ("top_uploaders", {"limit": 101}),
        ("radiation_info", {"topic": "gossip"}),
        ("search_tracks_by_location", {"country": "atlantis"}),
        ("query_radiation", {}),
        ("query_radiation", {"lat": "nan", "lon": 139}),
        ("query_radiation", {"lat": 35, "lon": "inf"}),
        ("query_radiation", {"lat": 35, "lon": 139, "radius_m": float("nan")}),
        ("search_area", {}),
        ("search_area", {"min_lat": "nan", "max_lat": 36, "min_lon": 139, "max_lon": 140}),
        ("device_history", {}),
        ("sensor_history", {"device_id": "d"}),
        ("get_spectrum", {}),
        ("get_track", {}),
        ("radiation_info", {}),
        ("query_duckdb_logs", {}),
    ]
    for tool, arguments in cases:
        with pytest.raises(InvalidParameterError) as excinfo:
            asyncio.run(call(ctx, tool, arguments))
        assert classify_error(excinfo.value)[0] == 400, (tool, arguments)
    print(f"✅ {len(cases)} invalid requests rejected with 400")


def test_dispatch_aliases_and_audit():
    assert _accepted(TOOLS["list_sensors"], {"type": "pointcast", "junk": 1}) == {"sensor_type": "pointcast"}
    assert _accepted(TOOLS["get_track"], {"from": 1, "to": 2}) == {"from_id": 1, "to_id": 2}

    audit = RecordingAudit()
    ctx = make_context(database=FakeDatabase(rows=tokyo_rows(3)), audit=audit)
    asyncio.run(call(ctx, "query_radiation", {"lat": 35, "lon": 139, "bogus": True}, client_info="rest"))
    with pytest.raises(InvalidParameterError):
        asyncio.run(call(ctx, "query_radiation", {"lat": 95, "lon": 139}))
    with pytest.raises(KeyError):
        asyncio.run(call(ctx, "drop_tables", {}))

    assert audit.records[0] == ("query_radiation", {"lat": 35, "lon": 139}, 3, "rest")
    assert audit.records[1][0] == "query_radiation" and audit.records[1][2] == 0
    assert len(audit.records) == 2
    print("✅ every dispatched call is audited, failures included")


def test_spectrum_lookup():
    ctx = make_context(database=FakeDatabase(rows=[], marker=None))
    with pytest.raises(NotFoundError) as excinfo:
        asyncio.run(call(ctx, "get_spectrum", {"marker_id": 5}))
    assert classify_error(excinfo.value) == (404, "Marker not found")

    ctx = make_context(database=FakeDatabase(rows=[], marker={"id": 5, "has_spectrum": False}))
    envelope = asyncio.run(call(ctx, "get_spectrum", {"marker_id": "5"}))
    assert envelope["available"] is False and envelope["spectrum"] is None

    row = {"spectrum_id": 1, "marker_id": 5, "channels": [1, 2], "channel_count": 2, "lat": 35.0, "lon": 139.0}
    ctx = make_context(database=FakeDatabase(rows=[row]))
    envelope = asyncio.run(call(ctx, "get_spectrum", {"marker_id": 5}))
    assert envelope["available"] is True
    assert envelope["spectrum"]["channels"] == [1.0, 2.0]
    print("✅ spectrum lookup distinguishes missing markers from missing spectra")


def test_sensors_without_realtime_table():
    ctx = make_context(database=FakeDatabase(realtime=None, tables=["markers", "uploads"]))
    envelope = asyncio.run(call(ctx, "list_sensors", {}))
    assert envelope["count"] == 0
    assert envelope["sensors"] == []
    assert envelope["available_tables"] == ["markers", "uploads"]
    print("✅ missing realtime table reported, not raised")


def test_sensor_history_day_bounds():
    database = FakeDatabase(rows=[])
    ctx = make_context(database=database)
    envelope = asyncio.run(call(ctx, "sensor_history", {"device_id": "pc-1", "start_date": "2025-06-01"}))
    assert envelope["period"] == {"start_date": "2025-06-01", "end_date": "2025-06-15"}
    _, args = database.statements[0]
    start = int(datetime(2025, 6, 1, tzinfo=timezone.utc).timestamp())
    end = int(datetime(2025, 6, 15, 23, 59, 59, tzinfo=timezone.utc).timestamp())
    assert start in args and end in args
    print("✅ sensor history covers whole UTC days ending today")


def test_list_tracks_recent_year_from_api():
    tracks = [{"id": 1, "trackID": "a", "lastID": 10}, {"id": 2, "trackID": "b", "lastID": 30},
              {"id": 3, "trackID": "c", "lastID": 20}]
    database = FakeDatabase()
    ctx = make_context(database=database, api=api_returning(tracks=tracks))
    envelope = asyncio.run(call(ctx, "list_tracks", {"year": 2025, "limit": 2}))
    assert envelope["source"] == "api"
    assert [t["track_id"] for t in envelope["tracks"]] == ["b", "c"]
    assert envelope["total_available"] == 3
    assert database.statements == []

    envelope = asyncio.run(call(ctx, "list_tracks", {"year": 2015}))
    assert envelope["source"] == "database"
    print("✅ recent years listed from the API, older years from the database")


def test_analytics_tools():
    ctx = make_context()
    with pytest.raises(AnalyticsUnavailableError) as excinfo:
        asyncio.run(call(ctx, "query_analytics", {}))
    assert classify_error(excinfo.value)[0] == 503

    async def scenario():
        engine = AnalyticsEngine(path=None)
        await engine.initialize()
        audit = RecordingAudit()
        ctx = make_context(analytics=engine, audit=audit)
        try:
            with pytest.raises(InvalidParameterError):
                await call(ctx, "query_duckdb_logs", {"query": "DROP TABLE mcp_query_log"})
            with pytest.raises(AnalyticsUnavailableError):
                await call(ctx, "radiation_stats", {"interval": "month"})
            rows = await call(ctx, "query_duckdb_logs", {"query": "SELECT 1 AS one"})
            usage = await call(ctx, "query_analytics", {})
            health = await call(ctx, "ping", {})
        finally:
            engine.close()
        return rows, usage, health, audit

    rows, usage, health, audit = asyncio.run(scenario())
    assert rows["rows"] == [{"one": 1}] and rows["source"] == "duckdb_local_log"
    assert usage["stats"] == []
    assert health == {"status": "ok", "database": False, "analytics": True,
                      "postgres_attached": False, "api_fallback": True}
    assert [session[0] for session in audit.ai_sessions] == ["radiation_stats", "query_duckdb_logs", "query_analytics"]
    assert audit.ai_sessions[0][2] is not None
    print("✅ analytics tools gated on the engine and reported as AI sessions")


class RouteCollector:
    """Collects routes registered through FastMCP's custom_route decorator."""

    def __init__(self):
        self.routes = []

    def custom_route(self, path, methods):
        def decorator(endpoint):
            self.routes.append(Route(path, endpoint, methods=methods))
            return endpoint
        return decorator


def rest_client(ctx: ToolContext) -> TestClient:
    async def get_context():
        return ctx

    collector = RouteCollector()
    register_routes(collector, get_context)
    return TestClient(Starlette(routes=collector.routes))


def test_rest_surface():
    markers = [{"id": 1, "lat": 35.0, "lon": 139.0, "value": 20, "unit": "cps"}]
    ctx = make_context(database=FakeDatabase(available=False), api=api_returning(markers=markers))
    client = rest_client(ctx)

    response = client.get("/api/radiation", params={"lat": "35", "lon": "139"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    body = response.json()
    assert body["source"] == "api" and body["measurements"][0]["unit"] == "cpm"

    response = client.get("/api/spectrum/5")
    assert response.status_code == 503
    assert response.json()["error"].startswith("database connection required")

    response = client.get("/api/radiation", params={"lat": "north", "lon": "139"})
    assert response.status_code == 400
    assert response.json() == {"error": "lat must be a number"}

    response = client.get("/api/radiation")
    assert response.status_code == 400
    assert response.json() == {"error": "lat is required"}

    response = client.get("/api/area", params={"min_lat": "35", "max_lat": "36"})
    assert response.status_code == 400

    response = client.get("/api/radiation", params={"lat": "nan", "lon": "139"})
    assert response.status_code == 400
    assert response.json() == {"error": "lat must be a finite number"}

    response = client.get("/api/info/dose-rates")
    assert response.status_code == 200
    assert response.json()["topic"] == "dose_rates"

    assert client.post("/api/radiation").status_code == 405
    assert client.options("/api/radiation").status_code == 204
    print("✅ REST routes map tool outcomes onto HTTP status codes")


def test_rest_path_parameter_fills_tool_argument():
    database = FakeDatabase(rows=[])
    client = rest_client(make_context(database=database))
    response = client.get("/api/track/abc123", params={"limit": "5"})
    assert response.status_code == 200
    body = response.json()
    assert body["track_id"] == "abc123"
    _, args = database.statements[0]
    assert "abc123" in args and args[-1] == 5
    print("✅ path segment becomes the tool argument")


if __name__ == "__main__":
    print("🚀 Testing tools and REST surface")
    print("=" * 50)
    test_area_search_from_database()
    test_area_search_from_api_filters_locally()
    test_radius_filter_on_api_path()
    test_counts_per_second_rows_reported_per_minute()
    test_database_only_tool_without_database()
    test_parameter_validation()
    test_dispatch_aliases_and_audit()
    test_spectrum_lookup()
    test_sensors_without_realtime_table()
    test_sensor_history_day_bounds()
    test_list_tracks_recent_year_from_api()
    test_analytics_tools()
    test_rest_surface()
    test_rest_path_parameter_fills_tool_argument()
    print("\n🎉 All tool tests passed!")
