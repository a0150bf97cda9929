#!/usr/bin/env python3
"""
Tests for the source router: availability fallback, database-only
operations, filters the REST API cannot apply, and the recency rule.
"""

import os
import sys
from datetime import datetime, timezone

import pytest

# Add repository root to path for src imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.routing import OPERATIONS, BackendRequiredError, Source, SourceRouter


def fixed_clock(year: int = 2025):
    return lambda: datetime(year, 6, 1, tzinfo=timezone.utc)


def make_router(available: bool, year: int = 2025) -> SourceRouter:
    return SourceRouter(lambda: available, clock=fixed_clock(year))


def test_database_preferred_when_available():
    router = make_router(True)
    assert router.route("query_radiation", {"lat": 1, "lon": 2}) is Source.DATABASE
    assert router.route("search_area", {"min_lat": 1}) is Source.DATABASE
    assert router.route("get_track", {"track_id": "1"}) is Source.DATABASE
    print("✅ database answers when connected")


def test_api_fallback_when_database_down():
    router = make_router(False)
    for operation in ("query_radiation", "search_area", "list_tracks", "get_track", "device_history"):
        assert router.route(operation, {}) is Source.API, operation
    print("✅ REST API answers when the database is down")


def test_database_only_operations_fail_fast():
    router = make_router(False)
    database_only = [name for name, profile in OPERATIONS.items() if not profile.has_rest_path]
    assert "get_spectrum" in database_only and "list_sensors" in database_only
    for operation in database_only:
        with pytest.raises(BackendRequiredError) as excinfo:
            router.route(operation, {})
        assert excinfo.value.message.startswith("database connection required")
        assert excinfo.value.operation == operation
    print(f"✅ {len(database_only)} database-only operations raise backend required")


def test_unsupported_filters_require_database():
    router = make_router(True)
    decision = router.decide("list_tracks", {"year": 2025, "username": "joe"})
    assert decision.source is Source.DATABASE
    assert decision.reason == "filter_requires_database"

    with pytest.raises(BackendRequiredError):
        make_router(False).route("list_tracks", {"detector": "nano"})

    # Empty and missing values are not filters
    assert make_router(False).route("list_tracks", {"detector": "", "username": None}) is Source.API
    print("✅ uploader/detector filters pin the database")


def test_recency_rule():
    router = make_router(True, year=2025)
    assert router.decide("list_tracks", {}).reason == "recent_window"
    assert router.route("list_tracks", {"year": 2025}) is Source.API
    assert router.route("list_tracks", {"year": 2024}) is Source.API
    assert router.route("list_tracks", {"year": 2023}) is Source.DATABASE
    assert router.route("list_tracks", {"year": 2023, "month": 5}) is Source.DATABASE

    later = make_router(True, year=2030)
    assert later.route("list_tracks", {"year": 2025}) is Source.DATABASE
    print("✅ recent or unbounded windows go to the API, older ones to the database")


def test_router_is_deterministic():
    router = make_router(True)
    filters = {"year": 2019, "month": 4, "limit": 50}
    decisions = {router.decide("list_tracks", filters) for _ in range(20)}
    assert len(decisions) == 1
    print("✅ same inputs, same decision")


def test_capability_annotations():
    router = make_router(True)
    assert router.supports_filter(Source.DATABASE, "list_tracks", "username")
    assert not router.supports_filter(Source.API, "list_tracks", "username")
    assert router.supports_filter(Source.API, "list_tracks", "month")
    assert not router.supports_filter(Source.API, "list_sensors", "type")
    with pytest.raises(ValueError):
        router.profile("drop_tables")
    print("✅ capability table answers filter support")


def test_availability_is_read_per_request():
    state = {"up": True}
    router = SourceRouter(lambda: state["up"], clock=fixed_clock())
    assert router.route("search_area", {}) is Source.DATABASE
    state["up"] = False
    assert router.route("search_area", {}) is Source.API
    print("✅ liveness is observed on every decision")


if __name__ == "__main__":
    print("🚀 Testing source router")
    print("=" * 50)
    test_database_preferred_when_available()
    test_api_fallback_when_database_down()
    test_database_only_operations_fail_fast()
    test_unsupported_filters_require_database()
    test_recency_rule()
    test_router_is_deterministic()
    test_capability_annotations()
    test_availability_is_read_per_request()
    print("\n🎉 All router tests passed!")
