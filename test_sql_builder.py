#!/usr/bin/env python3
"""
Tests for the parameterized SQL builder and the query shapes built on it.
Checks placeholder/argument parity for every filter combination and that
count statements share the exact WHERE text of their data statements.
"""

import itertools
import os
import re
import sys

import pytest

# Add repository root to path for src imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.measurements import BoundingBox
from src.postgres import queries
from src.postgres.sql_builder import (
    Fragment,
    Predicate,
    Statement,
    check_parity,
    like_pattern,
    month_window,
    placeholder_numbers,
    within_radius,
)

TOKYO = BoundingBox(35.0, 36.0, 139.0, 140.0)


def _where_clause(sql: str) -> str:
    """Text between the first WHERE and the next ORDER BY / LIMIT / GROUP BY / end."""
    match = re.search(r"WHERE\s+(.*?)(?:\n\s*(?:ORDER BY|LIMIT|GROUP BY)|$)", sql, re.S)
    assert match, f"no WHERE in: {sql}"
    return match.group(1).strip()


def _all_statements():
    """Every query shape over a grid of optional filters."""
    yield queries.radiation_near(35.0, 139.0, 1500.0, 25)
    yield queries.area_measurements(TOKYO, 10)
    for year, month, detector, username in itertools.product(
            (None, 2019), (None, 12), (None, "bGeigie"), (None, "joe")):
        if month and not year:
            continue
        yield queries.track_uploads(50, year=year, month=month, detector=detector, username=username)
    for from_id, to_id in itertools.product((None, 10), (None, 99)):
        yield queries.track_measurements("1234", 200, from_id=from_id, to_id=to_id)
    yield queries.device_markers("dev-1", 1_600_000_000, 1_700_000_000, 200)
    for table in queries.REALTIME_TABLES:
        yield queries.realtime_history(table, "dev-1", 1_600_000_000, 1_700_000_000, 200)
        yield queries.realtime_history(table, "dev-1", 1_600_000_000, 1_700_000_000, 200, newest_first=False)
        yield queries.sensors_latest(table, TOKYO, 50)
        yield queries.sensors_latest(table, TOKYO, 50, sensor_type="pointcast")
        yield queries.sensor_current_readings(table, TOKYO, 25)
        yield queries.sensor_latest_reading(table, "dev-1")
    for box, fmt, model, track in itertools.product((None, TOKYO), (None, "spe"), (None, "Kromek"), (None, "77")):
        yield queries.spectra_listing(50, box=box, source_format=fmt, device_model=model, track_id=track)
    yield queries.spectrum_detail(42)
    for year, month in ((None, None), (2020, None), (2020, 3)):
        yield queries.tracks_in_area(TOKYO, 50, year=year, month=month)
    for sort_by, year in itertools.product(queries.UPLOADER_SORTS, (None, 2021)):
        yield queries.top_uploaders(20, sort_by=sort_by, year=year)


def test_placeholder_parity_for_every_shape():
    """Placeholders are exactly $1..$n for the n supplied arguments."""
    statements = list(_all_statements())
    for statement in statements:
        sql, args = statement.build()
        assert placeholder_numbers(sql) == set(range(1, len(args) + 1)), sql
        if statement.count_template is not None:
            count_sql, count_args = statement.build_count()
            assert placeholder_numbers(count_sql) == set(range(1, len(count_args) + 1)), count_sql
    print(f"✅ {len(statements)} statements have matching placeholders and arguments")


def test_count_shares_data_predicate():
    """Count WHERE text and arguments equal the data WHERE text and its leading arguments."""
    for statement in _all_statements():
        if statement.count_template is None:
            continue
        sql, args = statement.build()
        count_sql, count_args = statement.build_count()
        where_sql, where_args, _ = statement.predicate.render(1)
        assert where_sql in sql
        assert where_sql in count_sql
        assert args[:len(count_args)] == count_args == where_args
    print("✅ count statements reuse the data predicate")


def test_limit_is_last_bound_argument():
    sql, args = queries.track_uploads(50, year=2019, detector="nano").build()
    assert args[-1] == 50
    assert f"LIMIT ${len(args)}" in sql
    print("✅ LIMIT bound as the trailing parameter")


def test_substring_filters_are_parameterized():
    sql, args = queries.track_uploads(10, detector="50%_off", username="o'brien").build()
    assert "o'brien" not in sql
    assert "%o'brien%" in args
    assert like_pattern("50%_off") in args
    assert like_pattern("50%_off") == "%50\\%\\_off%"
    print("✅ ILIKE terms are bound arguments with escaped wildcards")


def test_radius_uses_index_and_precise_predicates():
    sql, args = queries.radiation_near(35.0, 139.0, 1500.0, 25).build()
    where = _where_clause(sql)
    assert "&& ST_Expand(" in where
    assert "ST_DWithin(" in where
    assert 1500.0 in args
    assert "::float8, false)" in where
    assert "::geography, false) AS distance_m" in sql
    print("✅ proximity search carries the envelope and the distance predicate")


def test_radius_envelope_covers_circle():
    fragment = within_radius(60.0, 10.0, 10000.0)
    lat, lon, radius, dx, dy = fragment.args
    assert dy * 111000.0 >= radius - 1e-6
    assert dx > dy
    print("✅ longitude expansion widened at high latitude")


def test_latest_per_device_picks_one_row_per_device():
    for table in queries.REALTIME_TABLES:
        for statement in (queries.sensors_latest(table, TOKYO, 50), queries.sensor_current_readings(table, TOKYO, 25)):
            sql, _ = statement.build()
            count_sql, _ = statement.build_count()
            # equal timestamps for one device must not yield two rows
            assert "SELECT DISTINCT ON (device_id) *" in sql
            assert "ORDER BY device_id, measured_at DESC, id DESC" in sql
            assert "MAX(measured_at)" not in sql
            assert "count(DISTINCT device_id)" in count_sql
    print("✅ latest-per-device rows agree with the distinct device count")


def test_month_window_is_half_open():
    assert month_window(2020) == (month_window(2020, 1)[0], month_window(2021)[0])
    start, end = month_window(2020, 12)
    assert (start.year, start.month, end.year, end.month) == (2020, 12, 2021, 1)
    print("✅ month windows roll over the year")


def test_builder_rejects_contract_violations():
    with pytest.raises(ValueError):
        Fragment("a = {0} AND b = {1}", (1,))
    with pytest.raises(ValueError):
        check_parity("SELECT $1, $3", [1, 2])
    with pytest.raises(TypeError):
        Statement("SELECT 1 WHERE {where} LIMIT {limit}", limit="10").build()
    with pytest.raises(ValueError):
        Statement("SELECT 1 WHERE {where}", count_template=None).build_count()
    with pytest.raises(ValueError):
        queries.realtime_history("users; DROP TABLE markers", "d", 0, 1, 10)
    print("✅ contract violations raise")


def test_predicate_is_immutable():
    base = Predicate().where("a = {0}", 1)
    extended = base.where("b = {0}", 2)
    assert len(base.clauses) == 1
    assert len(extended.clauses) == 2
    text, args, next_index = extended.render(1)
    assert text == "a = $1\n  AND b = $2"
    assert args == [1, 2]
    assert next_index == 3
    assert Predicate().render(1) == ("TRUE", [], 1)
    print("✅ predicates compose without mutation")


if __name__ == "__main__":
    print("🚀 Testing SQL builder")
    print("=" * 50)
    test_placeholder_parity_for_every_shape()
    test_count_shares_data_predicate()
    test_limit_is_last_bound_argument()
    test_substring_filters_are_parameterized()
    test_radius_uses_index_and_precise_predicates()
    test_radius_envelope_covers_circle()
    test_latest_per_device_picks_one_row_per_device()
    test_month_window_is_half_open()
    test_builder_rejects_contract_violations()
    test_predicate_is_immutable()
    print("\n🎉 All SQL builder tests passed!")
