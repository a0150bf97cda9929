#!/usr/bin/env python3
"""
Tests for the result normalizer: unit correction, field-name coalescing,
driver byte strings, uploader attribution and database/API agreement.
"""

import os
import sys
from datetime import datetime, timezone
from decimal import Decimal

# Add repository root to path for src imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.measurements import (
    DOSE_RATE_UNIT,
    BoundingBox,
    as_timestamp,
    decode_text,
    haversine_m,
    normalize_measurement,
    normalize_sensor,
    normalize_spectrum,
    normalize_track_upload,
    normalize_unit,
    resolve_uploader,
    row_to_json,
    summarize_track,
)


def test_counts_per_second_becomes_per_minute():
    assert normalize_unit("cps") == "cpm"
    assert normalize_unit("CPS") == "CPM"
    assert normalize_unit("counts per second") == "counts per minute"
    assert normalize_unit("Counts/Sec") == "Counts/minute"
    print("✅ counts-per-second labels rewritten to counts per minute")


def test_unit_normalization_is_idempotent():
    for unit in ("cpm", "CPM", "µSv/h", "usv", "counts per minute", "cps", "CPS"):
        once = normalize_unit(unit)
        assert normalize_unit(once) == once
    assert normalize_unit(None) is None
    assert normalize_unit(b"CPS") == "CPM"
    print("✅ unit normalization is idempotent")


def test_location_coalesces_field_names():
    from_db = normalize_measurement({"id": 1, "lat": 35.5, "lon": 139.5, "doserate": 0.1})
    from_api = normalize_measurement({"id": 1, "latitude": "35.5", "longitude": "139.5", "value": 0.1,
                                      "unit": DOSE_RATE_UNIT})
    assert from_db.to_payload()["location"] == {"latitude": 35.5, "longitude": 139.5}
    assert from_api.to_payload()["location"] == from_db.to_payload()["location"]
    print("✅ lat/lon and latitude/longitude land in the same location pair")


def test_missing_fields_are_null():
    measurement = normalize_measurement({"id": 7})
    payload = measurement.to_payload()
    assert payload["value"] is None
    assert payload["unit"] is None
    assert payload["location"] == {"latitude": None, "longitude": None}
    assert "uploader" not in payload
    print("✅ missing optional fields become null")


def test_byte_strings_are_decoded():
    measurement = normalize_measurement({
        "id": 3,
        "value": Decimal("12.5"),
        "unit": b"cps",
        "device_id": memoryview(b"dev-9"),
        "track_id": bytearray(b"T-1"),
    })
    assert measurement.value == 12.5
    assert measurement.unit == "cpm"
    assert measurement.device_id == "dev-9"
    assert measurement.track_id == "T-1"
    assert decode_text(b"\xff") == "�"
    print("✅ driver byte strings decoded to text")


def test_dose_rate_columns_imply_microsievert_unit():
    measurement = normalize_measurement({"id": 1, "doserate": 0.08, "lat": 1.0, "lon": 2.0})
    assert measurement.unit == DOSE_RATE_UNIT
    measurement = normalize_measurement({"id": 1, "value": 40})
    assert measurement.unit is None
    print("✅ doserate fields carry µSv/h")


def test_linked_account_wins_over_free_text_username():
    uploader = resolve_uploader({"username": "typed-name", "internal_username": "account",
                                 "uploader_email": "a@example.org"})
    assert uploader.username == "account"
    assert uploader.email == "a@example.org"
    assert uploader.linked_account

    uploader = resolve_uploader({"username": "typed-name", "internal_username": "  "})
    assert uploader.username == "typed-name"
    assert not uploader.linked_account

    assert resolve_uploader({"username": None}) is None
    print("✅ internal account preferred over free-text username")


def test_database_and_api_round_trip_agree():
    captured = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    db_row = {
        "id": 555, "value": 0.12, "unit": DOSE_RATE_UNIT, "captured_at": captured,
        "latitude": 35.1, "longitude": 139.2, "device_id": 12, "track_id": "900",
    }
    api_marker = {
        "id": 555, "doseRate": 0.12, "lat": 35.1, "lon": 139.2,
        "date": int(captured.timestamp()), "deviceID": 12, "trackID": 900,
    }
    a = normalize_measurement(db_row)
    b = normalize_measurement(api_marker, include_uploader=False)
    for field in ("value", "unit", "latitude", "longitude", "captured_at", "device_id", "track_id"):
        assert getattr(a, field) == getattr(b, field), field
    print("✅ database row and API marker normalize identically")


def test_timestamps():
    assert as_timestamp(0) is None
    assert as_timestamp(datetime(2020, 1, 1)) == "2020-01-01T00:00:00+00:00"
    assert as_timestamp(1577836800) == "2020-01-01T00:00:00+00:00"
    assert as_timestamp("2020-01-01T00:00:00Z") == "2020-01-01T00:00:00Z"
    print("✅ timestamps rendered as ISO-8601")


def test_track_upload_and_summary():
    upload = normalize_track_upload({"id": 1, "track_id": "T9", "file_size": Decimal("2048"),
                                     "username": "surveyor", "centroid_lat": 35.0, "centroid_lon": 139.0})
    payload = upload.to_payload()
    assert payload["username"] == "surveyor"
    assert payload["centroid"] == {"latitude": 35.0, "longitude": 139.0}
    assert payload["map_url"].endswith("/trackid/T9")

    entries = [
        normalize_measurement({"id": 1, "lat": 35.0, "lon": 139.0, "doserate": 0.1,
                               "captured_at": "2024-01-01T00:00:00+00:00"}),
        normalize_measurement({"id": 2, "lat": 35.2, "lon": 139.4, "doserate": 0.3,
                               "captured_at": "2024-01-01T01:00:00+00:00"}),
    ]
    summary = summarize_track("T9", entries).to_payload()
    assert summary["measurement_count"] == 2
    assert summary["bounding_box"] == {"min_lat": 35.0, "max_lat": 35.2, "min_lon": 139.0, "max_lon": 139.4}
    assert summary["time_span"]["start"] == "2024-01-01T00:00:00+00:00"
    assert summary["average_dose_rate"] == 0.2
    assert summary["unit"] == DOSE_RATE_UNIT
    print("✅ track uploads and summaries normalized")


def test_spectrum_channels_only_on_request():
    row = {"spectrum_id": 4, "marker_id": 10, "channels": "[1, 2, 3]", "channel_count": 3,
           "calibration": b'{"a": 1}', "doserate": 0.2, "lat": 1.0, "lon": 2.0,
           "uploader_username": "lab", "uploader_email": "lab@example.org"}
    listed = normalize_spectrum(row).to_payload()
    assert "channels" not in listed
    detailed = normalize_spectrum(row, include_channels=True).to_payload(include_channels=True)
    assert detailed["channels"] == [1.0, 2.0, 3.0]
    assert detailed["calibration"] == {"a": 1}
    assert detailed["uploader"] == {"username": "lab", "email": "lab@example.org"}
    print("✅ spectrum channels excluded from listings")


def test_sensor_and_row_helpers():
    sensor = normalize_sensor({"device_id": "p-1", "transport": b"pointcast", "lat": 1, "lon": 2,
                               "last_reading_at": datetime(2024, 1, 1, tzinfo=timezone.utc)})
    assert sensor.to_payload()["type"] == "pointcast"
    assert row_to_json({"a": Decimal("1.5"), "b": b"x"}) == {"a": 1.5, "b": "x"}
    print("✅ sensors and generic rows normalized")


def test_geo_helpers():
    box = BoundingBox(35.0, 36.0, 139.0, 140.0)
    assert box.contains(35.0, 140.0)
    assert not box.contains(34.9999, 139.5)
    assert box.centroid() == (35.5, 139.5)
    assert box.fetch_radius_m() <= 50000.0
    assert abs(haversine_m(0, 0, 0, 1) - 111195) < 10
    print("✅ bounding box and haversine helpers")


if __name__ == "__main__":
    print("🚀 Testing result normalizer")
    print("=" * 50)
    test_counts_per_second_becomes_per_minute()
    test_unit_normalization_is_idempotent()
    test_location_coalesces_field_names()
    test_missing_fields_are_null()
    test_byte_strings_are_decoded()
    test_dose_rate_columns_imply_microsievert_unit()
    test_linked_account_wins_over_free_text_username()
    test_database_and_api_round_trip_agree()
    test_timestamps()
    test_track_upload_and_summary()
    test_spectrum_channels_only_on_request()
    test_sensor_and_row_helpers()
    test_geo_helpers()
    print("\n🎉 All normalizer tests passed!")
