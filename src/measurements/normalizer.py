"""
Map raw database rows and raw REST API objects onto the canonical records.

The two sources disagree on field names (lat/lon vs latitude/longitude,
doserate vs doseRate vs value, trackid vs trackID ...), some drivers hand
back text columns as bytes, and some upstream feeds mislabel counts per
minute as counts per second. Every reader goes through here so the tool
envelopes never depend on which backend answered.
"""

import json
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import Measurement, Sensor, Spectrum, TrackSummary, TrackUpload, Uploader

DOSE_RATE_UNIT = "µSv/h"

# Historical names for the same concept, in order of preference
MEASUREMENT_FIELDS = {
    "id": ("id", "marker_id", "measurement_id"),
    "value": ("value", "doserate", "dose_rate", "doseRate", "doseRateMicroSvH"),
    "unit": ("unit",),
    "captured_at": ("captured_at", "timeUTC", "measured_at", "date", "time"),
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lon", "lng"),
    "device_id": ("device_id", "deviceID", "device"),
    "height": ("height", "altitude", "altitudeM"),
    "detector": ("detector", "detectorType", "detector_type"),
    "track_id": ("track_id", "trackid", "trackID", "bgeigie_import_id"),
    "has_spectrum": ("has_spectrum", "hasSpectrum"),
    "distance_m": ("distance_m",),
    "device_name": ("device_name", "deviceName"),
    "sensor_type": ("transport", "type", "sensor_type"),
}

# Fields that carry a dose rate already expressed in µSv/h
_DOSE_RATE_KEYS = ("doserate", "dose_rate", "doseRate", "doseRateMicroSvH")

_CPS_TOKEN = re.compile(r"cps", re.IGNORECASE)
_PER_SECOND = re.compile(r"(counts?\s*(?:per|/)\s*)(sec(?:ond)?)\b", re.IGNORECASE)


def decode_text(value: Any) -> Optional[str]:
    """Return value as text, decoding driver-level byte strings."""
    if value is None:
        return None
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    text = decode_text(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    return int(number) if number is not None else None


def _as_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return decode_text(value).strip().lower() in ("true", "t", "1", "yes")


def _as_id(value: Any):
    if value is None or isinstance(value, (int, str)):
        return value
    if isinstance(value, (float, Decimal)) and float(value).is_integer():
        return int(value)
    return decode_text(value)


def _as_optional_text(value: Any) -> Optional[str]:
    text = decode_text(value)
    if text is None:
        return None
    text = text.strip()
    return text or None


def as_timestamp(value: Any) -> Optional[str]:
    """ISO-8601 text for datetimes, dates, epoch seconds and pre-formatted strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        if value <= 0:
            return None
        return datetime.fromtimestamp(float(value), tz=timezone.utc).isoformat()
    return _as_optional_text(value)


def coalesce(raw: Mapping[str, Any], names: Iterable[str]) -> Any:
    """First non-null value among the candidate field names."""
    for name in names:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def _source_key(raw: Mapping[str, Any], names: Iterable[str]) -> Optional[str]:
    for name in names:
        if raw.get(name) is not None:
            return name
    return None


def normalize_unit(unit: Any) -> Optional[str]:
    """
    Rewrite counts-per-second labels to counts-per-minute.

    Geiger counters in the dataset report counts per minute; some upstream
    feeds label the same numbers "cps". The case of the original label is
    kept ("cps" -> "cpm", "CPS" -> "CPM"), and already-normalized units pass
    through unchanged.
    """
    text = decode_text(unit)
    if text is None:
        return None

    text = _CPS_TOKEN.sub(lambda m: m.group(0)[:-1] + ("M" if m.group(0)[-1] == "S" else "m"), text)

    def _minute(match):
        second = match.group(2)
        return match.group(1) + ("MINUTE" if second.isupper() else "minute")

    return _PER_SECOND.sub(_minute, text)


def resolve_uploader(raw: Mapping[str, Any]) -> Optional[Uploader]:
    """
    Pick the uploader attribution for a row.

    An internally linked account (users table) wins over the free-text
    username typed at upload time; rows without either yield None.
    """
    internal = _as_optional_text(coalesce(raw, ("internal_username", "uploader_username")))
    if internal:
        return Uploader(
            username=internal,
            email=_as_optional_text(raw.get("uploader_email")),
            linked_account=True,
        )

    external = _as_optional_text(raw.get("username"))
    if external:
        return Uploader(username=external)
    return None


def normalize_measurement(raw: Mapping[str, Any], include_uploader: bool = True) -> Measurement:
    """Build a Measurement from a database row or an upstream marker object."""
    raw = dict(raw)
    fields = {name: coalesce(raw, keys) for name, keys in MEASUREMENT_FIELDS.items()}

    unit = fields["unit"]
    if unit is None and _source_key(raw, MEASUREMENT_FIELDS["value"]) in _DOSE_RATE_KEYS:
        unit = DOSE_RATE_UNIT

    return Measurement(
        id=_as_id(fields["id"]),
        value=_as_float(fields["value"]),
        unit=normalize_unit(unit),
        captured_at=as_timestamp(fields["captured_at"]),
        latitude=_as_float(fields["latitude"]),
        longitude=_as_float(fields["longitude"]),
        device_id=_as_optional_text(fields["device_id"]),
        height=_as_float(fields["height"]),
        detector=_as_optional_text(fields["detector"]),
        track_id=_as_optional_text(fields["track_id"]),
        has_spectrum=_as_bool(fields["has_spectrum"]),
        distance_m=_as_float(fields["distance_m"]),
        device_name=_as_optional_text(fields["device_name"]),
        sensor_type=decode_text(fields["sensor_type"]),
        uploader=resolve_uploader(raw) if include_uploader else None,
    )


def normalize_measurements(rows: Iterable[Mapping[str, Any]], include_uploader: bool = True) -> List[Measurement]:
    return [normalize_measurement(row, include_uploader=include_uploader) for row in rows]


def normalize_track_upload(raw: Mapping[str, Any]) -> TrackUpload:
    """Build a TrackUpload from an uploads row or an upstream track index entry."""
    raw = dict(raw)
    return TrackUpload(
        id=_as_id(raw.get("id")),
        track_id=_as_optional_text(coalesce(raw, ("track_id", "trackID", "trackid"))),
        filename=_as_optional_text(raw.get("filename")),
        file_type=_as_optional_text(raw.get("file_type")),
        file_size=_as_int(raw.get("file_size")),
        detector=_as_optional_text(raw.get("detector")),
        recording_date=as_timestamp(raw.get("recording_date")),
        created_at=as_timestamp(raw.get("created_at")),
        source=_as_optional_text(raw.get("source")),
        source_id=_as_optional_text(raw.get("source_id")),
        marker_count=_as_int(coalesce(raw, ("marker_count", "markerCount"))),
        first_id=_as_int(coalesce(raw, ("first_id", "firstID"))),
        last_id=_as_int(coalesce(raw, ("last_id", "lastID"))),
        centroid_latitude=_as_float(raw.get("centroid_lat")),
        centroid_longitude=_as_float(raw.get("centroid_lon")),
        uploader=resolve_uploader(raw),
    )


def normalize_sensor(raw: Mapping[str, Any]) -> Sensor:
    raw = dict(raw)
    return Sensor(
        device_id=_as_optional_text(raw.get("device_id")),
        device_name=_as_optional_text(raw.get("device_name")),
        sensor_type=decode_text(coalesce(raw, ("transport", "type"))),
        latitude=_as_float(coalesce(raw, ("latitude", "lat"))),
        longitude=_as_float(coalesce(raw, ("longitude", "lon"))),
        last_reading_at=as_timestamp(coalesce(raw, ("last_reading_at", "measured_at"))),
    )


def _decode_json(value: Any) -> Any:
    text = decode_text(value) if isinstance(value, (bytes, bytearray, memoryview)) else value
    if isinstance(text, str) and text.strip()[:1] in ("{", "["):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


def normalize_spectrum(raw: Mapping[str, Any], include_channels: bool = False) -> Spectrum:
    """Build a Spectrum; channels are only decoded for single-record fetches."""
    raw = dict(raw)
    channels = None
    if include_channels and raw.get("channels") is not None:
        decoded = _decode_json(raw["channels"])
        if isinstance(decoded, (list, tuple)):
            channels = [float(c) for c in decoded]

    marker = Measurement(
        id=_as_id(raw.get("marker_id")),
        value=_as_float(coalesce(raw, ("doserate", "value"))),
        unit=DOSE_RATE_UNIT,
        captured_at=as_timestamp(raw.get("captured_at")),
        latitude=_as_float(coalesce(raw, ("latitude", "lat"))),
        longitude=_as_float(coalesce(raw, ("longitude", "lon"))),
        track_id=_as_optional_text(coalesce(raw, ("track_id", "trackid"))),
    )

    return Spectrum(
        spectrum_id=_as_id(coalesce(raw, ("spectrum_id", "id"))),
        marker_id=_as_id(raw.get("marker_id")),
        filename=_as_optional_text(raw.get("filename")),
        source_format=_as_optional_text(raw.get("source_format")),
        device_model=_as_optional_text(raw.get("device_model")),
        channel_count=_as_int(raw.get("channel_count")),
        energy_min_kev=_as_float(raw.get("energy_min_kev")),
        energy_max_kev=_as_float(raw.get("energy_max_kev")),
        live_time_sec=_as_float(raw.get("live_time_sec")),
        real_time_sec=_as_float(raw.get("real_time_sec")),
        calibration=_decode_json(raw.get("calibration")),
        created_at=as_timestamp(raw.get("created_at")),
        channels=channels,
        marker=marker,
        uploader=resolve_uploader(raw),
    )


def summarize_track(track_id: str, measurements: List[Measurement]) -> TrackSummary:
    """Derive count, bounding box, time span and average dose rate for a track page."""
    located = [m for m in measurements if m.latitude is not None and m.longitude is not None]
    timestamps = sorted(m.captured_at for m in measurements if m.captured_at)
    values = [m.value for m in measurements if m.value is not None]
    units = {m.unit for m in measurements if m.unit}

    summary = TrackSummary(track_id=track_id, measurement_count=len(measurements))
    if located:
        summary.min_latitude = min(m.latitude for m in located)
        summary.max_latitude = max(m.latitude for m in located)
        summary.min_longitude = min(m.longitude for m in located)
        summary.max_longitude = max(m.longitude for m in located)
    if timestamps:
        summary.started_at = timestamps[0]
        summary.ended_at = timestamps[-1]
    if values:
        summary.average_dose_rate = round(sum(values) / len(values), 4)
    if len(units) == 1:
        summary.unit = units.pop()
    return summary


def row_to_json(row: Mapping[str, Any]) -> Dict[str, Any]:
    """JSON-safe copy of an arbitrary result row (analytics and diagnostics tools)."""
    result = {}
    for key, value in dict(row).items():
        if isinstance(value, (datetime, date)):
            result[key] = as_timestamp(value)
        elif isinstance(value, Decimal):
            result[key] = float(value)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            result[key] = decode_text(value)
        else:
            result[key] = value
    return result
