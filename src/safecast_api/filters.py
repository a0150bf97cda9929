"""
Client-side filters for REST API results.

The upstream services cannot filter by bounding box, marker id range or an
exact radius, so results are re-filtered here with the same boundary rules
as the SQL predicates: every edge inclusive, distance <= radius.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from src.measurements import BoundingBox, Measurement, haversine_m

# Tolerance for comparing haversine results against the requested radius
DISTANCE_EPSILON_M = 1e-6


def within_radius(measurements: Iterable[Measurement], lat: float, lon: float,
                  radius_m: float) -> List[Measurement]:
    """Keep readings within radius_m of (lat, lon) and attach their distance."""
    kept = []
    for measurement in measurements:
        if measurement.latitude is None or measurement.longitude is None:
            continue
        distance = haversine_m(lat, lon, measurement.latitude, measurement.longitude)
        if distance <= radius_m + DISTANCE_EPSILON_M:
            measurement.distance_m = distance
            kept.append(measurement)
    return kept


def within_box(measurements: Iterable[Measurement], box: BoundingBox) -> List[Measurement]:
    return [m for m in measurements if box.contains(m.latitude, m.longitude)]


def within_id_range(measurements: Iterable[Measurement], from_id: Optional[int] = None,
                    to_id: Optional[int] = None) -> List[Measurement]:
    """Inclusive marker id range; readings without a numeric id are dropped when a bound is set."""
    if from_id is None and to_id is None:
        return list(measurements)

    kept = []
    for measurement in measurements:
        try:
            marker_id = int(measurement.id)
        except (TypeError, ValueError):
            continue
        if from_id is not None and marker_id < from_id:
            continue
        if to_id is not None and marker_id > to_id:
            continue
        kept.append(measurement)
    return kept


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def within_window(measurements: Iterable[Measurement], start: datetime, end: datetime) -> List[Measurement]:
    """Readings captured in [start, end]; unparseable timestamps are dropped."""
    kept = []
    for measurement in measurements:
        captured = parse_timestamp(measurement.captured_at)
        if captured is not None and start <= captured <= end:
            kept.append(measurement)
    return kept
