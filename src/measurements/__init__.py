"""
Canonical measurement records

Provides the pydantic models shared by every tool, the normalizer that
maps database rows and REST API objects onto them, and the geo helpers
used by both query paths.
"""

from .models import (
    Measurement,
    Sensor,
    Spectrum,
    TrackSummary,
    TrackUpload,
    Uploader,
    QueryLogEntry
)
from .normalizer import (
    DOSE_RATE_UNIT,
    as_timestamp,
    coalesce,
    decode_text,
    normalize_measurement,
    normalize_measurements,
    normalize_sensor,
    normalize_spectrum,
    normalize_track_upload,
    normalize_unit,
    resolve_uploader,
    row_to_json,
    summarize_track
)
from .geo import BoundingBox, EARTH_RADIUS_M, MAX_FETCH_RADIUS_M, haversine_m

__all__ = [
    # Models
    'Measurement',
    'Sensor',
    'Spectrum',
    'TrackSummary',
    'TrackUpload',
    'Uploader',
    'QueryLogEntry',

    # Normalization
    'DOSE_RATE_UNIT',
    'as_timestamp',
    'coalesce',
    'decode_text',
    'normalize_measurement',
    'normalize_measurements',
    'normalize_sensor',
    'normalize_spectrum',
    'normalize_track_upload',
    'normalize_unit',
    'resolve_uploader',
    'row_to_json',
    'summarize_track',

    # Geo
    'BoundingBox',
    'EARTH_RADIUS_M',
    'MAX_FETCH_RADIUS_M',
    'haversine_m'
]
