"""
Query shapes for every database-backed operation.

Each function returns a Statement whose data and count SQL share one
predicate. Identifiers that cannot be parameters (the realtime table name,
the sort column) come from fixed whitelists, never from caller input.
"""

from typing import Optional

from src.measurements.geo import BoundingBox
from .sql_builder import (
    Fragment,
    Predicate,
    Statement,
    like_pattern,
    month_window,
    point,
    within_bbox,
    within_latlon_columns,
    within_radius,
)

REALTIME_TABLES = ("realtime_measurements", "measurements_realtime")

UPLOADER_SORTS = {
    "upload_count": "upload_count DESC, total_size DESC",
    "total_size": "total_size DESC, upload_count DESC",
}

LIST_TABLES_SQL = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = 'public'
    ORDER BY table_name
"""

MARKER_EXISTS_SQL = "SELECT id, has_spectrum FROM markers WHERE id = $1"

MARKER_COLUMNS = """m.id, m.doserate AS value, 'µSv/h' AS unit,
        to_timestamp(m.date) AS captured_at,
        m.lat AS latitude, m.lon AS longitude,
        m.device_id, m.altitude AS height, m.detector,
        m.trackid AS track_id, m.has_spectrum"""

UPLOAD_COLUMNS = """u.id, u.filename, u.file_type, u.track_id, u.file_size,
        u.created_at, u.source, u.source_id, u.recording_date,
        u.detector, u.username,
        u.internal_user_id, usr.username AS internal_username, usr.email AS uploader_email"""

REALTIME_COLUMNS = """rm.id, rm.device_id,
        COALESCE(rm.device_name, rm.device_id) AS device_name,
        rm.value, COALESCE(rm.unit, 'µSv/h') AS unit,
        to_timestamp(rm.measured_at) AS captured_at,
        rm.lat AS latitude, rm.lon AS longitude,
        COALESCE(rm.transport, '') AS transport"""


def _realtime(table: str) -> str:
    if table not in REALTIME_TABLES:
        raise ValueError(f"unknown realtime table: {table}")
    return table


def radiation_near(lat: float, lon: float, radius_m: float, limit: int) -> Statement:
    """Most recent markers within radius_m of a point, nearest-first distance attached."""
    predicate = Predicate().extend(within_radius(lat, lon, radius_m))
    template = f"""
    WITH top_markers AS (
        SELECT m.id, m.doserate, m.date, m.lat, m.lon,
            m.device_id, m.altitude, m.detector, m.trackid, m.has_spectrum, m.geom
        FROM markers m
        WHERE {{where}}
        ORDER BY m.date DESC
        LIMIT {{limit}}
    )
    SELECT {MARKER_COLUMNS},
        ST_Distance(m.geom::geography, {{origin}}::geography, false) AS distance_m,
        u.internal_user_id, usr.username AS uploader_username, usr.email AS uploader_email
    FROM top_markers m
    LEFT JOIN uploads u ON u.track_id = m.trackid
    LEFT JOIN users usr ON u.internal_user_id = usr.id::text
    ORDER BY m.date DESC"""
    return Statement(
        template=template,
        predicate=predicate,
        limit=limit,
        fragments=(("origin", Fragment(point(), (lat, lon))),),
        count_template="SELECT count(*) AS total FROM markers m WHERE {where}",
    )


def area_measurements(box: BoundingBox, limit: int) -> Statement:
    predicate = Predicate().extend(within_bbox(box))
    return Statement(
        template=f"""
    SELECT {MARKER_COLUMNS}
    FROM markers m
    WHERE {{where}}
    ORDER BY m.date DESC
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
        count_template="SELECT count(*) AS total FROM markers m WHERE {where}",
    )


def track_uploads(limit: int, year: Optional[int] = None, month: Optional[int] = None,
                  detector: Optional[str] = None, username: Optional[str] = None) -> Statement:
    """Uploads listing with optional recording window, detector and uploader filters."""
    predicate = Predicate()
    if year:
        start, end = month_window(year, month)
        predicate = predicate.where("u.recording_date >= {0}::date AND u.recording_date < {1}::date", start, end)
    if detector:
        predicate = predicate.where("u.detector ILIKE {0}", like_pattern(detector))
    if username:
        predicate = predicate.where("(u.username ILIKE {0} OR usr.username ILIKE {0})", like_pattern(username))

    joins = """FROM uploads u
    LEFT JOIN users usr ON u.internal_user_id = usr.id::text"""
    return Statement(
        template=f"""
    SELECT {UPLOAD_COLUMNS}
    {joins}
    WHERE {{where}}
    ORDER BY u.recording_date DESC
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
        count_template=f"SELECT count(*) AS total {joins} WHERE {{where}}",
    )


def track_measurements(track_id: str, limit: int, from_id: Optional[int] = None,
                       to_id: Optional[int] = None) -> Statement:
    predicate = (
        Predicate()
        .where("m.trackid = {0}", track_id)
        .where_if(from_id is not None, "m.id >= {0}", from_id)
        .where_if(to_id is not None, "m.id <= {0}", to_id)
    )
    return Statement(
        template=f"""
    SELECT {MARKER_COLUMNS}
    FROM markers m
    WHERE {{where}}
    ORDER BY m.date ASC
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
        count_template="SELECT count(*) AS total FROM markers m WHERE {where}",
    )


def device_markers(device_id: str, start_epoch: int, end_epoch: int, limit: int) -> Statement:
    predicate = (
        Predicate()
        .where("m.device_id = {0}", device_id)
        .where("m.date >= {0} AND m.date <= {1}", start_epoch, end_epoch)
    )
    return Statement(
        template=f"""
    SELECT {MARKER_COLUMNS}
    FROM markers m
    WHERE {{where}}
    ORDER BY m.date DESC
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
        count_template="SELECT count(*) AS total FROM markers m WHERE {where}",
    )


def realtime_history(table: str, device_id: str, start_epoch: int, end_epoch: int,
                     limit: int, newest_first: bool = True) -> Statement:
    table = _realtime(table)
    predicate = (
        Predicate()
        .where("rm.device_id = {0}", device_id)
        .where("rm.measured_at >= {0} AND rm.measured_at <= {1}", start_epoch, end_epoch)
    )
    order = "DESC" if newest_first else "ASC"
    return Statement(
        template=f"""
    SELECT {REALTIME_COLUMNS}
    FROM {table} rm
    WHERE {{where}}
    ORDER BY rm.measured_at {order}
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
        count_template=f"SELECT count(*) AS total FROM {table} rm WHERE {{where}}",
    )


def _sensor_predicate(box: BoundingBox, sensor_type: Optional[str] = None) -> Predicate:
    # Unqualified columns: the predicate is rendered inside the latest-per-device
    # subquery and in the count query.
    predicate = Predicate().extend(within_latlon_columns(box))
    if sensor_type:
        predicate = predicate.where(
            "(COALESCE(transport, '') ILIKE {0} OR COALESCE(device_name, '') ILIKE {0})",
            like_pattern(sensor_type),
        )
    return predicate


def _latest_per_device(table: str, columns: str, predicate: Predicate, limit: int) -> Statement:
    return Statement(
        template=f"""
    SELECT {columns}
    FROM (
        SELECT DISTINCT ON (device_id) *
        FROM {table}
        WHERE {{where}}
        ORDER BY device_id, measured_at DESC, id DESC
    ) rm
    ORDER BY rm.measured_at DESC
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
        count_template=f"SELECT count(DISTINCT device_id) AS total FROM {table} WHERE {{where}}",
    )


def sensors_latest(table: str, box: BoundingBox, limit: int, sensor_type: Optional[str] = None) -> Statement:
    """One row per device: its most recent position and reading time."""
    columns = """rm.device_id,
        COALESCE(rm.device_name, rm.device_id) AS device_name,
        COALESCE(rm.transport, '') AS transport,
        rm.lat AS latitude, rm.lon AS longitude,
        to_timestamp(rm.measured_at) AS last_reading_at"""
    return _latest_per_device(_realtime(table), columns, _sensor_predicate(box, sensor_type), limit)


def sensor_current_readings(table: str, box: BoundingBox, limit: int) -> Statement:
    return _latest_per_device(_realtime(table), REALTIME_COLUMNS, _sensor_predicate(box), limit)


def sensor_latest_reading(table: str, device_id: str) -> Statement:
    table = _realtime(table)
    return Statement(
        template=f"""
    SELECT {REALTIME_COLUMNS}
    FROM {table} rm
    WHERE {{where}}
    ORDER BY rm.measured_at DESC
    LIMIT {{limit}}""",
        predicate=Predicate().where("rm.device_id = {0}", device_id),
        limit=1,
    )


def spectra_listing(limit: int, box: Optional[BoundingBox] = None, source_format: Optional[str] = None,
                    device_model: Optional[str] = None, track_id: Optional[str] = None) -> Statement:
    """Spectrum metadata without the channel array."""
    predicate = Predicate()
    if box is not None:
        predicate = predicate.extend(within_bbox(box))
    predicate = (
        predicate
        .where_if(bool(source_format), "s.source_format = {0}", source_format)
        .where_if(bool(device_model), "s.device_model ILIKE {0}", like_pattern(device_model or ""))
        .where_if(bool(track_id), "m.trackid = {0}", track_id)
    )
    return Statement(
        template="""
    SELECT s.id AS spectrum_id, s.marker_id, s.channel_count, s.energy_min_kev, s.energy_max_kev,
        s.live_time_sec, s.real_time_sec, s.device_model, s.calibration,
        s.source_format, s.filename, s.created_at,
        m.doserate, m.lat, m.lon, to_timestamp(m.date) AS captured_at,
        m.trackid AS track_id,
        u.internal_user_id, usr.username AS uploader_username, usr.email AS uploader_email
    FROM spectra s
    JOIN markers m ON m.id = s.marker_id
    LEFT JOIN uploads u ON u.track_id = m.trackid
    LEFT JOIN users usr ON u.internal_user_id = usr.id::text
    WHERE {where}
    ORDER BY s.created_at DESC
    LIMIT {limit}""",
        predicate=predicate,
        limit=limit,
        count_template="""SELECT count(*) AS total
    FROM spectra s
    JOIN markers m ON m.id = s.marker_id
    WHERE {where}""",
    )


def spectrum_detail(marker_id: int) -> Statement:
    return Statement(
        template="""
    SELECT s.id AS spectrum_id, s.marker_id, s.channels, s.channel_count,
        s.energy_min_kev, s.energy_max_kev, s.live_time_sec, s.real_time_sec,
        s.device_model, s.calibration, s.source_format, s.filename, s.created_at,
        m.doserate, m.lat, m.lon, to_timestamp(m.date) AS captured_at, m.trackid AS track_id,
        u.internal_user_id, usr.username AS uploader_username, usr.email AS uploader_email
    FROM spectra s
    JOIN markers m ON m.id = s.marker_id
    LEFT JOIN uploads u ON u.track_id = m.trackid
    LEFT JOIN users usr ON u.internal_user_id = usr.id::text
    WHERE {where}
    LIMIT {limit}""",
        predicate=Predicate().where("s.marker_id = {0}", marker_id),
        limit=1,
    )


def tracks_in_area(box: BoundingBox, limit: int, year: Optional[int] = None,
                   month: Optional[int] = None) -> Statement:
    """Uploads whose collected marker geometry intersects the box."""
    predicate = Predicate().extend(within_bbox(box))
    if year:
        start, end = month_window(year, month)
        predicate = predicate.where("u.recording_date >= {0}::date AND u.recording_date < {1}::date", start, end)

    lateral = """FROM uploads u
    LEFT JOIN users usr ON u.internal_user_id = usr.id::text
    LEFT JOIN LATERAL (
        SELECT ST_Collect(geom) AS geom
        FROM markers
        WHERE markers.trackid = u.track_id
    ) m ON true"""
    return Statement(
        template=f"""
    SELECT {UPLOAD_COLUMNS},
        ST_X(ST_Centroid(m.geom)) AS centroid_lon,
        ST_Y(ST_Centroid(m.geom)) AS centroid_lat
    {lateral}
    WHERE {{where}}
    ORDER BY u.recording_date DESC
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
        count_template=f"SELECT count(*) AS total {lateral} WHERE {{where}}",
    )


def top_uploaders(limit: int, sort_by: str = "upload_count", year: Optional[int] = None) -> Statement:
    if sort_by not in UPLOADER_SORTS:
        raise ValueError(f"unknown sort: {sort_by}")
    predicate = Predicate().where_if(bool(year), "EXTRACT(YEAR FROM u.recording_date) = {0}", year)
    return Statement(
        template=f"""
    WITH uploader_stats AS (
        SELECT
            COALESCE(usr.username, u.username, 'Unknown') AS username,
            u.internal_user_id,
            COUNT(*) AS upload_count,
            SUM(COALESCE(u.file_size, 0)) AS total_size,
            array_agg(DISTINCT u.detector ORDER BY u.detector) FILTER (WHERE u.detector IS NOT NULL) AS devices
        FROM uploads u
        LEFT JOIN users usr ON u.internal_user_id = usr.id::text
        WHERE {{where}}
        GROUP BY COALESCE(usr.username, u.username, 'Unknown'), u.internal_user_id
    )
    SELECT
        username,
        upload_count,
        total_size,
        devices,
        CASE
            WHEN array_length(devices, 1) = 1 THEN devices[1]
            WHEN array_length(devices, 1) > 1 THEN 'Multiple'
            ELSE NULL
        END AS primary_device
    FROM uploader_stats
    ORDER BY {UPLOADER_SORTS[sort_by]}
    LIMIT {{limit}}""",
        predicate=predicate,
        limit=limit,
    )


DB_INFO_SQL = {
    "version": "SELECT version() AS version",
    "database": "SELECT current_database() AS db_name, current_user AS username",
    "recovery": "SELECT pg_is_in_recovery() AS in_recovery",
    "replication": """
        SELECT
            EXTRACT(EPOCH FROM (now() - pg_last_xact_replay_timestamp())) AS lag_seconds,
            pg_last_xact_replay_timestamp() AS last_replay_time""",
    "uploads": "SELECT count(*) AS total, MAX(id) AS max_id FROM uploads",
}
