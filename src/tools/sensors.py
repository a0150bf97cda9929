"""
Fixed-sensor tools backed by the realtime measurements table.

Sensors are not stored entities: each one is the latest row per device_id
in whichever realtime table the database carries.
"""

from datetime import datetime, time as dtime, timezone
from typing import Any, Dict, Optional

from src.logging import query_logger
from src.measurements import normalize_measurements, normalize_sensor
from src.postgres import queries

from . import params
from .context import ToolContext
from .envelopes import success
from .errors import InvalidParameterError


async def _realtime_table_or_notice(ctx: ToolContext):
    """Return (table, None) or (None, notice envelope) when no realtime table exists."""
    table = await ctx.database.realtime_table()
    if table:
        return table, None

    available = await ctx.database.table_names()
    query_logger.warning(f"realtime table missing | tables:{len(available)}")
    notice = {
        "count": 0,
        "source": "database",
        "message": "No known real-time sensor data tables found in database.",
        "available_tables": available,
        "suggestion": "Real-time sensor data may not be available through this database connection.",
    }
    return None, notice


async def list_sensors(ctx: ToolContext, sensor_type: Any = None, min_lat: Any = None, max_lat: Any = None,
                       min_lon: Any = None, max_lon: Any = None, limit: Any = None) -> Dict[str, Any]:
    """Active fixed sensors with their last known position and reading time."""
    sensor_type = params.text("type", sensor_type)
    box = params.bounding_box(min_lat, max_lat, min_lon, max_lon, required=False) or params.WORLD
    limit = params.integer("limit", limit, 1, 1000, default=50)

    ctx.router.route("list_sensors", {"type": sensor_type, "bbox": box.describe(), "limit": limit})
    table, notice = await _realtime_table_or_notice(ctx)
    if notice is not None:
        notice["sensors"] = []
        return notice

    statement = queries.sensors_latest(table, box, limit, sensor_type=sensor_type)
    rows = await ctx.database.run(statement)
    total = await ctx.database.count(statement)
    sensors = [normalize_sensor(row).to_payload() for row in rows]
    query_logger.info(f"list_sensors | table:{table} | type:{sensor_type} | count:{len(sensors)}")
    return success("database", "sensors", sensors, total_available=total, table_used=table)


async def sensor_current(ctx: ToolContext, device_id: Any = None, min_lat: Any = None, max_lat: Any = None,
                         min_lon: Any = None, max_lon: Any = None, limit: Any = None) -> Dict[str, Any]:
    """
    Latest reading of one sensor, or of every sensor inside a box.

    With neither a device_id nor a box, every sensor worldwide is considered.
    """
    device_id = params.text("device_id", device_id)
    box = params.bounding_box(min_lat, max_lat, min_lon, max_lon, required=False)
    limit = params.integer("limit", limit, 1, 1000, default=25)

    ctx.router.route("sensor_current", {"device_id": device_id, "bbox": box.describe() if box else None})
    table, notice = await _realtime_table_or_notice(ctx)
    if notice is not None:
        notice["readings"] = []
        return notice

    if device_id:
        statement = queries.sensor_latest_reading(table, device_id)
        rows = await ctx.database.run(statement)
        total = len(rows)
    else:
        statement = queries.sensor_current_readings(table, box or params.WORLD, limit)
        rows = await ctx.database.run(statement)
        total = await ctx.database.count(statement)

    readings = [m.to_payload() for m in normalize_measurements(rows, include_uploader=False)]
    query_logger.info(f"sensor_current | table:{table} | device:{device_id} | count:{len(readings)}")
    return success("database", "readings", readings, total_available=total, table_used=table)


def _day_bounds(start, end):
    first = datetime.combine(start, dtime.min, tzinfo=timezone.utc)
    last = datetime.combine(end, dtime(23, 59, 59), tzinfo=timezone.utc)
    return first, last


async def sensor_history(ctx: ToolContext, device_id: Any = None, start_date: Any = None, end_date: Any = None,
                         limit: Any = None) -> Dict[str, Any]:
    """Readings of one sensor between two dates (inclusive whole days), oldest first."""
    device_id = params.text("device_id", device_id, required=True)
    start = params.iso_date("start_date", start_date, required=True)
    end = params.iso_date("end_date", end_date, default=ctx.clock().date())
    limit = params.integer("limit", limit, 1, 10000, default=200)
    if end < start:
        raise InvalidParameterError("end_date must be on or after start_date", "end_date")

    ctx.router.route("sensor_history", {"device_id": device_id, "start_date": start.isoformat(),
                                        "end_date": end.isoformat(), "limit": limit})
    table, notice = await _realtime_table_or_notice(ctx)
    if notice is not None:
        notice["measurements"] = []
        return notice

    first, last = _day_bounds(start, end)
    statement = queries.realtime_history(table, device_id, int(first.timestamp()), int(last.timestamp()),
                                         limit, newest_first=False)
    rows = await ctx.database.run(statement)
    total = await ctx.database.count(statement)
    measurements = [m.to_payload() for m in normalize_measurements(rows, include_uploader=False)]
    period: Dict[str, Optional[str]] = {"start_date": start.isoformat(), "end_date": end.isoformat()}
    query_logger.info(f"sensor_history | table:{table} | device:{device_id} | count:{len(measurements)}")
    return success("database", "measurements", measurements, total_available=total,
                   device_id=device_id, period=period, table_used=table)
