"""
Measurement tools: readings near a point, inside a box, and per device.

Each tool asks the router for a backend, then reads through the SQL query
shapes or the REST gateway. Both paths end in the same normalizer and the
same boundary rules, so the response shape does not depend on the backend.
"""

from datetime import datetime, time as dtime, timedelta, timezone
from typing import Any, Dict, List, Optional

from src.logging import query_logger
from src.measurements import Measurement, normalize_measurements
from src.postgres import queries
from src.routing import Source
from src.safecast_api import SafecastAPIError, within_box, within_radius, within_window

from . import params
from .context import ToolContext
from .envelopes import success

# Upper bound on readings requested from the upstream when approximating a box
AREA_FETCH_LIMIT = 10000


def _payloads(measurements: List[Measurement]) -> List[Dict[str, Any]]:
    return [m.to_payload() for m in measurements]


async def query_radiation(ctx: ToolContext, lat: Any = None, lon: Any = None, radius_m: Any = None,
                          limit: Any = None) -> Dict[str, Any]:
    """Most recent readings within radius_m meters of a point."""
    lat = params.latitude("lat", lat)
    lon = params.longitude("lon", lon)
    radius_m = params.number("radius_m", radius_m, 25, 50000, default=1500.0)
    limit = params.integer("limit", limit, 1, 10000, default=25)

    source = ctx.router.route("query_radiation", {"lat": lat, "lon": lon, "radius_m": radius_m, "limit": limit})
    query = {"lat": lat, "lon": lon, "radius_m": radius_m}

    if source is Source.DATABASE:
        statement = queries.radiation_near(lat, lon, radius_m, limit)
        rows = await ctx.database.run(statement)
        total = await ctx.database.count(statement)
        measurements = normalize_measurements(rows)
        query_logger.info(f"query_radiation | source:database | count:{len(measurements)} | total:{total}")
        return success("database", "measurements", _payloads(measurements), total_available=total, query=query)

    markers = await ctx.api.measurements(lat, lon, radius_m, limit)
    measurements = within_radius(normalize_measurements(markers, include_uploader=False), lat, lon, radius_m)[:limit]
    query_logger.info(f"query_radiation | source:api | fetched:{len(markers)} | count:{len(measurements)}")
    return success("api", "measurements", _payloads(measurements), query=query)


async def search_area(ctx: ToolContext, min_lat: Any = None, max_lat: Any = None, min_lon: Any = None,
                      max_lon: Any = None, limit: Any = None) -> Dict[str, Any]:
    """
    Readings inside a bounding box, every edge inclusive.

    The REST path can only ask for a center and a radius, so it fetches
    around the box centroid and keeps what falls inside the box.
    """
    box = params.bounding_box(min_lat, max_lat, min_lon, max_lon)
    limit = params.integer("limit", limit, 1, 10000, default=100)

    source = ctx.router.route("search_area", {**box.to_payload(), "limit": limit})

    if source is Source.DATABASE:
        statement = queries.area_measurements(box, limit)
        rows = await ctx.database.run(statement)
        total = await ctx.database.count(statement)
        measurements = normalize_measurements(rows)
        query_logger.info(f"search_area | source:database | {box.describe()} | count:{len(measurements)}")
        return success("database", "measurements", _payloads(measurements), total_available=total,
                       bbox=box.to_payload())

    center_lat, center_lon = box.centroid()
    radius_m = box.fetch_radius_m()
    markers = await ctx.api.measurements(center_lat, center_lon, radius_m, AREA_FETCH_LIMIT)
    inside = within_box(normalize_measurements(markers, include_uploader=False), box)
    query_logger.info(f"search_area | source:api | {box.describe()} | fetched:{len(markers)} | in_bbox:{len(inside)}")
    return success("api", "measurements", _payloads(inside[:limit]),
                   total_in_bbox=len(inside), total_fetched=len(markers), bbox=box.to_payload())


def _device_window(now: datetime, days: int):
    """Whole-day window: midnight `days` ago through the end of today (UTC)."""
    start = datetime.combine((now - timedelta(days=days)).date(), dtime.min, tzinfo=timezone.utc)
    end = datetime.combine(now.date(), dtime(23, 59, 59), tzinfo=timezone.utc)
    return start, end


async def _device_info(ctx: ToolContext, device_id: str) -> Dict[str, Any]:
    info = {"id": device_id, "manufacturer": "Unknown", "model": "Unknown", "sensor": "Unknown"}
    try:
        devices = await ctx.api.devices()
    except SafecastAPIError as e:
        query_logger.warning(f"device enrichment skipped | device:{device_id} | error:{e}")
        return info

    for device in devices:
        if str(device.get("id")) == str(device_id):
            return {
                "id": device.get("id"),
                "manufacturer": device.get("manufacturer"),
                "model": device.get("model"),
                "sensor": device.get("sensor"),
            }
    return info


async def device_history(ctx: ToolContext, device_id: Any = None, days: Any = None,
                         limit: Any = None) -> Dict[str, Any]:
    """Readings from one device over the last `days` days, newest first."""
    device_id = params.text("device_id", device_id, required=True)
    days = params.integer("days", days, 1, 365, default=30)
    limit = params.integer("limit", limit, 1, 10000, default=200)

    source = ctx.router.route("device_history", {"device_id": device_id, "days": days, "limit": limit})
    start, end = _device_window(ctx.clock(), days)
    period = {
        "days": days,
        "start_date": start.strftime("%Y-%m-%d %H:%M"),
        "end_date": end.strftime("%Y-%m-%d %H:%M"),
    }

    if source is Source.DATABASE:
        start_epoch, end_epoch = int(start.timestamp()), int(end.timestamp())
        statement = queries.device_markers(device_id, start_epoch, end_epoch, limit)
        rows = await ctx.database.run(statement)
        table_used: Optional[str] = "markers"
        if not rows:
            table_used = await ctx.database.realtime_table()
            if table_used:
                statement = queries.realtime_history(table_used, device_id, start_epoch, end_epoch, limit)
                rows = await ctx.database.run(statement)
        total = await ctx.database.count(statement) if rows else 0
        measurements = normalize_measurements(rows)
        return success("database", "measurements", _payloads(measurements), total_available=total,
                       device={"id": device_id}, period=period, table_used=table_used)

    raw = await ctx.api.device_measurements(device_id, period["start_date"], period["end_date"])
    measurements = within_window(normalize_measurements(raw, include_uploader=False), start, end)
    device = await _device_info(ctx, device_id)
    return success("api", "measurements", _payloads(measurements[:limit]), total_available=len(measurements),
                   device=device, period=period)
