"""
Analytics tools served by the DuckDB engine.

Statistics and extreme-value scans run over the attached Postgres
database; usage statistics and ad-hoc log queries run over the local
audit store. Each call is also reported as an AI session.
"""

import time
from typing import Any, Dict, Optional

from src.logging import query_logger
from src.measurements import normalize_measurement
from src.analytics import RADIATION_STATS_SQL, EXTREME_DIRECTIONS, extreme_readings_query, is_select_only

from . import params
from .context import ToolContext
from .envelopes import success
from .errors import InvalidParameterError

ATTACHED_SOURCE = "duckdb_postgres_attach"
LOCAL_LOG_SOURCE = "duckdb_local_log"


def _ai_session(ctx: ToolContext, tool_name: str, query: str, started: float, error: Optional[BaseException] = None):
    if ctx.audit is not None:
        ctx.audit.record_ai_session(tool_name, query, (time.perf_counter() - started) * 1000, error)


async def radiation_stats(ctx: ToolContext, interval: Any = None) -> Dict[str, Any]:
    """Dose-rate aggregates grouped by year, by month (last year) or overall."""
    interval = params.choice("interval", interval, tuple(RADIATION_STATS_SQL), "year")
    engine = ctx.require_analytics()

    started = time.perf_counter()
    try:
        stats = await engine.radiation_stats(interval)
    except Exception as e:
        _ai_session(ctx, "radiation_stats", RADIATION_STATS_SQL[interval], started, e)
        raise
    _ai_session(ctx, "radiation_stats", RADIATION_STATS_SQL[interval], started)

    query_logger.info(f"radiation_stats | interval:{interval} | rows:{len(stats)}")
    return success(ATTACHED_SOURCE, "stats", stats, interval=interval)


async def query_extreme_readings(ctx: ToolContext, direction: Any = None, limit: Any = None,
                                 min_lat: Any = None, max_lat: Any = None, min_lon: Any = None,
                                 max_lon: Any = None, exclude_devices: Any = None,
                                 exclude_areas: Any = None) -> Dict[str, Any]:
    """
    Highest or lowest plausible readings, optionally inside a box.

    exclude_devices takes device ids (JSON array or comma-separated);
    exclude_areas takes a JSON array of bounding boxes to leave out.
    """
    direction = params.choice("direction", direction, tuple(EXTREME_DIRECTIONS), "highest")
    limit = params.integer("limit", limit, 1, 100, default=10)
    box = params.bounding_box(min_lat, max_lat, min_lon, max_lon, required=False)
    devices = params.string_list("exclude_devices", exclude_devices)
    areas = params.box_list("exclude_areas", exclude_areas)
    engine = ctx.require_analytics()

    sql, _ = extreme_readings_query(direction, limit, box, devices, areas)
    started = time.perf_counter()
    try:
        rows = await engine.extreme_readings(direction, limit, box, devices, areas)
    except Exception as e:
        _ai_session(ctx, "query_extreme_readings", sql, started, e)
        raise
    _ai_session(ctx, "query_extreme_readings", sql, started)

    readings = [normalize_measurement(row, include_uploader=False).to_payload() for row in rows]
    query_logger.info(f"query_extreme_readings | direction:{direction} | count:{len(readings)}")
    return success(ATTACHED_SOURCE, "readings", readings, direction=direction,
                   excluded={"devices": devices, "areas": [area.to_payload() for area in areas]})


async def query_analytics(ctx: ToolContext) -> Dict[str, Any]:
    """Per-tool call counts and latency from the audit log."""
    engine = ctx.require_analytics()
    started = time.perf_counter()
    stats = await engine.tool_usage()
    _ai_session(ctx, "query_analytics", "tool usage summary", started)
    return success(LOCAL_LOG_SOURCE, "stats", stats)


async def query_duckdb_logs(ctx: ToolContext, query: Any = None) -> Dict[str, Any]:
    query = params.text("query", query, required=True)
    if not is_select_only(query):
        raise InvalidParameterError("Only SELECT queries are allowed", "query")
    engine = ctx.require_analytics()

    started = time.perf_counter()
    try:
        rows = await engine.query_logs(query)
    except Exception as e:
        _ai_session(ctx, "query_duckdb_logs", query, started, e)
        raise
    _ai_session(ctx, "query_duckdb_logs", query, started)
    return success(LOCAL_LOG_SOURCE, "rows", rows, hint=False)
