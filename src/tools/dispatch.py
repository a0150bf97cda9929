"""
Tool registry and the single entry point used by the MCP and REST surfaces.

`call()` validates nothing itself: it resolves parameter aliases, runs the
handler, times it and hands the outcome to the audit logger without
waiting for the insert.
"""

import inspect
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from src.logging import log_tool_call, session_logger

from . import analytics, info, measurements, sensors, spectra, tracks
from .context import ToolContext
from .errors import classify_error

Handler = Callable[..., Awaitable[Dict[str, Any]]]

TOOLS: Dict[str, Handler] = {
    "query_radiation": measurements.query_radiation,
    "search_area": measurements.search_area,
    "device_history": measurements.device_history,
    "list_tracks": tracks.list_tracks,
    "get_track": tracks.get_track,
    "search_tracks_by_location": tracks.search_tracks_by_location,
    "top_uploaders": tracks.top_uploaders,
    "list_sensors": sensors.list_sensors,
    "sensor_current": sensors.sensor_current,
    "sensor_history": sensors.sensor_history,
    "get_spectrum": spectra.get_spectrum,
    "list_spectra": spectra.list_spectra,
    "radiation_stats": analytics.radiation_stats,
    "query_extreme_readings": analytics.query_extreme_readings,
    "query_analytics": analytics.query_analytics,
    "query_duckdb_logs": analytics.query_duckdb_logs,
    "radiation_info": info.radiation_info,
    "db_info": info.db_info,
    "ping": info.ping,
}

# Result array key of each tool's envelope, used for failure envelopes
RESULT_KEYS: Dict[str, str] = {
    "query_radiation": "measurements",
    "search_area": "measurements",
    "device_history": "measurements",
    "list_tracks": "tracks",
    "get_track": "measurements",
    "search_tracks_by_location": "tracks",
    "top_uploaders": "uploaders",
    "list_sensors": "sensors",
    "sensor_current": "readings",
    "sensor_history": "measurements",
    "list_spectra": "spectra",
    "radiation_stats": "stats",
    "query_extreme_readings": "readings",
    "query_analytics": "stats",
    "query_duckdb_logs": "rows",
}

# Public parameter names that are not valid Python identifiers or shadow builtins
PARAM_ALIASES = {"type": "sensor_type", "from": "from_id", "to": "to_id"}


def result_key(tool_name: str) -> str:
    return RESULT_KEYS.get(tool_name, "results")


def _accepted(handler: Handler, arguments: Dict[str, Any]) -> Dict[str, Any]:
    names = set(inspect.signature(handler).parameters) - {"ctx"}
    kwargs = {}
    for key, value in arguments.items():
        key = PARAM_ALIASES.get(key, key)
        if key in names:
            kwargs[key] = value
    return kwargs


async def call(ctx: ToolContext, tool_name: str, arguments: Optional[Dict[str, Any]] = None,
               client_info: str = "mcp") -> Dict[str, Any]:
    """Run one tool and audit it; exceptions propagate to the surface after auditing."""
    handler = TOOLS.get(tool_name)
    if handler is None:
        raise KeyError(f"unknown tool: {tool_name}")

    kwargs = _accepted(handler, arguments or {})
    log_tool_call(tool_name, client_info=client_info, **kwargs)

    started = time.perf_counter()
    result_count = 0
    try:
        envelope = await handler(ctx, **kwargs)
        result_count = int(envelope.get("count") or 0)
        return envelope
    except Exception as e:
        status, message = classify_error(e)
        session_logger.warning(f"tool failed | tool:{tool_name} | status:{status} | error:{message}")
        raise
    finally:
        duration_ms = (time.perf_counter() - started) * 1000
        if ctx.audit is not None:
            ctx.audit.record(tool_name, kwargs, result_count, duration_ms, client_info=client_info)
