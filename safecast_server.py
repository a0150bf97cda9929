#!/usr/bin/env python3
"""
Safecast MCP Server
A Model Context Protocol server that exposes the Safecast radiation dataset
to tool-calling clients, reading from the Safecast PostgreSQL database when
it is reachable and from the public Safecast REST API otherwise. The same
tools are served as plain GET endpoints under /api/.
"""

import asyncio
import json
import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file first
load_dotenv()

# Initialize OpenTelemetry instrumentation early
from src.telemetry import initialize_telemetry, initialize_metrics, trace_mcp_tool
telemetry_enabled = initialize_telemetry()

if telemetry_enabled:
    metrics_enabled = initialize_metrics()
else:
    metrics_enabled = False

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from src.logging import session_logger
from src.analytics import AnalyticsEngine, AuditLogger, is_entire_configured, validate_audit_config
from src.postgres import RadiationDatabase, validate_database_config
from src.rest import register_routes
from src.safecast_api import SafecastAPIClient, validate_safecast_api_config
from src.telemetry import get_metrics_status, get_telemetry_status
from src.tools import ToolContext, call, classify_error, failure, result_key

MCP_HOST = os.getenv("MCP_HOST", "0.0.0.0")
MCP_PORT = int(os.getenv("MCP_PORT", "8000"))

mcp = FastMCP("safecast")

for problem in (validate_database_config(), validate_safecast_api_config(), validate_audit_config()):
    if problem:
        session_logger.warning(f"configuration | {problem}")

telemetry_status = get_telemetry_status()
session_logger.info(f"telemetry | enabled:{telemetry_status['enabled']} | endpoint:{telemetry_status['endpoint']} "
                    f"| metrics:{get_metrics_status()['enabled']} | ai_session_export:{is_entire_configured()}")

analytics_engine = AnalyticsEngine.from_env()
context = ToolContext(
    database=RadiationDatabase.from_env(),
    api=SafecastAPIClient(),
    analytics=analytics_engine,
    audit=AuditLogger.from_env(store=analytics_engine),
)

_startup_lock = asyncio.Lock()
_started = False


async def get_context() -> ToolContext:
    """Connect the backends on first use. Failures leave a backend unavailable, never fatal."""
    global _started
    if _started:
        return context

    async with _startup_lock:
        if not _started:
            db_ready = await context.database.initialize()
            analytics_ready = await context.analytics.initialize()
            session_logger.info(f"backends ready | database:{db_ready} | analytics:{analytics_ready} "
                                f"| postgres_attached:{context.analytics.postgres_attached}")
            _started = True
    return context


async def _run(tool_name: str, **arguments: Any) -> Dict[str, Any]:
    try:
        ctx = await get_context()
        return await call(ctx, tool_name, arguments, client_info="mcp")
    except Exception as e:
        _, message = classify_error(e)
        raise ToolError(json.dumps(failure(message, result_key(tool_name)))) from e


register_routes(mcp, get_context)


@mcp.tool()
@trace_mcp_tool(tool_name="query_radiation")
async def query_radiation(lat: float, lon: float, radius_m: Optional[float] = 1500,
                          limit: Optional[int] = 25) -> Dict[str, Any]:
    """
    Find the most recent radiation readings near a point.

    Args:
        lat: Latitude of the center point (-90 to 90)
        lon: Longitude of the center point (-180 to 180)
        radius_m: Search radius in meters (25 to 50000, default 1500)
        limit: Maximum number of readings (1 to 10000, default 25)

    Every response includes an _ai_generated_note field that must be shown
    verbatim. CPM values are counts per minute.
    """
    return await _run("query_radiation", lat=lat, lon=lon, radius_m=radius_m, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="search_area")
async def search_area(min_lat: float, max_lat: float, min_lon: float, max_lon: float,
                      limit: Optional[int] = 100) -> Dict[str, Any]:
    """
    Find radiation readings inside a bounding box (edges inclusive).

    Args:
        min_lat: Southern boundary
        max_lat: Northern boundary (must be greater than min_lat)
        min_lon: Western boundary
        max_lon: Eastern boundary (must be greater than min_lon)
        limit: Maximum number of readings (1 to 10000, default 100)
    """
    return await _run("search_area", min_lat=min_lat, max_lat=max_lat, min_lon=min_lon,
                      max_lon=max_lon, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="list_tracks")
async def list_tracks(year: Optional[int] = None, month: Optional[int] = None,
                      detector: Optional[str] = None, username: Optional[str] = None,
                      limit: Optional[int] = 50) -> Dict[str, Any]:
    """
    Browse bGeigie survey tracks by recording year and month.

    Args:
        year: Recording year (2000 to 2100)
        month: Recording month (1 to 12, requires year)
        detector: Detector name substring (database only)
        username: Uploader name substring (database only)
        limit: Maximum number of tracks (1 to 50000, default 50)
    """
    return await _run("list_tracks", year=year, month=month, detector=detector,
                      username=username, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="get_track")
async def get_track(track_id: str, from_id: Optional[int] = None, to_id: Optional[int] = None,
                    limit: Optional[int] = 200) -> Dict[str, Any]:
    """
    Get the measurements of one track in capture order, with a track summary.

    Args:
        track_id: Track (bGeigie import) identifier
        from_id: First marker id to include
        to_id: Last marker id to include
        limit: Maximum number of measurements (1 to 10000, default 200)
    """
    return await _run("get_track", track_id=track_id, from_id=from_id, to_id=to_id, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="device_history")
async def device_history(device_id: str, days: Optional[int] = 30,
                         limit: Optional[int] = 200) -> Dict[str, Any]:
    """
    Get the readings of one device over the last N days, newest first.

    Args:
        device_id: Device identifier
        days: Number of whole days to look back (1 to 365, default 30)
        limit: Maximum number of readings (1 to 10000, default 200)
    """
    return await _run("device_history", device_id=device_id, days=days, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="get_spectrum")
async def get_spectrum(marker_id: int) -> Dict[str, Any]:
    """Get the full gamma spectrum (channel counts included) recorded with one measurement."""
    return await _run("get_spectrum", marker_id=marker_id)


@mcp.tool()
@trace_mcp_tool(tool_name="list_spectra")
async def list_spectra(min_lat: Optional[float] = None, max_lat: Optional[float] = None,
                       min_lon: Optional[float] = None, max_lon: Optional[float] = None,
                       source_format: Optional[str] = None, device_model: Optional[str] = None,
                       track_id: Optional[str] = None, limit: Optional[int] = 50) -> Dict[str, Any]:
    """
    List gamma spectroscopy records without their channel data.

    Args:
        min_lat, max_lat, min_lon, max_lon: Optional bounding box (all four or none)
        source_format: Exact file format (e.g. spe, csv)
        device_model: Spectrometer model substring
        track_id: Track identifier
        limit: Maximum number of spectra (1 to 500, default 50)
    """
    return await _run("list_spectra", min_lat=min_lat, max_lat=max_lat, min_lon=min_lon,
                      max_lon=max_lon, source_format=source_format, device_model=device_model,
                      track_id=track_id, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="list_sensors")
async def list_sensors(type: Optional[str] = None, min_lat: Optional[float] = None,
                       max_lat: Optional[float] = None, min_lon: Optional[float] = None,
                       max_lon: Optional[float] = None, limit: Optional[int] = 50) -> Dict[str, Any]:
    """
    Discover fixed sensors (Pointcast, Solarcast, bGeigieZen ...) with their last reading time.

    Args:
        type: Sensor type substring
        min_lat, max_lat, min_lon, max_lon: Optional bounding box (defaults to the whole globe)
        limit: Maximum number of sensors (1 to 1000, default 50)
    """
    return await _run("list_sensors", type=type, min_lat=min_lat, max_lat=max_lat,
                      min_lon=min_lon, max_lon=max_lon, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="sensor_current")
async def sensor_current(device_id: Optional[str] = None, min_lat: Optional[float] = None,
                         max_lat: Optional[float] = None, min_lon: Optional[float] = None,
                         max_lon: Optional[float] = None, limit: Optional[int] = 25) -> Dict[str, Any]:
    """
    Get the latest reading of one sensor, or of every sensor in a bounding box.

    Args:
        device_id: Sensor device identifier
        min_lat, max_lat, min_lon, max_lon: Optional bounding box
        limit: Maximum number of readings (1 to 1000, default 25)
    """
    return await _run("sensor_current", device_id=device_id, min_lat=min_lat, max_lat=max_lat,
                      min_lon=min_lon, max_lon=max_lon, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="sensor_history")
async def sensor_history(device_id: str, start_date: str, end_date: Optional[str] = None,
                         limit: Optional[int] = 200) -> Dict[str, Any]:
    """
    Get the readings of one fixed sensor between two dates, oldest first.

    Args:
        device_id: Sensor device identifier
        start_date: First day, YYYY-MM-DD
        end_date: Last day, YYYY-MM-DD (defaults to today)
        limit: Maximum number of readings (1 to 10000, default 200)
    """
    return await _run("sensor_history", device_id=device_id, start_date=start_date,
                      end_date=end_date, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="search_tracks_by_location")
async def search_tracks_by_location(country: Optional[str] = None, min_lat: Optional[float] = None,
                                    max_lat: Optional[float] = None, min_lon: Optional[float] = None,
                                    max_lon: Optional[float] = None, year: Optional[int] = None,
                                    month: Optional[int] = None, limit: Optional[int] = 50) -> Dict[str, Any]:
    """
    Find tracks recorded inside a country or a bounding box.

    Args:
        country: Country name from the predefined list (e.g. Japan, Germany)
        min_lat, max_lat, min_lon, max_lon: Bounding box, used when no country is given
        year: Recording year
        month: Recording month (requires year)
        limit: Maximum number of tracks (1 to 50000, default 50)
    """
    return await _run("search_tracks_by_location", country=country, min_lat=min_lat, max_lat=max_lat,
                      min_lon=min_lon, max_lon=max_lon, year=year, month=month, limit=limit)


@mcp.tool()
@trace_mcp_tool(tool_name="top_uploaders")
async def top_uploaders(limit: Optional[int] = 20, sort_by: Optional[str] = "upload_count",
                        year: Optional[int] = None) -> Dict[str, Any]:
    """
    Rank uploaders by number of uploads or by total uploaded size.

    Args:
        limit: Number of uploaders (1 to 100, default 20)
        sort_by: upload_count or total_size
        year: Only count uploads recorded in this year
    """
    return await _run("top_uploaders", limit=limit, sort_by=sort_by, year=year)


@mcp.tool()
@trace_mcp_tool(tool_name="radiation_info")
async def radiation_info(topic: str) -> Dict[str, Any]:
    """
    Reference information about radiation.

    Args:
        topic: One of units, dose_rates, safety_levels, detectors, background_levels, isotopes
    """
    return await _run("radiation_info", topic=topic)


@mcp.tool()
@trace_mcp_tool(tool_name="db_info")
async def db_info() -> Dict[str, Any]:
    """Report which PostgreSQL server is answering: version, replica status, replication lag, upload counts."""
    return await _run("db_info")


@mcp.tool()
@trace_mcp_tool(tool_name="radiation_stats")
async def radiation_stats(interval: Optional[str] = "year") -> Dict[str, Any]:
    """
    Aggregate dose-rate statistics computed by DuckDB over the attached database.

    Args:
        interval: year, month (last twelve months) or overall
    """
    return await _run("radiation_stats", interval=interval)


@mcp.tool()
@trace_mcp_tool(tool_name="query_extreme_readings")
async def query_extreme_readings(direction: Optional[str] = "highest", limit: Optional[int] = 10,
                                 min_lat: Optional[float] = None, max_lat: Optional[float] = None,
                                 min_lon: Optional[float] = None, max_lon: Optional[float] = None,
                                 exclude_devices: Optional[List[str]] = None,
                                 exclude_areas: Optional[str] = None) -> Dict[str, Any]:
    """
    Find the highest or lowest plausible readings, optionally inside a bounding box.

    Args:
        direction: highest or lowest
        limit: Number of readings (1 to 100, default 10)
        min_lat, max_lat, min_lon, max_lon: Optional bounding box
        exclude_devices: Device ids to leave out
        exclude_areas: JSON array of {min_lat, max_lat, min_lon, max_lon} boxes to leave out
    """
    return await _run("query_extreme_readings", direction=direction, limit=limit, min_lat=min_lat,
                      max_lat=max_lat, min_lon=min_lon, max_lon=max_lon,
                      exclude_devices=exclude_devices, exclude_areas=exclude_areas)


@mcp.tool()
@trace_mcp_tool(tool_name="query_analytics")
async def query_analytics() -> Dict[str, Any]:
    """Per-tool call counts and average/maximum duration from the local audit log."""
    return await _run("query_analytics")


@mcp.tool()
@trace_mcp_tool(tool_name="query_duckdb_logs")
async def query_duckdb_logs(query: str) -> Dict[str, Any]:
    """
    Run a read-only SELECT against the local audit log (table mcp_query_log).

    Args:
        query: A single SELECT statement
    """
    return await _run("query_duckdb_logs", query=query)


@mcp.tool()
@trace_mcp_tool(tool_name="ping")
async def ping() -> Dict[str, Any]:
    """Liveness check reporting database and analytics availability."""
    return await _run("ping")


if __name__ == "__main__":
    import signal
    import atexit

    def shutdown_handler():
        context.analytics.close()
        if telemetry_enabled:
            from src.telemetry.config import shutdown_telemetry
            shutdown_telemetry()

    # Register shutdown on exit and signal
    atexit.register(shutdown_handler)
    signal.signal(signal.SIGTERM, lambda signum, frame: shutdown_handler())
    signal.signal(signal.SIGINT, lambda signum, frame: shutdown_handler())

    session_logger.info(f"starting safecast mcp | host:{MCP_HOST} | port:{MCP_PORT}")
    mcp.run(transport="streamable-http", host=MCP_HOST, port=MCP_PORT)
