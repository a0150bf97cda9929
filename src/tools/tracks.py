"""
Track tools: listings, single-track pages, geographic search and uploader rankings.
"""

from decimal import Decimal
from typing import Any, Dict, List

from src.logging import query_logger
from src.measurements import normalize_measurements, normalize_track_upload, summarize_track
from src.postgres import queries
from src.routing import Source
from src.safecast_api import within_id_range

from . import params
from .context import ToolContext
from .countries import country_box
from .envelopes import success
from .errors import InvalidParameterError


def _last_id(track: Dict[str, Any]) -> float:
    try:
        return float(track.get("lastID") or 0)
    except (TypeError, ValueError):
        return 0.0


async def list_tracks(ctx: ToolContext, year: Any = None, month: Any = None, detector: Any = None,
                      username: Any = None, limit: Any = None) -> Dict[str, Any]:
    """
    Browse uploaded tracks by recording year/month, detector or uploader.

    Recent or unbounded windows come from the REST API, which orders the
    latest uploads the way the public map does; older years come from the
    database. Detector and uploader filters are database only.
    """
    year, month = params.year_month(year, month)
    detector = params.text("detector", detector)
    username = params.text("username", username)
    limit = params.integer("limit", limit, 1, 50000, default=50)

    filters = {"year": year, "month": month, "detector": detector, "username": username}
    source = ctx.router.route("list_tracks", {**filters, "limit": limit})

    if source is Source.DATABASE:
        statement = queries.track_uploads(limit, year=year, month=month, detector=detector, username=username)
        rows = await ctx.database.run(statement)
        total = await ctx.database.count(statement)
        tracks = [normalize_track_upload(row).to_payload() for row in rows]
        query_logger.info(f"list_tracks | source:database | year:{year} | month:{month} | count:{len(tracks)}")
        return success("database", "tracks", tracks, total_available=total, hint=False, filters=filters)

    index = await ctx.api.tracks(year, month)
    index.sort(key=_last_id, reverse=True)
    tracks = [normalize_track_upload(entry).to_payload() for entry in index[:limit]]
    query_logger.info(f"list_tracks | source:api | year:{year} | month:{month} | count:{len(tracks)}")
    return success("api", "tracks", tracks, total_available=len(index), hint=False, filters=filters)


async def get_track(ctx: ToolContext, track_id: Any = None, from_id: Any = None, to_id: Any = None,
                    limit: Any = None) -> Dict[str, Any]:
    """Measurements of one track in capture order, with a summary of the page."""
    track_id = params.text("track_id", track_id, required=True)
    from_id = params.integer("from", from_id, 0)
    to_id = params.integer("to", to_id, 0)
    limit = params.integer("limit", limit, 1, 10000, default=200)
    if from_id is not None and to_id is not None and from_id > to_id:
        raise InvalidParameterError("from must not be greater than to", "from")

    source = ctx.router.route("get_track", {"track_id": track_id, "from_id": from_id, "to_id": to_id,
                                            "limit": limit})

    if source is Source.DATABASE:
        statement = queries.track_measurements(track_id, limit, from_id=from_id, to_id=to_id)
        rows = await ctx.database.run(statement)
        total = await ctx.database.count(statement)
        measurements = normalize_measurements(rows)
    else:
        markers = await ctx.api.track(track_id, from_id, to_id)
        in_range = within_id_range(normalize_measurements(markers, include_uploader=False), from_id, to_id)
        total = len(in_range)
        measurements = in_range[:limit]

    summary = summarize_track(track_id, measurements)
    query_logger.info(f"get_track | source:{source.value} | track:{track_id} | count:{len(measurements)} | total:{total}")
    return success(source.value, "measurements", [m.to_payload() for m in measurements],
                   total_available=total, track_id=track_id, from_marker=from_id, to_marker=to_id,
                   summary=summary.to_payload())


async def search_tracks_by_location(ctx: ToolContext, country: Any = None, min_lat: Any = None,
                                    max_lat: Any = None, min_lon: Any = None, max_lon: Any = None,
                                    year: Any = None, month: Any = None, limit: Any = None) -> Dict[str, Any]:
    """Tracks whose measurements fall inside a country or an explicit bounding box."""
    country = params.text("country", country)
    year, month = params.year_month(year, month)
    limit = params.integer("limit", limit, 1, 50000, default=50)

    if country:
        box = country_box(country)
        if box is None:
            raise InvalidParameterError(
                f"Country '{country}' not found in predefined list. "
                "Please use min_lat, max_lat, min_lon, max_lon parameters instead.", "country")
        search_area = country
    else:
        box = params.bounding_box(min_lat, max_lat, min_lon, max_lon, required=False)
        if box is None:
            raise InvalidParameterError("Provide either country or all four bounding box parameters")
        search_area = "custom bounding box"

    ctx.router.route("search_tracks_by_location", {"bbox": box.describe(), "year": year, "month": month})

    statement = queries.tracks_in_area(box, limit, year=year, month=month)
    rows = await ctx.database.run(statement)
    total = await ctx.database.count(statement)
    tracks = [normalize_track_upload(row).to_payload() for row in rows]
    query_logger.info(f"search_tracks_by_location | area:{search_area} | count:{len(tracks)} | total:{total}")
    return success("database", "tracks", tracks, total_available=total, hint=False,
                   search_area=search_area, bounding_box=box.to_payload(),
                   filters={"year": year, "month": month})


def _megabytes(size: Any) -> float:
    if isinstance(size, Decimal):
        size = float(size)
    return round(float(size or 0) / (1024 * 1024), 2)


async def top_uploaders(ctx: ToolContext, limit: Any = None, sort_by: Any = None,
                        year: Any = None) -> Dict[str, Any]:
    limit = params.integer("limit", limit, 1, 100, default=20)
    sort_by = params.choice("sort_by", sort_by, tuple(queries.UPLOADER_SORTS), "upload_count")
    year = params.integer("year", year, 2000, 2100)

    ctx.router.route("top_uploaders", {"limit": limit, "sort_by": sort_by, "year": year})

    rows = await ctx.database.run(queries.top_uploaders(limit, sort_by=sort_by, year=year))
    uploaders: List[Dict[str, Any]] = [
        {
            "username": row.get("username"),
            "upload_count": row.get("upload_count"),
            "total_size_mb": _megabytes(row.get("total_size")),
            "devices": list(row.get("devices") or []),
            "primary_device": row.get("primary_device"),
        }
        for row in rows
    ]
    return success("database", "uploaders", uploaders, hint=False, sort_by=sort_by, filters={"year": year})
