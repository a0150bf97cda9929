"""
Gamma spectroscopy tools. Channel arrays are only returned by get_spectrum.
"""

from typing import Any, Dict

from src.logging import query_logger
from src.measurements import normalize_spectrum
from src.postgres import queries

from . import params
from .context import ToolContext
from .envelopes import AI_GENERATED_NOTE, AI_HINT, success
from .errors import NotFoundError


async def get_spectrum(ctx: ToolContext, marker_id: Any = None) -> Dict[str, Any]:
    """Full spectrum (channels included) for one marker."""
    marker_id = params.integer("marker_id", marker_id, 1, required=True)
    ctx.router.route("get_spectrum", {"marker_id": marker_id})

    rows = await ctx.database.run(queries.spectrum_detail(marker_id))
    if not rows:
        marker = await ctx.database.fetchrow(queries.MARKER_EXISTS_SQL, marker_id)
        if marker is None:
            raise NotFoundError("Marker not found")
        message = "No spectrum data available for this marker."
        if marker.get("has_spectrum"):
            message = "Marker is flagged as having spectrum data but no spectrum record was found."
        return {
            "count": 0,
            "source": "database",
            "marker_id": marker_id,
            "available": False,
            "message": message,
            "spectrum": None,
        }

    spectrum = normalize_spectrum(rows[0], include_channels=True)
    query_logger.info(f"get_spectrum | marker:{marker_id} | channels:{spectrum.channel_count}")
    return {
        "count": 1,
        "source": "database",
        "marker_id": marker_id,
        "available": True,
        "spectrum": spectrum.to_payload(include_channels=True),
        "_ai_hint": AI_HINT,
        "_ai_generated_note": AI_GENERATED_NOTE,
    }


async def list_spectra(ctx: ToolContext, min_lat: Any = None, max_lat: Any = None, min_lon: Any = None,
                       max_lon: Any = None, source_format: Any = None, device_model: Any = None,
                       track_id: Any = None, limit: Any = None) -> Dict[str, Any]:
    box = params.bounding_box(min_lat, max_lat, min_lon, max_lon, required=False)
    source_format = params.text("source_format", source_format)
    device_model = params.text("device_model", device_model)
    track_id = params.text("track_id", track_id)
    limit = params.integer("limit", limit, 1, 500, default=50)

    filters = {
        "bbox": box.to_payload() if box else None,
        "source_format": source_format,
        "device_model": device_model,
        "track_id": track_id,
    }
    ctx.router.route("list_spectra", {**filters, "limit": limit})

    statement = queries.spectra_listing(limit, box=box, source_format=source_format,
                                        device_model=device_model, track_id=track_id)
    rows = await ctx.database.run(statement)
    total = await ctx.database.count(statement)
    spectra = [normalize_spectrum(row).to_payload() for row in rows]
    query_logger.info(f"list_spectra | count:{len(spectra)} | total:{total}")
    return success("database", "spectra", spectra, total_available=total, filters=filters)
