"""
Reference and diagnostics tools: radiation_info, db_info and ping.
"""

from typing import Any, Dict

import asyncpg

from src.logging import db_logger
from src.measurements import row_to_json
from src.postgres import queries

from . import params
from .context import ToolContext
from .envelopes import AI_GENERATED_NOTE, AI_HINT
from .errors import InvalidParameterError

REFERENCE_TOPICS: Dict[str, Dict[str, Any]] = {
    "units": {
        "title": "Radiation measurement units",
        "summary": "Safecast devices report raw counts (CPM) which are converted to dose rates (µSv/h) using a detector-specific calibration factor.",
        "entries": {
            "CPM": "Counts per minute: the number of ionizing events a Geiger-Mueller tube registers in one minute. It depends on the detector and is not a dose.",
            "µSv/h": "Microsieverts per hour: ambient dose equivalent rate. For a bGeigie Nano with an LND 7317 tube, 334 CPM corresponds to about 1 µSv/h.",
            "Sv": "Sievert: SI unit of equivalent and effective dose. 1 Sv = 1,000 mSv = 1,000,000 µSv.",
            "Bq": "Becquerel: one radioactive decay per second. Measures activity of a source, not dose.",
            "Gy": "Gray: absorbed dose, one joule of energy per kilogram of matter.",
            "rem": "Legacy unit of equivalent dose. 1 Sv = 100 rem.",
        },
    },
    "dose_rates": {
        "title": "Typical ambient dose rates",
        "summary": "Ambient dose rates vary with geology, altitude and local contamination.",
        "entries": {
            "typical_background": "0.05 to 0.20 µSv/h at ground level in most inhabited areas.",
            "elevated_natural": "0.2 to 1.0 µSv/h over granite, volcanic soils or thorium-rich sands.",
            "commercial_flight": "2 to 5 µSv/h at cruising altitude from cosmic radiation.",
            "annual_average": "About 2.4 mSv per year worldwide from natural sources.",
        },
    },
    "safety_levels": {
        "title": "Reference dose limits",
        "summary": "Regulatory limits concern accumulated dose over a period, not momentary readings.",
        "entries": {
            "public_limit": "1 mSv per year above background for members of the public (ICRP recommendation).",
            "occupational_limit": "20 mSv per year averaged over five years for radiation workers, with no single year above 50 mSv.",
            "evacuation_reference": "20 mSv per year was the reference level used for evacuation zoning in Fukushima Prefecture after 2011.",
            "acute_effects": "Deterministic health effects appear above roughly 1,000 mSv received over a short time.",
        },
    },
    "detectors": {
        "title": "Detectors used in the Safecast dataset",
        "summary": "Most measurements come from Geiger-Mueller counters; some fixed sensors and spectrometers use scintillators.",
        "entries": {
            "bGeigie Nano": "Mobile logger with an LND 7317 pancake tube and GPS, recording one reading every five seconds along a drive or walk.",
            "bGeigie Zen": "Successor of the Nano with the same logging format.",
            "Pointcast": "Fixed network sensor with two tubes, reporting every few minutes.",
            "Solarcast": "Solar-powered fixed sensor reporting over cellular networks.",
            "Gamma spectrometer": "Scintillation detector recording counts per energy channel, used to identify isotopes.",
        },
    },
    "background_levels": {
        "title": "Natural background radiation",
        "summary": "Background radiation comes from cosmic rays, terrestrial radionuclides and radon.",
        "entries": {
            "cosmic": "Increases with altitude and latitude; roughly doubles every 1,500 to 2,000 m of elevation.",
            "terrestrial": "Uranium, thorium and potassium-40 in soil and building materials.",
            "radon": "Radon gas from the ground is the largest contributor to natural dose indoors.",
            "variation": "Rain can briefly raise readings as radon progeny wash out of the air.",
        },
    },
    "isotopes": {
        "title": "Isotopes of interest",
        "summary": "Half-lives and emission types of isotopes commonly discussed with the Safecast dataset.",
        "entries": {
            "Cs-137": "Half-life 30.2 years; beta emitter with a 662 keV gamma line from its Ba-137m daughter. Dominant long-term contaminant after Chernobyl and Fukushima.",
            "Cs-134": "Half-life 2.06 years; gamma lines at 605 and 796 keV.",
            "I-131": "Half-life 8.02 days; gamma line at 364 keV. Concentrates in the thyroid.",
            "K-40": "Half-life 1.25 billion years; natural isotope with a 1,461 keV gamma line.",
            "Rn-222": "Half-life 3.8 days; gas from the uranium decay chain.",
        },
    },
}


async def radiation_info(ctx: ToolContext, topic: Any = None) -> Dict[str, Any]:
    raw = params.text("topic", topic, required=True)
    normalized = raw.lower().replace("-", "_")
    if normalized not in REFERENCE_TOPICS:
        raise InvalidParameterError(
            f"Invalid topic: {raw!r}. Valid topics: {', '.join(REFERENCE_TOPICS)}", "topic")
    return {
        "topic": normalized,
        "content": REFERENCE_TOPICS[normalized],
        "source": "reference",
        "_ai_hint": AI_HINT,
        "_ai_generated_note": AI_GENERATED_NOTE,
    }


async def _info_row(ctx: ToolContext, key: str) -> Dict[str, Any]:
    try:
        row = await ctx.database.fetchrow(queries.DB_INFO_SQL[key])
    except asyncpg.PostgresError as e:
        db_logger.warning(f"db_info item skipped | item:{key} | error:{e}")
        return {}
    return row_to_json(row) if row else {}


async def db_info(ctx: ToolContext) -> Dict[str, Any]:
    """
    Which PostgreSQL server the tools are reading from.

    Each item is fetched on its own; an item the server refuses is left out
    rather than failing the whole report.
    """
    ctx.router.route("db_info", {})

    info: Dict[str, Any] = {}
    info.update((await _info_row(ctx, "version")))
    database = await _info_row(ctx, "database")
    if database:
        info["database"] = database.get("db_name")
        info["user"] = database.get("username")

    recovery = await _info_row(ctx, "recovery")
    if recovery:
        is_replica = bool(recovery.get("in_recovery"))
        info["is_replica"] = is_replica
        info["mode"] = "read replica (replication lag possible)" if is_replica else "primary/master"
        if is_replica:
            lag = await _info_row(ctx, "replication")
            if lag:
                info["replication_lag_seconds"] = lag.get("lag_seconds")
                info["last_replay_time"] = lag.get("last_replay_time")

    uploads = await _info_row(ctx, "uploads")
    if uploads:
        info["uploads_count"] = uploads.get("total")
        info["max_upload_id"] = uploads.get("max_id")

    return {
        "status": "connected",
        "source": "database",
        "connection": info,
        "_ai_generated_note": AI_GENERATED_NOTE,
    }


async def ping(ctx: ToolContext) -> Dict[str, Any]:
    analytics = ctx.analytics
    return {
        "status": "ok",
        "database": ctx.database_available,
        "analytics": analytics is not None and analytics.available,
        "postgres_attached": bool(analytics is not None and analytics.available and analytics.postgres_attached),
        "api_fallback": not ctx.database_available,
    }
