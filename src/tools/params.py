"""
Parameter parsing and range validation shared by the MCP and REST surfaces.

REST query strings arrive as text and MCP arguments as JSON values, so every
parser accepts both. Out-of-range values raise InvalidParameterError; they
are never silently clamped.
"""

import json
import math
from datetime import date, datetime
from typing import Any, List, Optional, Sequence

from src.measurements import BoundingBox

from .errors import InvalidParameterError

WORLD = BoundingBox(-90.0, 90.0, -180.0, 180.0)


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidParameterError(f"{name} must be a number", name)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"{name} must be a number", name) from None
    if not math.isfinite(number):
        raise InvalidParameterError(f"{name} must be a finite number", name)
    return number


def _to_int(name: str, value: Any) -> int:
    number = _to_float(name, value)
    if not number.is_integer():
        raise InvalidParameterError(f"{name} must be an integer", name)
    return int(number)


def _check_range(name: str, value, minimum, maximum):
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        raise InvalidParameterError(f"{name} must be between {minimum} and {maximum}", name)
    return value


def number(name: str, value: Any, minimum: float = None, maximum: float = None,
           default: Optional[float] = None, required: bool = False) -> Optional[float]:
    if _blank(value):
        if required:
            raise InvalidParameterError(f"{name} is required", name)
        return default
    return _check_range(name, _to_float(name, value), minimum, maximum)


def integer(name: str, value: Any, minimum: int = None, maximum: int = None,
            default: Optional[int] = None, required: bool = False) -> Optional[int]:
    if _blank(value):
        if required:
            raise InvalidParameterError(f"{name} is required", name)
        return default
    return _check_range(name, _to_int(name, value), minimum, maximum)


def text(name: str, value: Any, required: bool = False) -> Optional[str]:
    if _blank(value):
        if required:
            raise InvalidParameterError(f"{name} is required", name)
        return None
    return str(value).strip()


def choice(name: str, value: Any, options: Sequence[str], default: str) -> str:
    selected = text(name, value) or default
    selected = selected.lower()
    if selected not in options:
        raise InvalidParameterError(f"{name} must be one of: {', '.join(options)}", name)
    return selected


def latitude(name: str, value: Any, required: bool = True) -> Optional[float]:
    return number(name, value, -90, 90, required=required)


def longitude(name: str, value: Any, required: bool = True) -> Optional[float]:
    return number(name, value, -180, 180, required=required)


def bounding_box(min_lat: Any, max_lat: Any, min_lon: Any, max_lon: Any,
                 required: bool = True) -> Optional[BoundingBox]:
    """
    Validate a bounding box given as four edges.

    The edges are all-or-none: with required=False and no edge given,
    returns None.
    """
    edges = (min_lat, max_lat, min_lon, max_lon)
    given = [not _blank(edge) for edge in edges]
    if not any(given) and not required:
        return None
    if not all(given):
        raise InvalidParameterError(
            "All four bounding box parameters (min_lat, max_lat, min_lon, max_lon) must be provided together")

    box = BoundingBox(
        min_lat=latitude("min_lat", min_lat),
        max_lat=latitude("max_lat", max_lat),
        min_lon=longitude("min_lon", min_lon),
        max_lon=longitude("max_lon", max_lon),
    )
    if box.min_lat >= box.max_lat:
        raise InvalidParameterError("min_lat must be less than max_lat", "min_lat")
    if box.min_lon >= box.max_lon:
        raise InvalidParameterError("min_lon must be less than max_lon", "min_lon")
    return box


def year_month(year: Any, month: Any):
    """Validate the year/month pair used by track listings; month needs a year."""
    year = integer("year", year, 2000, 2100)
    month = integer("month", month, 1, 12)
    if month is not None and year is None:
        raise InvalidParameterError("Month filter requires year parameter", "month")
    return year, month


def iso_date(name: str, value: Any, default: Optional[date] = None, required: bool = False) -> Optional[date]:
    raw = text(name, value, required=required)
    if raw is None:
        return default
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidParameterError(f"{name} must be in YYYY-MM-DD format", name) from None


def string_list(name: str, value: Any) -> List[str]:
    """A list given as a JSON array, a comma-separated string or a Python sequence."""
    if _blank(value):
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                value = json.loads(stripped)
            except ValueError:
                raise InvalidParameterError(f"{name} must be a JSON array or comma-separated list", name) from None
        else:
            value = stripped.split(",")
    if not isinstance(value, (list, tuple)):
        raise InvalidParameterError(f"{name} must be a list", name)
    return [str(item).strip() for item in value if str(item).strip()]


def box_list(name: str, value: Any) -> List[BoundingBox]:
    """A JSON array of {min_lat, max_lat, min_lon, max_lon} objects."""
    if _blank(value):
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise InvalidParameterError(f"Invalid {name} JSON: {e}", name) from None
    if not isinstance(value, list):
        raise InvalidParameterError(f"{name} must be a JSON array of bounding boxes", name)

    boxes = []
    for item in value:
        if not isinstance(item, dict):
            raise InvalidParameterError(f"{name} entries must be objects with min_lat, max_lat, min_lon, max_lon", name)
        boxes.append(bounding_box(item.get("min_lat"), item.get("max_lat"), item.get("min_lon"), item.get("max_lon")))
    return boxes
