"""
Great-circle helpers and the bounding-box value type shared by the
database and REST API paths.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

EARTH_RADIUS_M = 6371e3

# Upper bound on the radius sent to the upstream center+distance endpoint
MAX_FETCH_RADIUS_M = 50000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class BoundingBox:
    """A (min_lat, max_lat, min_lon, max_lon) rectangle. All edges are inclusive."""
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, latitude: Optional[float], longitude: Optional[float]) -> bool:
        if latitude is None or longitude is None:
            return False
        return (self.min_lat <= latitude <= self.max_lat
                and self.min_lon <= longitude <= self.max_lon)

    def centroid(self) -> Tuple[float, float]:
        return (self.min_lat + self.max_lat) / 2, (self.min_lon + self.max_lon) / 2

    def fetch_radius_m(self) -> float:
        """
        Radius for approximating this box with a center+distance request.

        0.6 of the corner-to-corner distance covers the box from its centroid
        with some margin, capped at MAX_FETCH_RADIUS_M. For very large or very
        non-square boxes the circle can miss corners or overshoot the sides;
        callers re-filter with contains() so the box stays authoritative.
        """
        diagonal = haversine_m(self.min_lat, self.min_lon, self.max_lat, self.max_lon)
        return min(diagonal * 0.6, MAX_FETCH_RADIUS_M)

    def describe(self) -> str:
        return f"bbox:[{self.min_lat:.2f},{self.min_lon:.2f},{self.max_lat:.2f},{self.max_lon:.2f}]"

    def to_payload(self) -> dict:
        return {
            "min_lat": self.min_lat,
            "max_lat": self.max_lat,
            "min_lon": self.min_lon,
            "max_lon": self.max_lon,
        }
