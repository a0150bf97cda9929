"""
Parameterized SQL assembly for the fixed set of read queries.

A Fragment is a piece of SQL whose positional slots ({0}, {1}, ...) are
bound to its own argument tuple. A Predicate is an ordered, immutable
conjunction of fragments. A Statement renders a template around one
predicate so the data query and its count query share the exact same
WHERE text and arguments:

    predicate = Predicate().where("m.trackid = {0}", track_id)
    statement = Statement(TEMPLATE, predicate, limit=200, count_template=COUNT)
    sql, args = statement.build()
    count_sql, count_args = statement.build_count()

Templates reference the predicate as {where}, the row limit as {limit}
and named fragments as {name}. Placeholders are numbered predicate first,
then fragments, then the limit, so the predicate text is byte-identical
in both statements.
"""

import math
import re
import string
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Sequence, Tuple

from src.measurements.geo import BoundingBox

_FORMATTER = string.Formatter()
_PLACEHOLDER = re.compile(r"\$(\d+)")
_TOKEN = re.compile(r"\{([a-z_]+)\}")

# Meters per degree of latitude, rounded down so the coarse box never undershoots
METERS_PER_DEGREE = 111000.0


def _slot_indexes(template: str) -> set:
    indexes = set()
    for _, field_name, _, _ in _FORMATTER.parse(template):
        if field_name is None:
            continue
        if not field_name.isdigit():
            raise ValueError(f"fragment slots must be positional, got {{{field_name}}} in: {template}")
        indexes.add(int(field_name))
    return indexes


def placeholder_numbers(sql: str) -> set:
    """Distinct $n placeholder numbers used in a statement."""
    return {int(n) for n in _PLACEHOLDER.findall(sql)}


def check_parity(sql: str, args: Sequence[Any]) -> None:
    """Raise if the placeholders in sql are not exactly $1..$len(args)."""
    used = placeholder_numbers(sql)
    expected = set(range(1, len(args) + 1))
    if used != expected:
        raise ValueError(
            f"placeholder/argument mismatch: statement uses {sorted(used)}, "
            f"{len(args)} arguments supplied"
        )


@dataclass(frozen=True)
class Fragment:
    """SQL text with positional slots bound to its own arguments."""
    template: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        slots = _slot_indexes(self.template)
        if slots != set(range(len(self.args))):
            raise ValueError(
                f"fragment expects slots {sorted(slots)} but has {len(self.args)} arguments: {self.template}"
            )

    def render(self, start: int) -> Tuple[str, int]:
        """Return the SQL with slots numbered from $start, and the next free number."""
        placeholders = [f"${start + i}" for i in range(len(self.args))]
        return self.template.format(*placeholders), start + len(self.args)


@dataclass(frozen=True)
class Predicate:
    """Ordered conjunction of fragments. Every method returns a new Predicate."""
    clauses: Tuple[Fragment, ...] = ()

    def where(self, template: str, *args: Any) -> "Predicate":
        return Predicate(self.clauses + (Fragment(template, tuple(args)),))

    def extend(self, fragment: Fragment) -> "Predicate":
        return Predicate(self.clauses + (fragment,))

    def where_if(self, condition: bool, template: str, *args: Any) -> "Predicate":
        return self.where(template, *args) if condition else self

    @property
    def args(self) -> List[Any]:
        return [arg for clause in self.clauses for arg in clause.args]

    def render(self, start: int = 1) -> Tuple[str, List[Any], int]:
        if not self.clauses:
            return "TRUE", [], start

        parts = []
        index = start
        for clause in self.clauses:
            text, index = clause.render(index)
            parts.append(text)
        return "\n  AND ".join(parts), self.args, index


@dataclass(frozen=True)
class Statement:
    """A data statement and its matching count statement over one predicate."""
    template: str
    predicate: Predicate = Predicate()
    limit: Optional[int] = None
    fragments: Tuple[Tuple[str, Fragment], ...] = ()
    count_template: Optional[str] = None

    def build(self) -> Tuple[str, List[Any]]:
        where_sql, args, index = self.predicate.render(1)
        sql = self.template.replace("{where}", where_sql)

        for name, fragment in self.fragments:
            token = "{" + name + "}"
            if token not in sql:
                raise ValueError(f"template has no {token} slot")
            fragment_sql, index = fragment.render(index)
            sql = sql.replace(token, fragment_sql)
            args.extend(fragment.args)

        if "{limit}" in sql:
            if self.limit is None:
                raise ValueError("template has a {limit} slot but no limit was given")
            if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
                raise TypeError(f"limit must be a positive integer, got {self.limit!r}")
            sql = sql.replace("{limit}", f"${index}")
            args.append(self.limit)
        elif self.limit is not None:
            raise ValueError("limit given but template has no {limit} slot")

        self._check_rendered(sql, args)
        return sql, args

    def build_count(self) -> Tuple[str, List[Any]]:
        if self.count_template is None:
            raise ValueError("statement has no count template")
        where_sql, args, _ = self.predicate.render(1)
        sql = self.count_template.replace("{where}", where_sql)
        self._check_rendered(sql, args)
        return sql, args

    @staticmethod
    def _check_rendered(sql: str, args: List[Any]) -> None:
        leftover = _TOKEN.findall(sql)
        if leftover:
            raise ValueError(f"unfilled template slots: {leftover}")
        check_parity(sql, args)


def like_pattern(term: str) -> str:
    """Case-insensitive substring pattern with LIKE wildcards in the term escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def point(lat_slot: str = "{0}", lon_slot: str = "{1}") -> str:
    return f"ST_SetSRID(ST_MakePoint({lon_slot}::float8, {lat_slot}::float8), 4326)"


def within_radius(lat: float, lon: float, radius_m: float, column: str = "m.geom") -> Fragment:
    """
    Proximity predicate: index-accelerated envelope test AND exact spherical distance.

    The envelope is widened in longitude by 1/cos(lat) so it always contains
    the radius circle; ST_DWithin on the sphere (use_spheroid false) then trims
    it to the circle, matching the haversine filter used on the REST path.
    """
    dy = radius_m / METERS_PER_DEGREE
    dx = radius_m / (METERS_PER_DEGREE * max(math.cos(math.radians(lat)), 0.01))
    origin = point("{0}", "{1}")
    template = (
        f"{column} && ST_Expand({origin}, {{3}}::float8, {{4}}::float8)"
        f"\n  AND ST_DWithin({column}::geography, {origin}::geography, {{2}}::float8, false)"
    )
    return Fragment(template, (lat, lon, float(radius_m), dx, dy))


def within_bbox(box: BoundingBox, column: str = "m.geom") -> Fragment:
    """Envelope containment; for point geometries && is exact and inclusive on every edge."""
    return Fragment(
        f"{column} && ST_MakeEnvelope({{0}}::float8, {{1}}::float8, {{2}}::float8, {{3}}::float8, 4326)",
        (box.min_lon, box.min_lat, box.max_lon, box.max_lat),
    )


def within_latlon_columns(box: BoundingBox, lat_column: str = "lat", lon_column: str = "lon") -> Fragment:
    """Inclusive bounding box over plain latitude/longitude columns."""
    return Fragment(
        f"{lat_column} >= {{0}} AND {lat_column} <= {{1}} AND {lon_column} >= {{2}} AND {lon_column} <= {{3}}",
        (box.min_lat, box.max_lat, box.min_lon, box.max_lon),
    )


def month_window(year: int, month: Optional[int] = None) -> Tuple[date, date]:
    """Half-open [start, end) date window for a year or a single month."""
    if not month:
        return date(year, 1, 1), date(year + 1, 1, 1)
    if month == 12:
        return date(year, 12, 1), date(year + 1, 1, 1)
    return date(year, month, 1), date(year, month + 1, 1)
