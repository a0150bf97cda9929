"""
Backend selection between the PostgreSQL database and the Safecast REST API.

Each operation is annotated with the filters the REST API can honor. The
router is a pure function of that table, the database liveness flag, the
request filters and the current year:

    router = SourceRouter(lambda: database.available)
    source = router.route("list_tracks", {"year": 2019})
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional

from src.logging import router_logger
from src.telemetry.metrics import record_routing_decision
from src.telemetry.utils import add_routing_context


class BackendRequiredError(Exception):
    """The database is required for this request but is not connected"""

    def __init__(self, message: str = "database connection required", operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class Source(str, Enum):
    DATABASE = "database"
    API = "api"


@dataclass(frozen=True)
class OperationProfile:
    """
    Capabilities of one logical operation.

    rest_filters is the set of request filters the REST path can apply,
    natively or by local re-filtering. None means the operation has no REST
    equivalent at all. recency_window enables the year-based rule that sends
    recent or unbounded windows to the API.
    """
    name: str
    rest_filters: Optional[FrozenSet[str]] = None
    recency_window: bool = False

    @property
    def has_rest_path(self) -> bool:
        return self.rest_filters is not None


@dataclass(frozen=True)
class RouteDecision:
    source: Source
    reason: str


def _profile(name: str, rest_filters=None, recency_window: bool = False) -> OperationProfile:
    return OperationProfile(
        name=name,
        rest_filters=frozenset(rest_filters) if rest_filters is not None else None,
        recency_window=recency_window,
    )


OPERATIONS: Dict[str, OperationProfile] = {
    profile.name: profile for profile in (
        _profile("query_radiation", {"lat", "lon", "radius_m", "limit"}),
        _profile("search_area", {"min_lat", "max_lat", "min_lon", "max_lon", "limit"}),
        _profile("list_tracks", {"year", "month", "limit"}, recency_window=True),
        _profile("get_track", {"track_id", "from_id", "to_id", "limit"}),
        _profile("device_history", {"device_id", "days", "limit"}),
        _profile("get_spectrum"),
        _profile("list_spectra"),
        _profile("list_sensors"),
        _profile("sensor_current"),
        _profile("sensor_history"),
        _profile("search_tracks_by_location"),
        _profile("top_uploaders"),
        _profile("db_info"),
    )
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceRouter:
    """Chooses the backend for each operation"""

    def __init__(self, database_available: Callable[[], bool],
                 clock: Callable[[], datetime] = _utcnow,
                 operations: Optional[Mapping[str, OperationProfile]] = None):
        self._database_available = database_available
        self._clock = clock
        self._operations = dict(operations or OPERATIONS)

    def profile(self, operation: str) -> OperationProfile:
        try:
            return self._operations[operation]
        except KeyError:
            raise ValueError(f"unknown operation: {operation}") from None

    def supports_filter(self, source: Source, operation: str, name: str) -> bool:
        """Whether the given backend can apply filter `name` for this operation."""
        if Source(source) is Source.DATABASE:
            return True
        rest_filters = self.profile(operation).rest_filters
        return rest_filters is not None and name in rest_filters

    def decide(self, operation: str, filters: Optional[Mapping[str, Any]] = None) -> RouteDecision:
        profile = self.profile(operation)
        provided = {name for name, value in (filters or {}).items() if value is not None and value != ""}
        unsupported = sorted(name for name in provided if not self.supports_filter(Source.API, operation, name))

        if not self._database_available():
            if not profile.has_rest_path:
                raise BackendRequiredError(
                    f"database connection required: {operation} has no REST API equivalent", operation)
            if unsupported:
                raise BackendRequiredError(
                    f"database connection required: filters {', '.join(unsupported)} are not supported by the REST API",
                    operation)
            return RouteDecision(Source.API, "database_unavailable")

        if not profile.has_rest_path:
            return RouteDecision(Source.DATABASE, "database_only")
        if unsupported:
            return RouteDecision(Source.DATABASE, "filter_requires_database")

        if profile.recency_window:
            year = (filters or {}).get("year")
            cutoff = self._clock().year - 1
            if year is None or int(year) >= cutoff:
                return RouteDecision(Source.API, "recent_window")
            return RouteDecision(Source.DATABASE, "historical_window")

        return RouteDecision(Source.DATABASE, "database_available")

    def route(self, operation: str, filters: Optional[Mapping[str, Any]] = None) -> Source:
        """Return the backend for this request; raises BackendRequiredError when none can serve it."""
        try:
            decision = self.decide(operation, filters)
        except BackendRequiredError:
            router_logger.warning(f"backend required | operation:{operation} | database:unavailable")
            record_routing_decision(operation, "none", "backend_required")
            raise

        router_logger.debug(f"route | operation:{operation} | source:{decision.source.value} | reason:{decision.reason}")
        record_routing_decision(operation, decision.source.value, decision.reason)
        add_routing_context(operation, decision.source.value, decision.reason)
        return decision.source
