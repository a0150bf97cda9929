"""
Dependencies handed to every tool handler.

Constructed once at startup (and per test with fakes); handlers never
reach for module-level connection handles.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from src.analytics import AnalyticsEngine, AnalyticsUnavailableError, AuditLogger
from src.postgres import RadiationDatabase
from src.routing import SourceRouter
from src.safecast_api import SafecastAPIClient


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ToolContext:
    database: Optional[RadiationDatabase]
    api: SafecastAPIClient
    analytics: Optional[AnalyticsEngine] = None
    audit: Optional[AuditLogger] = None
    clock: Callable[[], datetime] = utcnow
    router: SourceRouter = field(default=None)

    def __post_init__(self):
        if self.router is None:
            self.router = SourceRouter(lambda: self.database_available, clock=self.clock)

    @property
    def database_available(self) -> bool:
        return self.database is not None and self.database.available

    def require_analytics(self) -> AnalyticsEngine:
        if self.analytics is None or not self.analytics.available:
            raise AnalyticsUnavailableError()
        return self.analytics
