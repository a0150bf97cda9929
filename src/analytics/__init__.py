"""
Analytics federation and audit logging

Provides the DuckDB engine (audit store plus the attached PostgreSQL
database) and the non-blocking audit logger that records every tool call.
"""

from .config import (
    get_analytics_config,
    get_audit_config,
    is_entire_configured,
    validate_audit_config
)
from .engine import (
    ATTACHED_DB,
    EXTREME_DIRECTIONS,
    RADIATION_STATS_SQL,
    AnalyticsEngine,
    AnalyticsUnavailableError,
    extreme_readings_query,
    is_select_only
)
from .audit import AuditLogger, get_commit_hash, sanitize_query

__all__ = [
    # Configuration
    'get_analytics_config',
    'get_audit_config',
    'is_entire_configured',
    'validate_audit_config',

    # Engine
    'ATTACHED_DB',
    'EXTREME_DIRECTIONS',
    'RADIATION_STATS_SQL',
    'AnalyticsEngine',
    'AnalyticsUnavailableError',
    'extreme_readings_query',
    'is_select_only',

    # Audit
    'AuditLogger',
    'get_commit_hash',
    'sanitize_query'
]
