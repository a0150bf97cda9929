"""
PostgreSQL/PostGIS access

Provides the parameterized statement builder, the fixed set of query
shapes used by the tools, and the asyncpg connection pool.
"""

from .sql_builder import (
    Fragment,
    Predicate,
    Statement,
    check_parity,
    like_pattern,
    month_window,
    placeholder_numbers,
    within_bbox,
    within_latlon_columns,
    within_radius
)
from .database import (
    RadiationDatabase,
    get_database_config,
    is_database_configured,
    validate_database_config
)
from . import queries

__all__ = [
    # Statement building
    'Fragment',
    'Predicate',
    'Statement',
    'check_parity',
    'like_pattern',
    'month_window',
    'placeholder_numbers',
    'within_bbox',
    'within_latlon_columns',
    'within_radius',

    # Query shapes
    'queries',

    # Connection pool
    'RadiationDatabase',
    'get_database_config',
    'is_database_configured',
    'validate_database_config'
]
