"""
Safecast REST API gateway

Typed client for the upstream services, its error taxonomy, and the
client-side filters that give REST results the same boundary semantics
as the database path.
"""

from .config import get_safecast_api_config, validate_safecast_api_config
from .client import (
    SafecastAPIClient,
    SafecastAPIError,
    NoResponseError,
    HTTPStatusError,
    MalformedResponseError
)
from .filters import (
    parse_timestamp,
    within_box,
    within_id_range,
    within_radius,
    within_window
)

__all__ = [
    # Configuration
    'get_safecast_api_config',
    'validate_safecast_api_config',

    # Client
    'SafecastAPIClient',
    'SafecastAPIError',
    'NoResponseError',
    'HTTPStatusError',
    'MalformedResponseError',

    # Client-side filters
    'parse_timestamp',
    'within_box',
    'within_id_range',
    'within_radius',
    'within_window'
]
