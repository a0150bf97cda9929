"""
REST surface

GET endpoints that expose the same tools and envelopes over plain HTTP.
"""

from .routes import (
    CORS_HEADERS,
    REST_ROUTES,
    RestRoute,
    error_response,
    handle,
    register_routes,
    route_arguments
)

__all__ = [
    'CORS_HEADERS',
    'REST_ROUTES',
    'RestRoute',
    'error_response',
    'handle',
    'register_routes',
    'route_arguments'
]
