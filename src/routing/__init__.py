"""
Source routing

Decides per request whether the database or the Safecast REST API
answers a logical operation.
"""

from .router import (
    OPERATIONS,
    BackendRequiredError,
    OperationProfile,
    RouteDecision,
    Source,
    SourceRouter
)

__all__ = [
    'OPERATIONS',
    'BackendRequiredError',
    'OperationProfile',
    'RouteDecision',
    'Source',
    'SourceRouter'
]
