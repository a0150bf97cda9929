"""
Tool error types and their mapping onto HTTP status codes.
"""

from typing import Tuple

import asyncpg
import duckdb

from src.analytics.engine import AnalyticsUnavailableError
from src.routing.router import BackendRequiredError
from src.safecast_api.client import SafecastAPIError


class InvalidParameterError(ValueError):
    """A request parameter is missing, malformed or out of range"""

    def __init__(self, message: str, parameter: str = None):
        super().__init__(message)
        self.message = message
        self.parameter = parameter


class NotFoundError(LookupError):
    """The requested record does not exist"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def classify_error(error: BaseException) -> Tuple[int, str]:
    """HTTP status and caller-facing message for an exception raised by a tool."""
    if isinstance(error, InvalidParameterError):
        return 400, error.message
    if isinstance(error, NotFoundError):
        return 404, error.message
    if isinstance(error, (BackendRequiredError, AnalyticsUnavailableError)):
        return 503, error.message
    if isinstance(error, SafecastAPIError):
        return 500, error.message
    if isinstance(error, asyncpg.PostgresError):
        return 500, f"database query failed: {error}"
    if isinstance(error, duckdb.Error):
        return 500, f"analytics query failed: {error}"
    return 500, str(error) or type(error).__name__
