"""
OpenTelemetry metrics collection for MCP server operations

Provides service-specific metrics for monitoring tool usage, backend
routing, upstream API calls and database queries.
"""

import time
from typing import Optional, Dict, Any
from src.logging import get_logger

logger = get_logger('TELEMETRY_METRICS')

# Global metrics state
_meter = None
_metrics_enabled = False

# Metric instruments
_tool_invocation_counter = None
_tool_duration_histogram = None
_api_request_counter = None
_api_duration_histogram = None
_database_query_counter = None
_database_duration_histogram = None
_routing_decision_counter = None
_audit_drop_counter = None
_error_counter = None

def initialize_metrics():
    """Initialize OpenTelemetry metrics instruments."""
    global _meter, _metrics_enabled
    global _tool_invocation_counter, _tool_duration_histogram
    global _api_request_counter, _api_duration_histogram
    global _database_query_counter, _database_duration_histogram
    global _routing_decision_counter, _audit_drop_counter, _error_counter

    try:
        from src.telemetry.config import get_meter
        _meter = get_meter()

        if not _meter:
            logger.debug("metrics not available | meter not initialized")
            return False

        _tool_invocation_counter = _meter.create_counter(
            name="mcp_tool_invocations_total",
            description="Total number of MCP tool invocations",
            unit="1"
        )
        _tool_duration_histogram = _meter.create_histogram(
            name="mcp_tool_duration_seconds",
            description="Duration of MCP tool executions",
            unit="s"
        )

        _api_request_counter = _meter.create_counter(
            name="safecast_api_requests_total",
            description="Total number of upstream Safecast API requests",
            unit="1"
        )
        _api_duration_histogram = _meter.create_histogram(
            name="safecast_api_duration_seconds",
            description="Duration of upstream Safecast API requests",
            unit="s"
        )

        _database_query_counter = _meter.create_counter(
            name="database_queries_total",
            description="Total number of database queries",
            unit="1"
        )
        _database_duration_histogram = _meter.create_histogram(
            name="database_query_duration_seconds",
            description="Duration of database queries",
            unit="s"
        )

        _routing_decision_counter = _meter.create_counter(
            name="source_routing_decisions_total",
            description="Backend chosen per logical operation",
            unit="1"
        )

        _audit_drop_counter = _meter.create_counter(
            name="audit_records_dropped_total",
            description="Audit records dropped because the analytics store was unavailable or saturated",
            unit="1"
        )

        _error_counter = _meter.create_counter(
            name="mcp_errors_total",
            description="Total number of errors by type",
            unit="1"
        )

        _metrics_enabled = True
        logger.info("metrics initialization complete")
        return True

    except ImportError:
        logger.debug("metrics not available | opentelemetry not installed")
        return False
    except Exception as e:
        logger.error(f"metrics initialization failed | error: {e}")
        return False

def record_tool_invocation(tool_name: str, duration: float, success: bool, **attributes):
    """
    Record metrics for MCP tool invocations.

    Args:
        tool_name: Name of the MCP tool
        duration: Execution duration in seconds
        success: Whether the invocation was successful
        **attributes: Additional attributes to record
    """
    if not _metrics_enabled or not _tool_invocation_counter:
        return

    try:
        metric_attributes = {
            "tool_name": tool_name,
            "status": "success" if success else "error"
        }
        for key, value in attributes.items():
            if isinstance(value, (str, int, float, bool)):
                metric_attributes[f"tool.{key}"] = str(value)

        _tool_invocation_counter.add(1, metric_attributes)
        _tool_duration_histogram.record(duration, metric_attributes)

        logger.debug(f"recorded tool metrics | tool:{tool_name} | duration:{duration:.3f}s | success:{success}")

    except Exception as e:
        logger.debug(f"failed to record tool metrics | error: {e}")

def record_api_request(endpoint: str, method: str, status_code: int, duration: float, **attributes):
    """
    Record metrics for upstream Safecast API requests.

    Args:
        endpoint: API endpoint path
        method: HTTP method
        status_code: HTTP status code (0 when no response was received)
        duration: Request duration in seconds
        **attributes: Additional attributes
    """
    if not _metrics_enabled or not _api_request_counter:
        return

    try:
        metric_attributes = {
            "endpoint": endpoint,
            "method": method,
            "status_code": str(status_code),
            "status": "success" if 0 < status_code < 400 else "error"
        }
        for key, value in attributes.items():
            if isinstance(value, (str, int, float, bool)):
                metric_attributes[f"api.{key}"] = str(value)

        _api_request_counter.add(1, metric_attributes)
        _api_duration_histogram.record(duration, metric_attributes)

        logger.debug(f"recorded API metrics | endpoint:{endpoint} | status:{status_code} | duration:{duration:.3f}s")

    except Exception as e:
        logger.debug(f"failed to record API metrics | error: {e}")

def record_database_query(operation: str, table: str, duration: float, success: bool, row_count: Optional[int] = None):
    """
    Record metrics for database queries.

    Args:
        operation: Database operation type
        table: Table name (or database system when the statement spans tables)
        duration: Query duration in seconds
        success: Whether the query was successful
        row_count: Number of rows returned
    """
    if not _metrics_enabled or not _database_query_counter:
        return

    try:
        metric_attributes = {
            "operation": operation,
            "table": table,
            "status": "success" if success else "error"
        }

        _database_query_counter.add(1, metric_attributes)
        _database_duration_histogram.record(duration, metric_attributes)

        logger.debug(f"recorded DB metrics | operation:{operation} | table:{table} | duration:{duration:.3f}s | rows:{row_count}")

    except Exception as e:
        logger.debug(f"failed to record DB metrics | error: {e}")

def record_routing_decision(operation: str, source: str, reason: str):
    """Record which backend the router selected for an operation."""
    if not _metrics_enabled or not _routing_decision_counter:
        return

    try:
        _routing_decision_counter.add(1, {"operation": operation, "source": source, "reason": reason})
    except Exception as e:
        logger.debug(f"failed to record routing metric | error: {e}")

def record_audit_drop(reason: str):
    """Record an audit record that was dropped instead of stored."""
    if not _metrics_enabled or not _audit_drop_counter:
        return

    try:
        _audit_drop_counter.add(1, {"reason": reason})
    except Exception as e:
        logger.debug(f"failed to record audit drop metric | error: {e}")

def record_error(error_type: str, operation: str, **attributes):
    """
    Record error occurrences.

    Args:
        error_type: Type/category of error
        operation: Operation where error occurred
        **attributes: Additional error context
    """
    if not _metrics_enabled or not _error_counter:
        return

    try:
        metric_attributes = {
            "error_type": error_type,
            "operation": operation
        }
        for key, value in attributes.items():
            if isinstance(value, (str, int, float, bool)):
                metric_attributes[f"error.{key}"] = str(value)

        _error_counter.add(1, metric_attributes)

        logger.debug(f"recorded error metric | type:{error_type} | operation:{operation}")

    except Exception as e:
        logger.debug(f"failed to record error metric | error: {e}")

class MetricsTimer:
    """Context manager for timing upstream API requests and recording metrics."""

    def __init__(self, endpoint: str, method: str = "GET"):
        self.endpoint = endpoint
        self.method = method
        self.status_code = 0
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return

        duration = time.time() - self.start_time
        record_api_request(self.endpoint, self.method, self.status_code, duration)
        if exc_type is not None:
            record_error(exc_type.__name__, self.endpoint)

    def set_status(self, status_code: int):
        self.status_code = status_code

def get_metrics_status() -> Dict[str, Any]:
    """
    Get the current metrics system status.

    Returns:
        Dictionary with metrics status information
    """
    return {
        "enabled": _metrics_enabled,
        "meter_available": _meter is not None,
        "instruments": {
            "tool_invocation_counter": _tool_invocation_counter is not None,
            "api_request_counter": _api_request_counter is not None,
            "database_query_counter": _database_query_counter is not None,
            "routing_decision_counter": _routing_decision_counter is not None,
            "audit_drop_counter": _audit_drop_counter is not None,
            "error_counter": _error_counter is not None
        }
    }
