"""
OpenTelemetry utility functions for manual instrumentation

Helpers for attaching request, database and routing context to the
currently active span.
"""

from typing import Dict, Any, Optional
from src.logging import get_logger

logger = get_logger('TELEMETRY_UTILS')

def current_span():
    """Return the active recording span, or None when tracing is off."""
    try:
        from opentelemetry import trace
        span = trace.get_current_span()
        if span and span.is_recording():
            return span
    except Exception as e:
        logger.debug(f"failed to get current span | error: {e}")
    return None

def add_span_attributes(span, attributes: Dict[str, Any]):
    """
    Add multiple attributes to a span with type validation.

    Args:
        span: OpenTelemetry span
        attributes: Dictionary of attribute key-value pairs
    """
    if not span or not attributes:
        return

    for key, value in attributes.items():
        try:
            if isinstance(value, (str, int, float, bool)):
                span.set_attribute(key, value)
            elif value is None:
                span.set_attribute(key, "null")
            else:
                value_str = str(value)
                if len(value_str) <= 1000:
                    span.set_attribute(key, value_str)
                else:
                    span.set_attribute(f"{key}_size", len(value_str))
                    span.set_attribute(f"{key}_truncated", value_str[:200] + "...")
        except Exception as e:
            logger.debug(f"failed to set span attribute | key: {key} | error: {e}")

def add_request_context(url: str, params: Optional[Dict[str, Any]] = None,
                        status_code: Optional[int] = None, response_size: Optional[int] = None):
    """Attach upstream HTTP request details to the active span."""
    span = current_span()
    if not span:
        return

    attributes = {"http.method": "GET", "http.url": url}
    if params:
        attributes["safecast.params.count"] = len(params)
    if status_code is not None:
        attributes["http.status_code"] = status_code
    if response_size is not None:
        attributes["safecast.response.size"] = response_size
    add_span_attributes(span, attributes)

def add_database_context(table: Optional[str] = None,
                         operation: Optional[str] = None,
                         row_count: Optional[int] = None,
                         arg_count: Optional[int] = None):
    """Attach database statement details to the active span."""
    span = current_span()
    if not span:
        return

    attributes = {}
    if table:
        attributes["db.table.name"] = table
    if operation:
        attributes["db.operation"] = operation
    if row_count is not None:
        attributes["db.result.count"] = row_count
    if arg_count is not None:
        attributes["db.statement.arg_count"] = arg_count
    add_span_attributes(span, attributes)

def add_routing_context(operation: str, source: str, reason: str):
    """Attach the routing decision to the active span."""
    add_span_attributes(current_span(), {
        "safecast.route.operation": operation,
        "safecast.route.source": source,
        "safecast.route.reason": reason,
    })
