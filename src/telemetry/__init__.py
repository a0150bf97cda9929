"""
OpenTelemetry instrumentation package for the Safecast MCP server

Provides centralized configuration and initialization for OpenTelemetry
tracing and metrics across tools, upstream API calls and database access.
"""

from .config import (
    initialize_telemetry,
    get_tracer,
    get_meter,
    shutdown_telemetry,
    is_telemetry_enabled,
    get_telemetry_status
)

from .decorators import (
    trace_mcp_tool,
    trace_api_call,
    trace_database_operation
)

from .utils import (
    add_span_attributes,
    add_request_context,
    add_database_context,
    add_routing_context
)

from .metrics import (
    initialize_metrics,
    record_tool_invocation,
    record_api_request,
    record_database_query,
    record_routing_decision,
    record_audit_drop,
    record_error,
    MetricsTimer,
    get_metrics_status
)

__all__ = [
    # Core configuration
    'initialize_telemetry',
    'get_tracer',
    'get_meter',
    'shutdown_telemetry',
    'is_telemetry_enabled',
    'get_telemetry_status',

    # Decorators
    'trace_mcp_tool',
    'trace_api_call',
    'trace_database_operation',

    # Utilities
    'add_span_attributes',
    'add_request_context',
    'add_database_context',
    'add_routing_context',

    # Metrics
    'initialize_metrics',
    'record_tool_invocation',
    'record_api_request',
    'record_database_query',
    'record_routing_decision',
    'record_audit_drop',
    'record_error',
    'MetricsTimer',
    'get_metrics_status'
]
