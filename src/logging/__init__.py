"""
Logging utilities for the Safecast MCP server.
"""

from .mcp_logger import (
    get_logger,
    set_session_context,
    log_tool_call,
    log_extra,
    session_logger,
    query_logger,
    router_logger,
    db_logger,
    http_logger,
    analytics_logger,
    audit_logger,
    rest_logger
)

__all__ = [
    'get_logger',
    'set_session_context',
    'log_tool_call',
    'log_extra',
    'session_logger',
    'query_logger',
    'router_logger',
    'db_logger',
    'http_logger',
    'analytics_logger',
    'audit_logger',
    'rest_logger'
]
