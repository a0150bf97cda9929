"""
OpenTelemetry decorators for instrumenting MCP server operations

Provides decorators that add tracing to MCP tools, upstream Safecast API
calls, and database statements.
"""

import functools
import inspect
import time
from typing import Callable, Optional
from src.logging import get_logger

logger = get_logger('TELEMETRY_DECORATORS')

SENSITIVE_PARAMS = {
    'token', 'password', 'secret', 'key', 'auth', 'authorization',
    'access_token', 'api_key', 'database_url', 'dsn'
}

def trace_mcp_tool(tool_name: Optional[str] = None,
                   record_args: bool = True,
                   record_result: bool = False):
    """
    Decorator to trace MCP tool execution.

    Args:
        tool_name: Custom span name for the tool (defaults to mcp_tool.<function name>)
        record_args: Whether to record function arguments as span attributes
        record_result: Whether to record the result as a span attribute
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            from .config import get_tracer
            from .metrics import record_tool_invocation

            start_time = time.time()
            success = True
            tracer = get_tracer()

            try:
                if not tracer:
                    return await func(*args, **kwargs)

                with tracer.start_as_current_span(tool_name or f"mcp_tool.{func.__name__}") as span:
                    from opentelemetry import trace

                    span.set_attribute("mcp.tool.name", func.__name__)
                    span.set_attribute("mcp.operation.type", "tool_execution")
                    if record_args:
                        _record_function_args(span, func, args, kwargs)

                    try:
                        result = await func(*args, **kwargs)
                    except Exception as e:
                        span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                        span.record_exception(e)
                        span.set_attribute("mcp.tool.error", True)
                        span.set_attribute("mcp.tool.error_type", type(e).__name__)
                        span.set_attribute("mcp.tool.error_message", str(e)[:1000])
                        raise

                    if record_result and result is not None:
                        result_str = str(result)
                        if len(result_str) <= 1000:
                            span.set_attribute("mcp.tool.result", result_str)
                        else:
                            span.set_attribute("mcp.tool.result_size", len(result_str))

                    span.set_status(trace.Status(trace.StatusCode.OK))
                    return result

            except Exception:
                success = False
                raise
            finally:
                attributes = {}
                for name in ('lat', 'lon', 'radius_m', 'year', 'track_id', 'device_id'):
                    if kwargs.get(name) is not None:
                        attributes[name] = kwargs[name]
                record_tool_invocation(func.__name__, time.time() - start_time, success, **attributes)

        return wrapper
    return decorator

def trace_api_call(operation: Optional[str] = None):
    """
    Decorator to trace upstream Safecast API calls.

    Args:
        operation: Description of the API operation
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            from .config import get_tracer

            tracer = get_tracer()
            if not tracer:
                return await func(*args, **kwargs)

            with tracer.start_as_current_span(f"safecast_api.{operation or func.__name__}") as span:
                from opentelemetry import trace
                try:
                    span.set_attribute("safecast.operation.type", "api_call")
                    span.set_attribute("safecast.function.name", func.__name__)
                    if operation:
                        span.set_attribute("safecast.operation.name", operation)
                    if 'timeout' in kwargs and kwargs['timeout'] is not None:
                        span.set_attribute("safecast.api.timeout", kwargs['timeout'])

                    result = await func(*args, **kwargs)

                    if isinstance(result, (list, dict)):
                        span.set_attribute("safecast.api.result_size", len(result))
                    span.set_status(trace.Status(trace.StatusCode.OK))
                    return result

                except Exception as e:
                    span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    span.set_attribute("safecast.api.error", True)
                    span.set_attribute("safecast.api.error_type", type(e).__name__)
                    status_code = getattr(e, 'status_code', None)
                    if status_code is not None:
                        span.set_attribute("safecast.api.error_status", status_code)
                    raise

        return wrapper
    return decorator

def trace_database_operation(operation: Optional[str] = None,
                             table: Optional[str] = None,
                             system: str = "postgresql"):
    """
    Decorator to trace database operations.

    Args:
        operation: Type of database operation (fetch, count, insert, ...)
        table: Database table being accessed
        system: Database system name recorded on the span
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            from .config import get_tracer
            from .metrics import record_database_query

            start_time = time.time()
            tracer = get_tracer()
            if not tracer:
                try:
                    result = await func(*args, **kwargs)
                except Exception:
                    record_database_query(operation or func.__name__, table or system, time.time() - start_time, False)
                    raise
                record_database_query(operation or func.__name__, table or system, time.time() - start_time, True,
                                      len(result) if isinstance(result, list) else None)
                return result

            with tracer.start_as_current_span(f"db.{operation or func.__name__}") as span:
                from opentelemetry import trace
                try:
                    span.set_attribute("db.system", system)
                    span.set_attribute("db.operation", operation or func.__name__)
                    if table:
                        span.set_attribute("db.table.name", table)

                    statement = kwargs.get('statement')
                    if statement is None and len(args) > 1 and isinstance(args[1], str):
                        statement = args[1]
                    if statement:
                        if len(statement) <= 500:
                            span.set_attribute("db.statement", statement)
                        else:
                            span.set_attribute("db.statement.size", len(statement))

                    result = await func(*args, **kwargs)

                    if isinstance(result, list):
                        span.set_attribute("db.result.count", len(result))
                    span.set_status(trace.Status(trace.StatusCode.OK))
                    record_database_query(operation or func.__name__, table or system, time.time() - start_time, True,
                                          len(result) if isinstance(result, list) else None)
                    return result

                except Exception as e:
                    span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    span.set_attribute("db.error", True)
                    span.set_attribute("db.error_type", type(e).__name__)
                    record_database_query(operation or func.__name__, table or system, time.time() - start_time, False)
                    raise

        return wrapper
    return decorator

def _record_function_args(span, func: Callable, args: tuple, kwargs: dict):
    """
    Record function arguments as span attributes with sensitive data filtering.

    Args:
        span: OpenTelemetry span
        func: Function being traced
        args: Positional arguments
        kwargs: Keyword arguments
    """
    try:
        bound_args = inspect.signature(func).bind_partial(*args, **kwargs)
        bound_args.apply_defaults()

        for param_name, value in bound_args.arguments.items():
            if param_name.lower() in SENSITIVE_PARAMS:
                span.set_attribute(f"mcp.args.{param_name}", "[REDACTED]")
            elif param_name == 'ctx':
                if hasattr(value, 'session_id'):
                    span.set_attribute("mcp.session.id", str(value.session_id))
            elif value is not None:
                value_str = str(value)
                if len(value_str) <= 200:
                    span.set_attribute(f"mcp.args.{param_name}", value_str)
                else:
                    span.set_attribute(f"mcp.args.{param_name}_size", len(value_str))

    except Exception as e:
        # argument recording must not fail the traced call
        logger.debug(f"failed to record function args | error: {e}")
