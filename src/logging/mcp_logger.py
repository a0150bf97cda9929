"""
Standardized logging setup for the Safecast MCP server.
Uses Python's built-in logging with structured session correlation.
"""

import logging
import sys
import os
from typing import Optional, Dict, Any


class ColoredFormatter(logging.Formatter):
    """Colored logging formatter with timestamps."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'
    }

    def __init__(self, use_colors=True):
        super().__init__(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def colorize(self, record, render) -> str:
        if not self.use_colors:
            return render(record)

        original_levelname = record.levelname
        level_color = self.COLORS.get(record.levelname, '')
        record.levelname = f"{level_color}{record.levelname}{self.COLORS['RESET']}"
        try:
            return render(record)
        finally:
            record.levelname = original_levelname

    def format(self, record):
        return self.colorize(record, super().format)


class SessionColoredFormatter(ColoredFormatter):
    """Colored formatter that places the session/client context after the component name."""

    def __init__(self, use_colors=True):
        super().__init__(use_colors)
        self._session_fmt = logging.Formatter(
            '%(asctime)s - %(name)s%(session_part)s%(client_part)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record):
        record.session_part = f" {record.session}" if getattr(record, 'session', "") else ""
        record.client_part = f" {record.client}" if getattr(record, 'client', "") else ""
        return self.colorize(record, self._session_fmt.format)


log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
log_level_value = getattr(logging, log_level, logging.INFO)

use_colors = os.getenv('LOG_COLORS', 'true').lower() in ('true', '1', 'yes', 'on')

# Third-party libraries (httpx, asyncpg, duckdb) only surface warnings through the root logger
if not logging.getLogger().handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(levelname)s:%(name)s:%(message)s'))
    logging.getLogger().addHandler(handler)
    logging.getLogger().setLevel(logging.WARNING)


class SessionContextFilter(logging.Filter):
    """Add session and client context to log records."""

    def __init__(self):
        super().__init__()
        self.session_id = None
        self.client_info = None

    def set_context(self, session_id: Optional[str] = None, client_info: Optional[str] = None):
        """Set session context for the current request."""
        self.session_id = session_id
        self.client_info = client_info

    def filter(self, record):
        record.session = f"session:{self.session_id[:8]}..." if self.session_id else ""
        record.client = f"client:{self.client_info}" if self.client_info else ""
        return True


class SessionHandler(logging.StreamHandler):
    """Stream handler that applies session formatting and colors to our loggers."""

    def __init__(self, use_colors=True):
        super().__init__(sys.stderr)
        self.setFormatter(SessionColoredFormatter(use_colors=use_colors))


session_filter = SessionContextFilter()


def get_logger(name: str) -> logging.Logger:
    """Get a logger with session context and colored formatting."""
    logger = logging.getLogger(name)
    if session_filter not in logger.filters:
        logger.addFilter(session_filter)
        if not any(isinstance(h, SessionHandler) for h in logger.handlers):
            logger.addHandler(SessionHandler(use_colors=use_colors))
            logger.propagate = False
            logger.setLevel(log_level_value)
    return logger


def set_session_context(session_id: Optional[str] = None, client_info: Optional[str] = None):
    """Set session context for all loggers."""
    session_filter.set_context(session_id, client_info)


def log_extra(**kwargs) -> Dict[str, Any]:
    """Format extra logging context."""
    return {k: str(v)[:100] for k, v in kwargs.items() if v is not None}


# Component-specific loggers
session_logger = get_logger('SESSION')
query_logger = get_logger('QUERY')
router_logger = get_logger('ROUTER')
db_logger = get_logger('DB')
http_logger = get_logger('HTTP')
analytics_logger = get_logger('ANALYTICS')
audit_logger = get_logger('AUDIT')
rest_logger = get_logger('REST')


def log_tool_call(tool_name: str, session_id: Optional[str] = None, client_info: Optional[str] = None, **params):
    """Helper to log tool execution."""
    set_session_context(session_id, client_info)
    extra_str = " | ".join(f"{k}:{v}" for k, v in log_extra(**params).items())
    query_logger.info(f"executing {tool_name} | {extra_str}" if extra_str else f"executing {tool_name}")
