"""
Analytics and audit configuration
"""

import os
from typing import Any, Dict, Optional


def get_analytics_config() -> Dict[str, Optional[str]]:
    """DuckDB file (None means in-memory) and the Postgres URL to attach."""
    return {
        "path": os.getenv("DUCKDB_PATH") or None,
        "database_url": os.getenv("DATABASE_URL") or None,
    }


def get_audit_config() -> Dict[str, Any]:
    return {
        "timeout": float(os.getenv("AUDIT_TIMEOUT", "2.0")),
        "max_pending": int(os.getenv("AUDIT_MAX_PENDING", "256")),
        "entire_endpoint": os.getenv("ENTIRE_ENDPOINT", "").strip() or None,
        "entire_api_key": os.getenv("ENTIRE_API_KEY", "").strip() or None,
    }


def is_entire_configured() -> bool:
    return bool(os.getenv("ENTIRE_ENDPOINT", "").strip())


def validate_audit_config() -> Optional[str]:
    """
    Validate audit settings.

    Returns:
        Error message if configuration is invalid, None if valid
    """
    try:
        config = get_audit_config()
    except ValueError as e:
        return f"Error: invalid audit setting: {e}"
    if config["timeout"] <= 0:
        return "Error: AUDIT_TIMEOUT must be positive"
    if config["max_pending"] < 1:
        return "Error: AUDIT_MAX_PENDING must be at least 1"
    return None
