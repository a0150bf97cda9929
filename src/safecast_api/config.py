"""
Safecast REST API configuration

Base URLs and the default request deadline for the upstream services.
"""

import os
from typing import Optional, Tuple

DEFAULT_API_URL = "https://api.safecast.org"
DEFAULT_SIMPLEMAP_URL = "https://simplemap.safecast.org"
DEFAULT_TIMEOUT = 60.0


def get_safecast_api_config() -> Tuple[str, str, float]:
    """
    Get upstream API configuration from environment variables.

    Returns:
        Tuple of (api_url, simplemap_url, timeout_seconds)
    """
    api_url = os.getenv("SAFECAST_API_URL", DEFAULT_API_URL).rstrip("/")
    simplemap_url = os.getenv("SIMPLEMAP_URL", DEFAULT_SIMPLEMAP_URL).rstrip("/")
    timeout = float(os.getenv("SAFECAST_API_TIMEOUT", str(DEFAULT_TIMEOUT)))
    return api_url, simplemap_url, timeout


def validate_safecast_api_config() -> Optional[str]:
    """
    Validate upstream API configuration.

    Returns:
        Error message if configuration is invalid, None if valid
    """
    try:
        api_url, simplemap_url, timeout = get_safecast_api_config()
    except ValueError:
        return f"Error: SAFECAST_API_TIMEOUT must be a number, got {os.getenv('SAFECAST_API_TIMEOUT')!r}"

    for name, url in (("SAFECAST_API_URL", api_url), ("SIMPLEMAP_URL", simplemap_url)):
        if not url.startswith(("http://", "https://")):
            return f"Error: {name} must be an http(s) URL, got {url!r}"
    if timeout <= 0:
        return "Error: SAFECAST_API_TIMEOUT must be positive"
    return None
