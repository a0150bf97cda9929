"""
Safecast REST API HTTP client

Typed GET operations against the two upstream services:

- simplemap (latest readings near a point, the track index, track markers)
- the classic Safecast API (measurements by device or location, devices)

Every failure is raised as a SafecastAPIError subclass that says whether
the upstream never answered, answered with a non-2xx status, or answered
with a body that could not be used. Nothing is retried.
"""

import json
from urllib.parse import quote
from typing import Any, Dict, List, Optional

import httpx

from src.logging import http_logger
from src.telemetry.decorators import trace_api_call
from src.telemetry.metrics import MetricsTimer
from src.telemetry.utils import add_request_context

from .config import get_safecast_api_config


class SafecastAPIError(Exception):
    """Upstream request failed"""

    def __init__(self, message: str, status_code: Optional[int] = None, response_data: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_data = response_data


class NoResponseError(SafecastAPIError):
    """The upstream could not be reached or did not answer before the deadline"""


class HTTPStatusError(SafecastAPIError):
    """The upstream answered with a non-2xx status"""


class MalformedResponseError(SafecastAPIError):
    """The upstream answered 2xx but the body was not the expected JSON shape"""


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]


class SafecastAPIClient:
    """
    Client for the upstream Safecast services.

    A new httpx.AsyncClient is opened per request. Tests pass an
    httpx.MockTransport as `transport`.
    """

    def __init__(self, api_url: Optional[str] = None, simplemap_url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        default_api, default_simplemap, default_timeout = get_safecast_api_config()
        self.api_url = (api_url or default_api).rstrip("/")
        self.simplemap_url = (simplemap_url or default_simplemap).rstrip("/")
        self.timeout = timeout if timeout is not None else default_timeout
        self.transport = transport

    async def get_json(self, base_url: str, path: str, params: Optional[Dict[str, Any]] = None,
                       timeout: Optional[float] = None) -> Any:
        """
        GET base_url + path and decode the JSON body.

        Raises:
            NoResponseError: transport failure or deadline exceeded
            HTTPStatusError: non-2xx status
            MalformedResponseError: body is not JSON
        """
        url = f"{base_url}/{path.lstrip('/')}"
        params = {k: v for k, v in (params or {}).items() if v is not None}
        http_logger.debug(f"GET {url} | params:{params}")

        with MetricsTimer(path.split("?")[0]) as timer:
            async with httpx.AsyncClient(transport=self.transport,
                                         timeout=timeout if timeout is not None else self.timeout) as client:
                try:
                    response = await client.get(url, params=params, headers={"Accept": "application/json"})
                except httpx.TimeoutException as e:
                    http_logger.error(f"upstream timeout | url:{url} | error:{e}")
                    raise NoResponseError(f"no response from Safecast API (timeout): {url}") from e
                except httpx.TransportError as e:
                    http_logger.error(f"upstream unreachable | url:{url} | error:{e}")
                    raise NoResponseError(f"no response from Safecast API: {e}") from e

            timer.set_status(response.status_code)
            add_request_context(url, params, response.status_code, len(response.content))

            if not 200 <= response.status_code < 300:
                http_logger.warning(f"response {response.status_code} | url:{url}")
                raise HTTPStatusError(
                    f"Safecast API error ({response.status_code}): {response.reason_phrase}",
                    status_code=response.status_code,
                    response_data=_error_body(response),
                )

            http_logger.debug(f"response {response.status_code} | size:{len(response.content)}")
            try:
                return response.json()
            except (ValueError, json.JSONDecodeError) as e:
                raise MalformedResponseError(
                    f"failed to parse Safecast API response: {e}",
                    status_code=response.status_code,
                    response_data=response.text[:500],
                ) from e

    @staticmethod
    def _list_field(payload: Any, field: str) -> List[Dict[str, Any]]:
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"expected a JSON object with '{field}'", response_data=payload)
        items = payload.get(field) or []
        if not isinstance(items, list):
            raise MalformedResponseError(f"'{field}' is not a list", response_data=payload)
        return [item for item in items if isinstance(item, dict)]

    @staticmethod
    def _list_body(payload: Any) -> List[Dict[str, Any]]:
        if not isinstance(payload, list):
            raise MalformedResponseError("expected a JSON array", response_data=payload)
        return [item for item in payload if isinstance(item, dict)]

    @trace_api_call(operation="latest")
    async def measurements(self, lat: float, lon: float, radius_m: float, limit: int,
                           timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """Latest readings around a point (simplemap /api/latest)."""
        payload = await self.get_json(self.simplemap_url, "/api/latest", {
            "lat": lat, "lon": lon, "radius_m": radius_m, "limit": limit,
        }, timeout=timeout)
        return self._list_field(payload, "markers")

    @trace_api_call(operation="tracks")
    async def tracks(self, year: Optional[int] = None, month: Optional[int] = None,
                     timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """
        Track index, optionally for one year or one month.

        The upstream answers 404 when a year or month has no tracks; that is
        returned as an empty list.
        """
        if year and month:
            path = f"/api/tracks/months/{year}/{month}"
        elif year:
            path = f"/api/tracks/years/{year}"
        else:
            path = "/api/tracks"

        try:
            payload = await self.get_json(self.simplemap_url, path, timeout=timeout)
        except HTTPStatusError as e:
            if e.status_code == 404 and year:
                http_logger.debug(f"no tracks | year:{year} | month:{month}")
                return []
            raise
        return self._list_field(payload, "tracks")

    @trace_api_call(operation="track")
    async def track(self, track_id: str, from_id: Optional[int] = None, to_id: Optional[int] = None,
                    timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """Markers of one track (simplemap /api/track/{id}.json)."""
        path = f"/api/track/{quote(str(track_id), safe='')}.json"
        payload = await self.get_json(self.simplemap_url, path, {"from": from_id, "to": to_id}, timeout=timeout)
        return self._list_field(payload, "markers")

    @trace_api_call(operation="device_measurements")
    async def device_measurements(self, device_id: str, captured_after: str, captured_before: str,
                                  timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        """Measurements of one device inside a capture window (classic API)."""
        payload = await self.get_json(self.api_url, "/measurements.json", {
            "device_id": device_id,
            "captured_after": captured_after,
            "captured_before": captured_before,
        }, timeout=timeout)
        return self._list_body(payload)

    @trace_api_call(operation="devices")
    async def devices(self, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        payload = await self.get_json(self.api_url, "/devices.json", timeout=timeout)
        return self._list_body(payload)
