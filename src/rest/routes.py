"""
REST endpoints mirroring the MCP tools.

Each route maps a GET path onto one tool. Query parameters become tool
arguments, the optional path segment fills one named argument, and tool
exceptions become `{"error": message}` with the status from
classify_error(). Responses carry a permissive CORS header.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from src.logging import rest_logger
from src.tools import ToolContext, call, classify_error

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@dataclass(frozen=True)
class RestRoute:
    path: str
    tool: str
    path_param: Optional[str] = None
    tool_param: Optional[str] = None


REST_ROUTES = (
    RestRoute("/api/radiation", "query_radiation"),
    RestRoute("/api/area", "search_area"),
    RestRoute("/api/tracks", "list_tracks"),
    RestRoute("/api/track/{id}", "get_track", "id", "track_id"),
    RestRoute("/api/device/{id}/history", "device_history", "id", "device_id"),
    RestRoute("/api/sensors", "list_sensors"),
    RestRoute("/api/sensor/{id}/current", "sensor_current", "id", "device_id"),
    RestRoute("/api/sensor/{id}/history", "sensor_history", "id", "device_id"),
    RestRoute("/api/spectra", "list_spectra"),
    RestRoute("/api/spectrum/{marker_id}", "get_spectrum", "marker_id", "marker_id"),
    RestRoute("/api/stats", "radiation_stats"),
    RestRoute("/api/info/{topic}", "radiation_info", "topic", "topic"),
)

ContextProvider = Callable[[], Awaitable[ToolContext]]


def error_response(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status, headers=CORS_HEADERS)


def route_arguments(route: RestRoute, query: Dict[str, Any], path_params: Dict[str, Any]) -> Dict[str, Any]:
    arguments = dict(query)
    if route.path_param:
        arguments[route.tool_param] = path_params.get(route.path_param)
    return arguments


async def handle(route: RestRoute, request: Request, get_context: ContextProvider) -> Response:
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    if request.method != "GET":
        rest_logger.warning(f"method not allowed | path:{request.url.path} | method:{request.method}")
        return error_response(405, f"Method {request.method} not allowed; use GET")

    arguments = route_arguments(route, dict(request.query_params), dict(request.path_params))
    try:
        ctx = await get_context()
        envelope = await call(ctx, route.tool, arguments, client_info="rest")
    except Exception as e:
        status, message = classify_error(e)
        rest_logger.warning(f"request failed | path:{request.url.path} | status:{status} | error:{message}")
        return error_response(status, message)

    rest_logger.debug(f"request served | path:{request.url.path} | count:{envelope.get('count')}")
    return JSONResponse(envelope, headers=CORS_HEADERS)


def register_routes(mcp, get_context: ContextProvider) -> None:
    """Attach every REST route to a FastMCP server as a custom HTTP route."""
    for route in REST_ROUTES:
        def bind(route: RestRoute):
            async def endpoint(request: Request) -> Response:
                return await handle(route, request, get_context)
            endpoint.__name__ = f"rest_{route.tool}"
            return endpoint

        mcp.custom_route(route.path, methods=ALL_METHODS)(bind(route))
        rest_logger.debug(f"route registered | path:{route.path} | tool:{route.tool}")
