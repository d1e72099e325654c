"""HTTP request handlers for accessing statistics data and configuration.

Handlers are plain FastAPI endpoint callables. They are exposed through a
RouteRegistrar, a ``(method, path, handler)`` callable supplied by whoever
owns the HTTP server, so the engine never depends on a concrete app object.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, StrictInt, ValidationError

from .errors import StatsStorageError, StatsValidationError
from .query import TimeUnit, format_stats_data

if TYPE_CHECKING:  # pragma: no cover
    from .engine import StatsContext

logger = logging.getLogger(__name__)

RouteRegistrar = Callable[[str, str, Callable[..., Any]], None]

# Retention longer than this is reported per day instead of per hour.
DAYS_UNIT_THRESHOLD = 7


class StatsConfigBody(BaseModel):
    """Request/response body of the stats configuration endpoints.

    ``interval`` must be a JSON integer; strings, floats and booleans are
    rejected rather than coerced.
    """

    interval: StrictInt


def _http_error(request: Request, code: int, text: str) -> PlainTextResponse:
    logger.info("Stats: %s %s: %s", request.method, request.url, text)
    return PlainTextResponse(text, status_code=code)


def register_routes(ctx: "StatsContext", register: RouteRegistrar) -> None:
    """Brief: Register the statistics HTTP handlers.

    Inputs:
      - ctx: StatsContext served by the handlers.
      - register: RouteRegistrar callable ``(method, path, handler)``.

    Outputs:
      - None.

    Routes:
      - GET /control/stats: report, in days when retention exceeds 7 days.
      - GET /control/stats_info: ``{"interval": <days>}``.
      - POST /control/stats_config: body ``{"interval": <days>}``.
      - POST /control/stats_reset: clear all statistics.
    """

    async def handle_stats(request: Request) -> Response:
        units = TimeUnit.HOURS
        if ctx.limit_days > DAYS_UNIT_THRESHOLD:
            units = TimeUnit.DAYS

        start = time.perf_counter()
        try:
            data = ctx.get_data(units)
        except StatsStorageError as exc:
            return _http_error(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                f"Couldn't get statistics data: {exc}",
            )
        logger.debug(
            "Stats: prepared data in %.3fms", (time.perf_counter() - start) * 1000.0
        )

        try:
            body = json.dumps(format_stats_data(data))
        except (TypeError, ValueError) as exc:
            return _http_error(
                request, status.HTTP_500_INTERNAL_SERVER_ERROR, f"json encode: {exc}"
            )
        return Response(content=body, media_type="application/json")

    async def handle_stats_info(request: Request) -> Response:
        resp = StatsConfigBody(interval=ctx.limit_days)
        return JSONResponse({"interval": resp.interval})

    async def handle_stats_config(request: Request) -> Response:
        try:
            payload = await request.json()
        except ValueError as exc:
            return _http_error(
                request, status.HTTP_400_BAD_REQUEST, f"json decode: {exc}"
            )
        if not isinstance(payload, dict):
            return _http_error(
                request, status.HTTP_400_BAD_REQUEST, "json decode: expected an object"
            )
        try:
            req = StatsConfigBody(**payload)
        except ValidationError as exc:
            return _http_error(
                request, status.HTTP_400_BAD_REQUEST, f"json decode: {exc}"
            )

        try:
            ctx.set_limit(req.interval)
        except StatsValidationError:
            return _http_error(
                request, status.HTTP_400_BAD_REQUEST, "Unsupported interval"
            )
        except StatsStorageError as exc:
            return _http_error(
                request, status.HTTP_500_INTERNAL_SERVER_ERROR, f"config write: {exc}"
            )
        return JSONResponse({"status": "ok"})

    async def handle_stats_reset(request: Request) -> Response:
        try:
            ctx.clear()
        except StatsStorageError as exc:
            return _http_error(
                request, status.HTTP_500_INTERNAL_SERVER_ERROR, f"reset: {exc}"
            )
        return JSONResponse({"status": "ok"})

    register("GET", "/control/stats", handle_stats)
    register("POST", "/control/stats_reset", handle_stats_reset)
    register("POST", "/control/stats_config", handle_stats_config)
    register("GET", "/control/stats_info", handle_stats_info)
