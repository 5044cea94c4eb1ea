"""Middlewares and helpers shared by every aiohttp application."""

from __future__ import annotations

import json
import logging
from typing import Any

from aiohttp import web

from blog_choreography.observability.logger import TRACE_HEADER, bind_trace_id

logger = logging.getLogger(__name__)


@web.middleware
async def trace_middleware(request: web.Request, handler):
    """Give each request a trace id (the caller's, when it sends one)."""
    trace_id = bind_trace_id(request.headers.get(TRACE_HEADER))
    response = await handler(request)
    response.headers[TRACE_HEADER] = trace_id
    return response


@web.middleware
async def cors_middleware(request: web.Request, handler):
    """Allow browser front-ends on other origins to call the services."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn unhandled exceptions into a JSON 500."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error: %s %s", request.method, request.path)
        return web.json_response({"status": "Internal Server Error"}, status=500)


def create_base_app() -> web.Application:
    return web.Application(
        middlewares=[trace_middleware, cors_middleware, error_middleware]
    )


def json_error(status: int, message: str, **extra: Any) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def read_json(request: web.Request) -> Any:
    """Decoded request body.  Raises a JSON 400 when it is not JSON."""
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Request body must be JSON"}),
            content_type="application/json",
        )
