"""Shared HTTP utilities for the bridge's aiohttp apps."""

import logging
import re

from aiohttp import web

from .errors import BridgeError, ProtocolShapeViolation

log = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_INTEGER = re.compile(r"[+-]?\d+")
I64_MIN, I64_MAX = -(2**63), 2**63 - 1


def parse_i64(raw: str) -> int | None:
    """Parse a signed 64-bit decimal integer, or None if it isn't one."""
    if not _INTEGER.fullmatch(raw):
        return None
    value = int(raw)
    if not I64_MIN <= value <= I64_MAX:
        return None
    return value


@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        try:
            resp = await handler(request)
        except web.HTTPException as e:
            # Router 404/405 and friends
            e.headers.update(CORS_HEADERS)
            raise
    # Streamed responses already sent their headers
    if not resp.prepared:
        resp.headers.update(CORS_HEADERS)
    return resp


@web.middleware
async def error_middleware(request, handler):
    """Render BridgeError as a plain-text response with its status."""
    try:
        return await handler(request)
    except ProtocolShapeViolation as e:
        log.error("%s %s: protocol shape violation: %s", request.method, request.path, e)
        return web.Response(status=e.status, text=str(e))
    except BridgeError as e:
        log.warning("%s %s -> %d: %s", request.method, request.path, e.status, e)
        return web.Response(status=e.status, text=str(e))
