"""
Error handling middleware.

Provides consistent error responses and request ID tracking.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from aiohttp import web

from volume_syncer.service.api.errors import APIError, ErrorCode, utc_timestamp
from volume_syncer.utils.logging import get_logger

logger = get_logger("volume_syncer.service.api.middleware.error")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """
    Middleware for consistent error handling.

    - Adds request_id to all requests (reusing an incoming X-Request-ID)
    - Catches APIError and returns structured JSON response
    - Catches unexpected errors and returns generic 500
    """
    request_id = request.headers.get("X-Request-ID") or f"req_{uuid.uuid4().hex[:12]}"
    request["request_id"] = request_id

    try:
        response = await handler(request)
        response.headers["X-Request-ID"] = request_id
        return response

    except APIError as e:
        logger.warning(
            f"API error: {e.code.value} {request.method} {request.path} -> {e.status}",
            extra={"request_id": request_id, "error_code": e.code.value, "status": e.status},
        )
        return web.json_response(e.to_dict(request_id), status=e.status, headers={"X-Request-ID": request_id})

    except web.HTTPException:
        # Let aiohttp handle its own HTTP exceptions
        raise

    except Exception as e:
        logger.error(
            f"Unexpected error handling {request.method} {request.path}: {e}",
            extra={"request_id": request_id},
            exc_info=True,
        )
        return web.json_response(
            {
                "status": "error",
                "error": "internal error",
                "code": ErrorCode.INTERNAL_ERROR.value,
                "timestamp": utc_timestamp(),
                "request_id": request_id,
            },
            status=500,
            headers={"X-Request-ID": request_id},
        )
