"""
TrailMemo Backend — Access Log Middleware
===========================================

One line per request on the `trailmemo.access` logger:

    GET /api/v1/memos/nearby 200 12.4ms [a1b2c3d4] from 10.0.0.7

Level follows the status class: 5xx ERROR, 4xx WARNING, everything else
INFO. Health probes are not logged. Bodies, query strings and the
Authorization header are never logged (they carry tokens, GPS positions
and memo text).
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from trailmemo.middleware.request_id import request_id_var

logger = logging.getLogger("trailmemo.access")

SILENT_PATHS = {"/health"}


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in SILENT_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        logger.log(
            _level_for(response.status_code),
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
