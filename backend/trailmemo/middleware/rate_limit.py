"""
TrailMemo Backend — Rate Limiting Middleware
==============================================

What:  Per-IP sliding-window limit (RATE_LIMIT_REQUESTS per RATE_LIMIT_WINDOW).
How:   Each client IP keeps a deque of request timestamps. Timestamps older
       than the window are dropped on every request; a full deque means 429
       with Retry-After set to when the oldest entry expires.

In-memory and per process: with several uvicorn workers each worker
enforces its own budget. Health and documentation paths are never limited.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from trailmemo.exceptions import RateLimitExceededError
from trailmemo.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Sweep idle clients every this many requests.
SWEEP_INTERVAL = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(
        self,
        app,
        max_requests: int = 1000,
        window_seconds: int = 3600,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.enabled or request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = self._clock()
        window_start = now - self.window_seconds

        timestamps = self._requests[client_ip]
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= self.max_requests:
            retry_after = int(timestamps[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds",
                client_ip,
                len(timestamps),
                self.window_seconds,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": {
                        "code": exc.code,
                        "message": exc.message,
                        "details": exc.context,
                    },
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)

        self._seen += 1
        if self._seen % SWEEP_INTERVAL == 0:
            self._sweep(window_start)

        return await call_next(request)

    def _sweep(self, window_start: float) -> None:
        idle = [ip for ip, ts in self._requests.items() if not ts or ts[-1] <= window_start]
        for ip in idle:
            del self._requests[ip]
        if idle:
            logger.debug("Dropped %d idle rate-limit entries", len(idle))
