"""
TrailMemo Backend — Request ID Middleware
===========================================

What:  Assigns every request a correlation id, exposes it through a
       ContextVar for logs and error bodies, and echoes it in X-Request-ID.
How:   A client-supplied X-Request-ID is honored when it is short and
       printable (the mobile app sends one per user action); otherwise an
       8-character id is generated.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
MAX_CLIENT_ID_LENGTH = 64

# Coroutine-local: concurrent requests on one event loop each see their own id.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def _accept_client_id(value: str) -> bool:
    return 0 < len(value) <= MAX_CLIENT_ID_LENGTH and value.isprintable()


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        client_id = request.headers.get(REQUEST_ID_HEADER, "").strip()
        rid = client_id if _accept_client_id(client_id) else str(uuid.uuid4())[:8]

        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
