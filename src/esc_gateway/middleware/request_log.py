"""Request logging middleware.

Every request gets a request id: the caller's X-Request-ID when present
(the payment gateway and the marketplace proxy both send one), otherwise a
fresh `req_` id. It is stored on request.state for the response envelope
and echoed back in the X-Request-ID header.

Log format:
    INFO [POST] /api/v1/payments/webhook/funding → 200 (23ms) req_a1b2c3d4e5f6
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("esc.request")

_QUIET_PATHS = frozenset({"/health"})
_MAX_INBOUND_ID = 64


def _inbound_request_id(request: Request) -> str | None:
    value = request.headers.get("x-request-id", "").strip()
    if value and len(value) <= _MAX_INBOUND_ID and value.isprintable():
        return value
    return None


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _inbound_request_id(request) or f"req_{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if request.url.path in _QUIET_PATHS:
            return response
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s → %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        return response
