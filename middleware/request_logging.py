"""
Request logging middleware. Logs method, path, status, duration and a request id.
Never logs headers, body, or query params (may contain tokens or PII).
"""
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and echo (or mint) an X-Request-ID header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip()[:64] or uuid.uuid4().hex
        request.state.request_id = request_id

        method = request.method
        # Log path only; do not log query string (may contain tokens or PII)
        path = request.scope.get("path", "")
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        status = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id

        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "request_finished method=%s path=%s status=%s duration_ms=%.1f",
            method, path, status, duration_ms,
            extra={"request_id": request_id},
        )
        return response
