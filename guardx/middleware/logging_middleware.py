"""
HTTP request logging middleware.

Logs every request with method, path, status code, and duration. Requests
against a single deposit also carry its ``workflow_id`` in the log context.
"""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

_DEPOSIT_PATH = re.compile(r"^/deposits/(?!chains$|quote$)([0-9a-fA-F]{8,64})(?:/|$)")

# Polled often; logged at debug only
_QUIET_PATHS = {"/healthz"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with timing and status info."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4())[:8])
        path = request.url.path

        # Bind request context for all downstream logs
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        match = _DEPOSIT_PATH.match(path)
        if match:
            structlog.contextvars.bind_contextvars(workflow_id=match.group(1))

        start = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)

            if status_code >= 500:
                log = logger.error
            elif status_code >= 400:
                log = logger.warning
            elif path in _QUIET_PATHS:
                log = logger.debug
            else:
                log = logger.info

            log(
                "http_request",
                method=request.method,
                path=path,
                status=status_code,
                duration_ms=duration_ms,
                client=request.client.host if request.client else None,
            )
