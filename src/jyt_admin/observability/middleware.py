"""
jyt_admin.observability.middleware

Request-scoped logging context.

Responsibilities:
- Propagate `x-request-id` (or mint one) and echo it on the response.
- Bind request id, path and method into structlog contextvars.
- Emit one access line per request; probe endpoints stay quiet.
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from jyt_admin.observability.logging import get_logger

log = get_logger(__name__)

QUIET_PATHS = frozenset({"/healthz", "/readyz"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, path=request.url.path, method=request.method
        )
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
            if request.url.path not in QUIET_PATHS:
                elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
                emit = log.warning if response.status_code >= 500 else log.info
                emit("request", status_code=response.status_code, duration_ms=elapsed_ms)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["x-request-id"] = request_id
        return response


# --- Module Notes -----------------------------------------------------------
# Workflow runs nest their own context on top of this one via `logging.bound_context`.
