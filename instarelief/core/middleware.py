"""Access logging middleware that tags each request with a short id."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("instarelief.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - start) * 1000

        response.headers["X-Request-ID"] = request_id
        caller = "admin" if getattr(request.state, "is_admin", False) else "-"

        logger.info(
            "%s %s %d %.1fms caller=%s req=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            caller,
            request_id,
        )
        return response
