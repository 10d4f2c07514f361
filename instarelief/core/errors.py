"""Domain exception base and structured error response handlers.

Every error returned by the API has the same envelope:

    {
      "error": {
        "code": "NO_AFFECTED_USERS",
        "message": "No users with wallet addresses found in ZIP codes 70401.",
        "request_id": "abc123...",
        ...extra fields when relevant
      }
    }
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

_STATUS_CODE_MAP: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    502: "UPSTREAM_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class ReliefError(Exception):
    """Base class for errors raised by InstaRelief services.

    Subclasses set ``status_code`` and ``code`` so the API layer can render
    them without a per-route translation table.
    """

    status_code: int = 400
    code: str = "BAD_REQUEST"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra


def _envelope(request: Request, code: str, message: str, **extra: Any) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "request_id": getattr(request.state, "request_id", None),
            **extra,
        }
    }


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(ReliefError)
    async def relief_error_handler(request: Request, exc: ReliefError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(request, exc.code, exc.message, **exc.extra),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if isinstance(exc.detail, dict):
            body = {
                "error": {
                    **exc.detail,
                    "request_id": getattr(request.state, "request_id", None),
                }
            }
        else:
            body = _envelope(
                request,
                _STATUS_CODE_MAP.get(exc.status_code, "ERROR"),
                str(exc.detail),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=body,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = [
            {
                "field": " -> ".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_envelope(
                request,
                "VALIDATION_ERROR",
                f"{len(fields)} validation error(s) in your request.",
                details=fields,
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled error (request_id=%s)", getattr(request.state, "request_id", None)
        )
        return JSONResponse(
            status_code=500,
            content=_envelope(
                request,
                "INTERNAL_ERROR",
                "An unexpected error occurred. Check the service logs for this request_id.",
            ),
        )
