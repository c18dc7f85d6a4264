"""
Translate domain errors into JSON responses.

Every error body has the shape ``{"error": "...", "code": "..."}``. Failures
on ``/auth`` routes are reported with a generic message; the real cause is
only logged, since provider errors there can echo codes or tokens.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crosspost.core.errors import CrossPostError, RateLimitError, ValidationError

logger = logging.getLogger(__name__)

GENERIC_AUTH_MESSAGE = "Authorization failed"


def _is_auth_route(request: Request) -> bool:
    return "/auth/" in request.url.path


async def crosspost_error_handler(request: Request, exc: CrossPostError) -> JSONResponse:
    status_code = int(exc.status_code)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)

    message = exc.message
    if _is_auth_route(request) and not isinstance(exc, ValidationError):
        message = GENERIC_AUTH_MESSAGE

    body: dict = {"error": message, "code": exc.code}
    if isinstance(exc, ValidationError) and exc.errors:
        body["details"] = exc.errors

    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
        body["retry_after"] = exc.retry_after

    return JSONResponse(status_code=status_code, content=body, headers=headers or None)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the domain error handler to ``app``."""
    app.add_exception_handler(CrossPostError, crosspost_error_handler)


__all__ = ["GENERIC_AUTH_MESSAGE", "register_exception_handlers"]
