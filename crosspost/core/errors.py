"""
Error taxonomy shared by the OAuth and publishing layers.

Every error that may cross an orchestrator boundary is a subclass of
:class:`CrossPostError` and carries the HTTP status it maps to, so the API
layer has one shape to translate.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Optional


class CrossPostError(Exception):
    """Base class for domain errors."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(CrossPostError):
    """Invalid or expired OAuth state, or no usable token for an account."""

    status_code = HTTPStatus.UNAUTHORIZED
    code = "authentication_failed"


class ValidationError(CrossPostError):
    """Malformed or unacceptable request."""

    status_code = HTTPStatus.BAD_REQUEST
    code = "validation_failed"

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(CrossPostError):
    """Unknown linked account or publish record."""

    status_code = HTTPStatus.NOT_FOUND
    code = "not_found"


class RateLimitError(CrossPostError):
    """A provider or internal quota was exceeded."""

    status_code = HTTPStatus.TOO_MANY_REQUESTS
    code = "rate_limited"

    def __init__(self, message: str, retry_after: Optional[int] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PlatformError(CrossPostError):
    """Normalized failure of a call to a social platform."""

    status_code = HTTPStatus.BAD_GATEWAY
    code = "platform_error"

    def __init__(
        self,
        platform: str,
        message: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.platform = platform
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return f"[{self.platform}] {self.message}"
        return f"[{self.platform}] {self.message}: {self.cause}"


__all__ = [
    "AuthenticationError",
    "CrossPostError",
    "NotFoundError",
    "PlatformError",
    "RateLimitError",
    "ValidationError",
]
