"""
app/errors.py

Stable error taxonomy for the insights API.

Every failure a pipeline stage can produce is one of the classes below. Each
carries the HTTP status, a stable machine-readable code, a client-safe
message and optional structured ``details``. The underlying exception, when
there is one, is chained as ``__cause__`` for server-side logging only; it is
never rendered to the client.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    RANGE_TOO_LARGE = "RANGE_TOO_LARGE"
    RATE_LIMITED = "RATE_LIMITED"
    DB_ERROR = "DB_ERROR"
    INVALID_API_KEY = "INVALID_API_KEY"
    UPSTREAM_AI_ERROR = "UPSTREAM_AI_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"


# Codes that are logged server-side even when the status is below 500.
ALWAYS_LOGGED_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.UPSTREAM_AI_ERROR,
        ErrorCode.DB_ERROR,
        ErrorCode.RATE_LIMITED,
    }
)


class InsightsError(Exception):
    """
    Base class for every classified failure.

    Attributes:
        status: HTTP status returned to the client.
        code: Stable error code from :class:`ErrorCode`.
        message: Client-safe message.
        details: Optional structured context (suppressed in production).
    """

    status: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "Internal Server Error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self, request_id: str, *, include_details: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ok": False,
            "code": self.code.value,
            "message": self.message,
            "requestId": request_id,
        }
        if include_details and self.details:
            payload["details"] = self.details
        return payload


class ValidationFailedError(InsightsError):
    status = 400
    code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid request"


class RangeTooLargeError(InsightsError):
    status = 400
    code = ErrorCode.RANGE_TOO_LARGE
    default_message = "Requested date range is too large"


class UnauthorizedError(InsightsError):
    status = 401
    code = ErrorCode.UNAUTHORIZED
    default_message = "Unauthorized"


class RateLimitedError(InsightsError):
    status = 429
    code = ErrorCode.RATE_LIMITED
    default_message = "Too many requests, please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after_seconds: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.retry_after_seconds = retry_after_seconds
        merged = dict(details or {})
        if retry_after_seconds is not None:
            merged.setdefault("retryAfterSeconds", retry_after_seconds)
        super().__init__(message, details=merged or None)


class DataSourceError(InsightsError):
    status = 500
    code = ErrorCode.DB_ERROR
    default_message = "Error querying the telemetry database"


class DataSourceUnavailableError(DataSourceError):
    status = 503
    default_message = "Database unavailable"


class InvalidAIKeyError(InsightsError):
    status = 503
    code = ErrorCode.INVALID_API_KEY
    default_message = "AI service credential is missing or invalid"


class UpstreamAIError(InsightsError):
    status = 502
    code = ErrorCode.UPSTREAM_AI_ERROR
    default_message = "The AI service failed to produce a valid response"


class InternalError(InsightsError):
    status = 500
    code = ErrorCode.INTERNAL_ERROR
    default_message = "Internal Server Error"


class NotFoundError(InsightsError):
    status = 404
    code = ErrorCode.NOT_FOUND
    default_message = "Endpoint not found"


class MethodNotAllowedError(InsightsError):
    status = 405
    code = ErrorCode.METHOD_NOT_ALLOWED
    default_message = "Method not allowed"


def classify(exc: BaseException) -> InsightsError:
    """
    Map any exception to a classified error.

    Already-classified errors pass through unchanged. Anything else becomes
    ``INTERNAL_ERROR`` (500) with the original chained as the cause.
    """

    if isinstance(exc, InsightsError):
        return exc
    wrapped = InternalError()
    wrapped.__cause__ = exc
    return wrapped


def cause_chain(exc: BaseException) -> list[str]:
    """
    Return ``["Type: message", ...]`` for ``exc`` and each chained cause.
    """

    chain: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(f"{type(current).__name__}: {current}")
        current = current.__cause__ or current.__context__
    return chain
