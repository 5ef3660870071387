"""
app/api/error_handlers.py

Central error rendering for the API.

Every failure, whether raised by a pipeline stage, by FastAPI's request
parsing or by routing, leaves through :func:`render_error` as::

    {"ok": false, "code": ..., "message": ..., "requestId": ..., "details"?: ...}

Logging policy
--------------
- status >= 500: logged at ERROR with the cause chain and traceback
- RATE_LIMITED / UPSTREAM_AI_ERROR / DB_ERROR: logged at WARNING when < 500
- everything else (expected client errors): not logged
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from app.errors import (
    ALWAYS_LOGGED_CODES,
    InsightsError,
    InternalError,
    MethodNotAllowedError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    ValidationFailedError,
    cause_chain,
    classify,
)
from app.logging_utils import get_request_id, log_event

logger = logging.getLogger(__name__)


def _expose_details(request: Request) -> bool:
    security = getattr(request.app.state, "security", None)
    return bool(getattr(security, "expose_error_details", False))


def _log_error(request: Request, error: InsightsError) -> None:
    if error.status >= 500:
        cause = error.__cause__ or error
        log_event(
            logger,
            logging.ERROR,
            "request_failed",
            exc_info=(type(cause), cause, cause.__traceback__),
            status=error.status,
            code=error.code.value,
            method=request.method,
            path=request.url.path,
            causes=cause_chain(error),
        )
    elif error.code in ALWAYS_LOGGED_CODES:
        log_event(
            logger,
            logging.WARNING,
            "request_rejected",
            status=error.status,
            code=error.code.value,
            method=request.method,
            path=request.url.path,
            causes=cause_chain(error),
        )


def render_error(request: Request, exc: BaseException) -> JSONResponse:
    """
    Classify ``exc``, log it according to policy and build the JSON response.
    """

    error = classify(exc)
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    _log_error(request, error)

    headers: dict[str, str] = {}
    if isinstance(error, RateLimitedError) and error.retry_after_seconds is not None:
        headers["Retry-After"] = str(error.retry_after_seconds)

    return JSONResponse(
        status_code=error.status,
        content=error.to_payload(request_id, include_details=_expose_details(request)),
        headers=headers,
    )


def _validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": str(err.get("msg", "")),
            "type": str(err.get("type", "")),
        }
        for err in exc.errors()
    ]


async def _insights_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return render_error(request, exc)


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = ValidationFailedError(
        "Request body is malformed",
        details={"errors": _validation_errors(exc)},
    )
    error.__cause__ = exc
    return render_error(request, error)


async def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    error: InsightsError
    if exc.status_code == 404:
        error = NotFoundError()
    elif exc.status_code == 405:
        error = MethodNotAllowedError()
    elif exc.status_code == 401:
        error = UnauthorizedError()
    elif exc.status_code >= 500:
        error = InternalError()
    else:
        error = ValidationFailedError(str(exc.detail))
    error.__cause__ = exc
    return render_error(request, error)


def register_error_handlers(application: FastAPI) -> None:
    """
    Attach the central handlers to ``application``.

    Unhandled exceptions are rendered by the request-context middleware,
    which sits inside the server error middleware and can still set headers.
    """

    application.add_exception_handler(InsightsError, _insights_error_handler)
    application.add_exception_handler(RequestValidationError, _request_validation_handler)
    application.add_exception_handler(StarletteHTTPException, _http_exception_handler)
