"""
app/api/middleware.py

Request correlation middleware.

Every request gets a correlation ID (the inbound ``X-Request-ID`` when one is
supplied, otherwise a fresh UUID4). It is stored on ``request.state``, bound
to the logging context and echoed on every response, including responses
rendered for unhandled exceptions.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.api.error_handlers import render_error
from app.logging_utils import bind_request_id, reset_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _resolve_request_id(inbound: str | None) -> str:
    candidate = (inbound or "").strip()
    if candidate:
        return candidate
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        request.state.received_at = datetime.now(timezone.utc)
        token = bind_request_id(request_id)
        started = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception as exc:
                response = render_error(request, exc)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "%s %s → %d in %.1fms",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
            return response
        finally:
            reset_request_id(token)
