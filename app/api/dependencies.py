"""
app/api/dependencies.py

Shared FastAPI dependencies: authentication, client identity, the whole-API
rate limiter and access to the collaborators built by the app factory.
"""

from __future__ import annotations

import hmac

from fastapi import Header, Request

from app.errors import UnauthorizedError
from app.repositories.telemetry_repository import SqlTelemetryRepository
from app.services.insights_pipeline import InsightsPipeline
from app.services.rate_limiter import client_identity
from app.stores import TTLCache

API_KEY_HEADER = "X-API-Key"


def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias=API_KEY_HEADER),
) -> None:
    """
    Reject the request unless ``X-API-Key`` matches the configured secret.

    A server without a configured secret rejects every authenticated route.
    """

    expected = request.app.state.security.api_key
    supplied = (x_api_key or "").strip()
    if not expected or not supplied:
        raise UnauthorizedError()
    if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise UnauthorizedError()


def get_client_id(request: Request) -> str:
    return client_identity(
        request.headers.get("x-forwarded-for"),
        request.client.host if request.client else None,
    )


def enforce_api_rate_limit(request: Request) -> None:
    """
    Count the request against the coarse whole-API limiter.
    """

    request.app.state.api_rate_limiter.check(get_client_id(request))


def get_insights_pipeline(request: Request) -> InsightsPipeline:
    return request.app.state.insights_pipeline


def get_telemetry_repository(request: Request) -> SqlTelemetryRepository:
    return request.app.state.telemetry_source


def get_metadata_cache(request: Request) -> TTLCache:
    return request.app.state.metadata_cache
