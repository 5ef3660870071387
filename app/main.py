from __future__ import annotations

import logging
import time

from fastapi import Depends, FastAPI

from app.api.dependencies import enforce_api_rate_limit
from app.api.error_handlers import register_error_handlers
from app.api.middleware import RequestContextMiddleware
from app.config import (
    InsightsSettings,
    LLMSettings,
    MetadataSettings,
    RateLimitSettings,
    SecuritySettings,
    get_api_rate_limit_settings,
    get_insights_rate_limit_settings,
    get_insights_settings,
    get_llm_settings,
    get_metadata_settings,
    get_security_settings,
)
from app.logging_utils import configure_logging
from app.repositories.telemetry_repository import SqlTelemetryRepository, TelemetrySource
from app.services.aggregation_service import TimeSeriesAggregator
from app.services.ai_orchestrator import AIOrchestrator
from app.services.insights_pipeline import InsightsPipeline
from app.services.rate_limiter import RateLimiter
from app.stores import BucketStore, Clock, TTLCache
from db.session import SessionLocal
from llm_synthesis.adapter import BaseLLMAdapter, build_adapter

logger = logging.getLogger(__name__)


def _build_limiter(
    name: str,
    settings: RateLimitSettings,
    clock: Clock,
    message: str | None = None,
) -> RateLimiter:
    return RateLimiter(
        name=name,
        message=message,
        max_requests=settings.max_requests,
        window_seconds=settings.window_seconds,
        store=BucketStore(max_buckets=settings.max_buckets, clock=clock),
    )


def create_app(
    *,
    source: TelemetrySource | None = None,
    adapter: BaseLLMAdapter | None = None,
    insights_settings: InsightsSettings | None = None,
    insights_rate_limit: RateLimitSettings | None = None,
    api_rate_limit: RateLimitSettings | None = None,
    llm_settings: LLMSettings | None = None,
    security: SecuritySettings | None = None,
    metadata: MetadataSettings | None = None,
    clock: Clock = time.monotonic,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every collaborator can be injected; anything left out is built from the
    environment. The database engine is created on first use, so building
    the app never opens a connection.
    """

    configure_logging()

    insights_settings = insights_settings or get_insights_settings()
    insights_rate_limit = insights_rate_limit or get_insights_rate_limit_settings()
    api_rate_limit = api_rate_limit or get_api_rate_limit_settings()
    security = security or get_security_settings()
    metadata = metadata or get_metadata_settings()

    if source is None:
        source = SqlTelemetryRepository(SessionLocal)
    if adapter is None:
        adapter = build_adapter(llm_settings or get_llm_settings())

    application = FastAPI(
        title="Reservoir Insights API",
        version="1.0.0",
        dependencies=[Depends(enforce_api_rate_limit)],
    )

    application.state.security = security
    application.state.telemetry_source = source
    application.state.api_rate_limiter = _build_limiter("api", api_rate_limit, clock)
    application.state.insights_rate_limiter = _build_limiter(
        "insights",
        insights_rate_limit,
        clock,
        message="Too many insight requests, please slow down.",
    )
    application.state.metadata_cache = TTLCache(
        ttl_seconds=metadata.cache_ttl_seconds,
        max_entries=metadata.cache_max_entries,
        clock=clock,
    )
    application.state.insights_pipeline = InsightsPipeline(
        aggregator=TimeSeriesAggregator(
            source,
            max_daily_rows=insights_settings.max_daily_rows,
            max_payload_bytes=insights_settings.max_payload_bytes,
        ),
        orchestrator=AIOrchestrator(
            adapter,
            timeout_seconds=insights_settings.model_timeout_seconds,
        ),
        rate_limiter=application.state.insights_rate_limiter,
        max_range_days=insights_settings.max_range_days,
    )

    register_error_handlers(application)
    application.add_middleware(RequestContextMiddleware)

    from app.api.routers import insights_router, meta_router

    application.include_router(meta_router)
    application.include_router(insights_router)

    if not security.api_key:
        logger.warning("API_KEY is not configured; authenticated routes will reject every request")
    logger.info("Insights API configured with model=%s", adapter.model_name)
    return application


app = create_app()
