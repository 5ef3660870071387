"""
app/services package marker.
"""

from app.services.aggregation_service import TimeSeriesAggregator
from app.services.ai_orchestrator import AIOrchestrator, InsightFailure, InsightSuccess
from app.services.date_range import DateRange, resolve_granularity, validate_range
from app.services.insights_pipeline import (
    InsightsPipeline,
    InsightsRequest,
    InsightsResponse,
    PipelineRun,
    PipelineState,
)
from app.services.rate_limiter import RateLimiter, client_identity

__all__ = [
    "AIOrchestrator",
    "DateRange",
    "InsightFailure",
    "InsightSuccess",
    "InsightsPipeline",
    "InsightsRequest",
    "InsightsResponse",
    "PipelineRun",
    "PipelineState",
    "RateLimiter",
    "TimeSeriesAggregator",
    "client_identity",
    "resolve_granularity",
    "validate_range",
]
