"""
app/schemas package marker.
"""

from app.schemas.insights import (
    EntityItem,
    EntityListResponse,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    InsightsMeta,
    InsightsRequestBody,
    InsightsSuccessResponse,
)

__all__ = [
    "EntityItem",
    "EntityListResponse",
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
    "InsightsMeta",
    "InsightsRequestBody",
    "InsightsSuccessResponse",
]
