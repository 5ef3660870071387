"""
app/domain package marker.
"""

from app.domain.telemetry import (
    DailyPoint,
    DatasetMeta,
    EntityRef,
    EntitySummary,
    InsightsDataset,
    Observation,
    TelemetryRow,
    VariableSummary,
)

__all__ = [
    "DailyPoint",
    "DatasetMeta",
    "EntityRef",
    "EntitySummary",
    "InsightsDataset",
    "Observation",
    "TelemetryRow",
    "VariableSummary",
]
