"""
Telemetry domain types.

``TelemetryRow`` is what the data source hands over; everything else is
built once per insights request and discarded with the response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Granularity = Literal["day", "week", "month"]
Trend = Literal["rising", "falling", "stable"]


@dataclass(frozen=True)
class TelemetryRow:
    """
    One observation, pre-aggregated by the data source to the requested
    granularity. ``date`` is an ISO ``YYYY-MM-DD`` string.
    """

    date: str
    entity_id: int
    entity_name: str
    variable_code: str
    value: float | None


@dataclass(frozen=True)
class EntityRef:
    id: int
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Observation:
    date: str
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "value": self.value}


@dataclass(frozen=True)
class VariableSummary:
    """
    Derived statistics for one ``(entity, variable)`` pair.
    """

    variable_code: str
    count: int
    average: float | None
    minimum: float | None
    maximum: float | None
    stdev: float
    trend: Trend
    variation_absolute: float | None
    variation_percent: float | None
    outliers: tuple[Observation, ...]
    missing_days: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "variable": self.variable_code,
            "count": self.count,
            "average": self.average,
            "min": self.minimum,
            "max": self.maximum,
            "stdev": self.stdev,
            "trend": self.trend,
            "variationAbsolute": self.variation_absolute,
            "variationPercent": self.variation_percent,
            "outliers": [o.to_dict() for o in self.outliers],
            "missingDays": self.missing_days,
        }


@dataclass(frozen=True)
class EntitySummary:
    entity_id: int
    entity_name: str
    variables: tuple[VariableSummary, ...]
    missing_days: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityId": self.entity_id,
            "entityName": self.entity_name,
            "variables": [v.to_dict() for v in self.variables],
            "missingDays": self.missing_days,
        }


@dataclass(frozen=True)
class DailyPoint:
    """
    Cross-variable average of one entity on one date (chart context only).
    """

    date: str
    entity_id: int
    entity_name: str
    average_value: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "entityId": self.entity_id,
            "entityName": self.entity_name,
            "averageValue": self.average_value,
        }


@dataclass(frozen=True)
class DatasetMeta:
    entities: tuple[EntityRef, ...]
    granularity: Granularity

    def to_dict(self) -> dict[str, Any]:
        return {
            "entities": [e.to_dict() for e in self.entities],
            "granularity": self.granularity,
        }


@dataclass
class InsightsDataset:
    """
    Compact statistical view of the requested telemetry.

    ``truncated`` is true whenever the daily row cap or the byte budget
    forced data to be dropped. ``entities`` is never dropped.
    """

    start: str
    end: str
    days: int
    entities: list[EntitySummary]
    daily: list[DailyPoint]
    truncated: bool
    meta: DatasetMeta
    payload_bytes: int = field(default=0, compare=False)

    def stats_dict(self) -> dict[str, Any]:
        """Serialisable statistics block (what the AI receives)."""
        return {
            "range": {"start": self.start, "end": self.end, "days": self.days},
            "entities": [e.to_dict() for e in self.entities],
            "daily": [d.to_dict() for d in self.daily],
            "truncated": self.truncated,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.stats_dict(), "meta": self.meta.to_dict()}
