"""
app/services/aggregation_service.py

Telemetry aggregation layer for the insights pipeline.

Reduces raw ``TelemetryRow`` observations into a compact
:class:`~app.domain.telemetry.InsightsDataset` that fits a hard byte budget
before it is handed to the generative-text service.

Statistics per (entity, variable)
---------------------------------
    average            sum / count               (None when count == 0)
    stdev              population stdev          (mean of squared deviations)
    outliers           |v - average| >= 2.5 * stdev, top 5 by distance
    variationAbsolute  last - first              (by ISO date string)
    variationPercent   (last - first) / |first| * 100, only when first != 0
    trend              stable when |variationAbsolute| < stdev (or 0.01 if
                       stdev == 0), else rising / falling
    missingDays        max(range_days - distinct observed dates, 0)

Non-finite values (None, NaN, ±inf) are skipped; they never fail a request.

Budget enforcement
------------------
Applied in order, both may fire:

1. Daily series longer than ``max_daily_rows`` keeps every
   ``ceil(len / max_daily_rows)``-th row.
2. If the compact JSON of the dataset is larger than ``max_payload_bytes``,
   the daily series is dropped entirely.

Either step sets ``truncated``. Per-entity statistics are never dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Final

import numpy as np

from app.domain.telemetry import (
    DailyPoint,
    DatasetMeta,
    EntityRef,
    EntitySummary,
    Granularity,
    InsightsDataset,
    Observation,
    TelemetryRow,
    Trend,
    VariableSummary,
)
from app.errors import DataSourceError
from app.repositories.telemetry_repository import TelemetrySource
from app.services.date_range import DateRange

logger = logging.getLogger(__name__)

DEFAULT_MAX_DAILY_ROWS: Final[int] = 1500
DEFAULT_MAX_PAYLOAD_BYTES: Final[int] = 14000

OUTLIER_STDEV_FACTOR: Final[float] = 2.5
MAX_OUTLIERS: Final[int] = 5
STABLE_FLOOR: Final[float] = 0.01
"""Trend threshold used when stdev is zero."""


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _finite(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def compact_json_size(payload: object) -> int:
    """UTF-8 byte length of the compact JSON form of ``payload``."""
    return len(json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


@dataclass
class _VariableAccumulator:
    variable_code: str
    count: int = 0
    total: float = 0.0
    minimum: float = math.inf
    maximum: float = -math.inf
    values: list[Observation] = field(default_factory=list)
    first: Observation | None = None
    last: Observation | None = None

    def add(self, date: str, value: float) -> None:
        obs = Observation(date=date, value=value)
        self.count += 1
        self.total += value
        self.minimum = min(self.minimum, value)
        self.maximum = max(self.maximum, value)
        self.values.append(obs)
        # ISO dates compare correctly as strings.
        if self.first is None or date < self.first.date:
            self.first = obs
        if self.last is None or date >= self.last.date:
            self.last = obs

    def summarize(self, range_days: int) -> VariableSummary:
        average = self.total / self.count if self.count else None
        raw = [o.value for o in self.values]
        stdev = float(np.std(raw)) if raw else 0.0

        outliers: tuple[Observation, ...] = ()
        if stdev > 0 and average is not None:
            flagged = [
                o for o in self.values
                if abs(o.value - average) >= OUTLIER_STDEV_FACTOR * stdev
            ]
            flagged.sort(key=lambda o: abs(o.value - average), reverse=True)
            outliers = tuple(flagged[:MAX_OUTLIERS])

        variation_abs: float | None = None
        variation_pct: float | None = None
        if self.first is not None and self.last is not None:
            variation_abs = self.last.value - self.first.value
            if self.first.value != 0:
                variation_pct = variation_abs / abs(self.first.value) * 100

        observed_dates = {o.date for o in self.values}
        return VariableSummary(
            variable_code=self.variable_code,
            count=self.count,
            average=average,
            minimum=self.minimum if self.count else None,
            maximum=self.maximum if self.count else None,
            stdev=stdev,
            trend=classify_trend(variation_abs, stdev),
            variation_absolute=variation_abs,
            variation_percent=variation_pct,
            outliers=outliers,
            missing_days=max(range_days - len(observed_dates), 0),
        )


def classify_trend(variation_abs: float | None, stdev: float) -> Trend:
    threshold = stdev if stdev else STABLE_FLOOR
    if variation_abs is None or abs(variation_abs) < threshold:
        return "stable"
    return "rising" if variation_abs > 0 else "falling"


def downsample(points: Sequence[DailyPoint], max_rows: int) -> tuple[list[DailyPoint], bool]:
    """
    Keep every ``ceil(len / max_rows)``-th point. Returns ``(points, dropped)``.
    """

    if len(points) <= max_rows:
        return list(points), False
    step = math.ceil(len(points) / max_rows)
    return [p for idx, p in enumerate(points) if idx % step == 0], True


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TimeSeriesAggregator:
    """
    Builds the per-request :class:`InsightsDataset`.

    Parameters
    ----------
    source:
        Telemetry collaborator. Its two reads (entity names and rows) are
        issued concurrently and joined before statistics are computed.
    max_daily_rows:
        Row cap on the daily series before downsampling.
    max_payload_bytes:
        Byte budget of the serialised dataset before the daily series is dropped.
    """

    def __init__(
        self,
        source: TelemetrySource,
        *,
        max_daily_rows: int = DEFAULT_MAX_DAILY_ROWS,
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
    ) -> None:
        self._source = source
        self._max_daily_rows = max(1, max_daily_rows)
        self._max_payload_bytes = max(1, max_payload_bytes)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def build(
        self,
        date_range: DateRange,
        granularity: Granularity,
        entity_ids: Sequence[int],
    ) -> InsightsDataset:
        """
        Read telemetry for ``entity_ids`` over ``date_range`` and summarise it.

        Raises
        ------
        DataSourceError
            Any collaborator failure, with the original error as ``__cause__``.
        """

        names_result, rows_result = await asyncio.gather(
            self._source.fetch_entity_names(entity_ids),
            self._source.fetch_rows(
                start=date_range.start,
                end=date_range.end,
                entity_ids=entity_ids,
                granularity=granularity,
            ),
            return_exceptions=True,
        )
        for outcome in (names_result, rows_result):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                raise DataSourceError() from outcome

        dataset = self.summarize(
            rows_result,  # type: ignore[arg-type]
            date_range=date_range,
            granularity=granularity,
            entities=names_result,  # type: ignore[arg-type]
        )
        logger.info(
            "Insights dataset built entities=%d daily=%d truncated=%s bytes=%d granularity=%s",
            len(dataset.entities),
            len(dataset.daily),
            dataset.truncated,
            dataset.payload_bytes,
            granularity,
        )
        return dataset

    def summarize(
        self,
        rows: Iterable[TelemetryRow],
        *,
        date_range: DateRange,
        granularity: Granularity,
        entities: Sequence[EntityRef] = (),
    ) -> InsightsDataset:
        """
        Pure reduction of ``rows`` into an :class:`InsightsDataset`.
        """

        stats: dict[tuple[int, str], _VariableAccumulator] = {}
        names: dict[int, str] = {}
        daily_sums: dict[tuple[str, int], list[float]] = {}

        for row in rows:
            names.setdefault(row.entity_id, row.entity_name)
            key = (row.entity_id, row.variable_code)
            acc = stats.get(key)
            if acc is None:
                acc = stats[key] = _VariableAccumulator(variable_code=row.variable_code)

            value = _finite(row.value)
            if value is None:
                continue
            day = row.date[:10]
            acc.add(day, value)
            bucket = daily_sums.setdefault((day, row.entity_id), [0.0, 0])
            bucket[0] += value
            bucket[1] += 1

        summaries = self._entity_summaries(stats, names, date_range.days)
        daily = sorted(
            (
                DailyPoint(
                    date=day,
                    entity_id=entity_id,
                    entity_name=names[entity_id],
                    average_value=total / count,
                )
                for (day, entity_id), (total, count) in daily_sums.items()
            ),
            key=lambda p: (p.date, p.entity_name, p.entity_id),
        )

        daily, truncated = downsample(daily, self._max_daily_rows)
        dataset = InsightsDataset(
            start=date_range.start_iso,
            end=date_range.end_iso,
            days=date_range.days,
            entities=summaries,
            daily=daily,
            truncated=truncated,
            meta=DatasetMeta(entities=tuple(entities), granularity=granularity),
        )
        return self._enforce_budget(dataset)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _entity_summaries(
        stats: dict[tuple[int, str], _VariableAccumulator],
        names: dict[int, str],
        range_days: int,
    ) -> list[EntitySummary]:
        by_entity: dict[int, list[VariableSummary]] = {}
        for (entity_id, _), acc in stats.items():
            by_entity.setdefault(entity_id, []).append(acc.summarize(range_days))

        summaries = []
        for entity_id, variables in by_entity.items():
            variables.sort(key=lambda v: v.variable_code)
            summaries.append(
                EntitySummary(
                    entity_id=entity_id,
                    entity_name=names[entity_id],
                    variables=tuple(variables),
                    missing_days=max(v.missing_days for v in variables),
                )
            )
        summaries.sort(key=lambda s: (s.entity_name, s.entity_id))
        return summaries

    def _enforce_budget(self, dataset: InsightsDataset) -> InsightsDataset:
        size = compact_json_size(dataset.stats_dict())
        if size > self._max_payload_bytes:
            logger.info(
                "Dataset of %d bytes exceeds budget of %d; dropping %d daily rows",
                size,
                self._max_payload_bytes,
                len(dataset.daily),
            )
            dataset.daily = []
            dataset.truncated = True
            size = compact_json_size(dataset.stats_dict())
        dataset.payload_bytes = size
        return dataset
