"""
app/services/insights_pipeline.py

End-to-end lifecycle of one ``POST /insights`` request.

State machine
-------------
::

    RECEIVED → VALIDATED → RATE_CHECKED → AGGREGATED → AI_INVOKED → SUCCEEDED
        └──────────┴────────────┴─────────────┴────────────┴──────→ FAILED

Stages run strictly in order and short-circuit on the first failure. No
stage is retried here; the AI deadline race lives inside ``AI_INVOKED``.
``SUCCEEDED`` and ``FAILED`` are terminal.

Failure contract
----------------
- Malformed input                     → ValidationFailedError / RangeTooLargeError
- Insights limiter tripped            → RateLimitedError
- Data source failure                 → DataSourceError
- AI failure                          → the classified error of the InsightFailure
- Client abort (task cancellation)    → run marked FAILED, CancelledError re-raised
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from app.domain.telemetry import InsightsDataset
from app.errors import InsightsError, ValidationFailedError, classify
from app.services.aggregation_service import TimeSeriesAggregator
from app.services.ai_orchestrator import AIOrchestrator, InsightFailure
from app.services.date_range import DateRange, resolve_granularity, validate_range
from app.services.rate_limiter import RateLimiter
from llm_synthesis.prompt_builder import LANGUAGES, WIRE_DETAIL_LEVELS
from llm_synthesis.schema import InsightResult

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    RATE_CHECKED = "RATE_CHECKED"
    AGGREGATED = "AGGREGATED"
    AI_INVOKED = "AI_INVOKED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


_NEXT_STATE: dict[PipelineState, PipelineState] = {
    PipelineState.RECEIVED: PipelineState.VALIDATED,
    PipelineState.VALIDATED: PipelineState.RATE_CHECKED,
    PipelineState.RATE_CHECKED: PipelineState.AGGREGATED,
    PipelineState.AGGREGATED: PipelineState.AI_INVOKED,
    PipelineState.AI_INVOKED: PipelineState.SUCCEEDED,
}

TERMINAL_STATES: frozenset[PipelineState] = frozenset(
    {PipelineState.SUCCEEDED, PipelineState.FAILED}
)


@dataclass(frozen=True)
class InsightsRequest:
    """
    Raw request fields, exactly as received. Validation happens in the pipeline.
    """

    fecha_ini: Any = None
    fecha_fin: Any = None
    represas: Any = None
    idioma: Any = "es"
    nivel_detalle: Any = "normal"
    granularity: Any = None


@dataclass(frozen=True)
class ValidatedRequest:
    date_range: DateRange
    entity_ids: tuple[int, ...]
    language: str
    detail_level: str
    granularity_override: str | None


@dataclass(frozen=True)
class InsightsResponse:
    dataset: InsightsDataset
    result: InsightResult
    model: str


@dataclass
class PipelineRun:
    """
    Transition record of one invocation. Illegal transitions are bugs and
    raise ``RuntimeError``.
    """

    request_id: str
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: PipelineState = PipelineState.RECEIVED
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    error: InsightsError | None = None

    def advance(self) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Pipeline already finished in state {self.state.value}")
        self._enter(_NEXT_STATE[self.state])

    def fail(self, error: InsightsError | None) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Pipeline already finished in state {self.state.value}")
        self.error = error
        self._enter(PipelineState.FAILED)

    def _enter(self, state: PipelineState) -> None:
        logger.debug("Pipeline %s → %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)


def parse_entity_ids(raw: Any) -> tuple[int, ...]:
    """
    Validate the requested entity identifiers.

    Accepts a non-empty list of digit strings or non-negative integers;
    duplicates are dropped preserving first-seen order.
    """

    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValidationFailedError(
            "represas must be a non-empty list of reservoir identifiers",
            details={"field": "represas"},
        )

    ids: list[int] = []
    invalid: list[Any] = []
    for item in raw:
        if isinstance(item, bool):
            invalid.append(item)
        elif isinstance(item, int) and item >= 0:
            ids.append(item)
        elif isinstance(item, str) and item.strip().isdigit():
            ids.append(int(item.strip()))
        else:
            invalid.append(item)

    if invalid:
        raise ValidationFailedError(
            "represas must contain only numeric identifiers",
            details={"field": "represas", "invalid": [str(v) for v in invalid]},
        )
    return tuple(dict.fromkeys(ids))


def _choice(raw: Any, *, field_name: str, allowed: dict[str, str], default: str) -> str:
    if raw is None:
        return default
    value = str(raw).strip().lower()
    if value not in allowed:
        raise ValidationFailedError(
            f"{field_name} must be one of: {', '.join(allowed)}",
            details={"field": field_name, "value": str(raw)},
        )
    return value


class InsightsPipeline:
    """
    Composes validation, rate limiting, aggregation and AI generation.

    All collaborators are injected; the pipeline holds no state between runs.
    """

    def __init__(
        self,
        *,
        aggregator: TimeSeriesAggregator,
        orchestrator: AIOrchestrator,
        rate_limiter: RateLimiter,
        max_range_days: int,
    ) -> None:
        self._aggregator = aggregator
        self._orchestrator = orchestrator
        self._rate_limiter = rate_limiter
        self._max_range_days = max_range_days

    def validate(self, request: InsightsRequest) -> ValidatedRequest:
        date_range = validate_range(
            request.fecha_ini,
            request.fecha_fin,
            max_range_days=self._max_range_days,
        )
        entity_ids = parse_entity_ids(request.represas)
        language = _choice(request.idioma, field_name="idioma", allowed=LANGUAGES, default="es")
        detail = _choice(
            request.nivel_detalle,
            field_name="nivelDetalle",
            allowed=WIRE_DETAIL_LEVELS,
            default="normal",
        )
        override = None if request.granularity is None else str(request.granularity)
        return ValidatedRequest(
            date_range=date_range,
            entity_ids=entity_ids,
            language=language,
            detail_level=WIRE_DETAIL_LEVELS[detail],
            granularity_override=override,
        )

    async def run(
        self,
        request: InsightsRequest,
        *,
        client_id: str,
        run: PipelineRun,
    ) -> InsightsResponse:
        """
        Execute every stage for one request, recording transitions on ``run``.

        Raises the classified :class:`InsightsError` of the first failing stage.
        """

        try:
            validated = self.validate(request)
            run.advance()  # VALIDATED

            self._rate_limiter.check(client_id)
            run.advance()  # RATE_CHECKED

            granularity = resolve_granularity(
                validated.granularity_override, validated.date_range.days
            )
            dataset = await self._aggregator.build(
                validated.date_range, granularity, validated.entity_ids
            )
            run.advance()  # AGGREGATED

            outcome = await self._orchestrator.generate(
                dataset,
                language=validated.language,
                detail_level=validated.detail_level,
            )
            if isinstance(outcome, InsightFailure):
                raise outcome.error
            run.advance()  # AI_INVOKED

            run.advance()  # SUCCEEDED
            logger.info(
                "Insights generated entities=%d range_days=%d model=%s",
                len(validated.entity_ids),
                validated.date_range.days,
                outcome.model,
            )
            return InsightsResponse(dataset=dataset, result=outcome.result, model=outcome.model)
        except asyncio.CancelledError:
            logger.warning("Insights request cancelled in state %s", run.state.value)
            run.fail(None)
            raise
        except Exception as exc:
            error = classify(exc)
            run.fail(error)
            raise error
