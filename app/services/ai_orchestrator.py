"""
app/services/ai_orchestrator.py

Generative-text orchestration for insights.

Builds the prompt contract, races the model call against a deadline,
validates the structured output and classifies every failure. The caller
always gets an :data:`AIOutcome`: either :class:`InsightSuccess` with a
validated :class:`~llm_synthesis.schema.InsightResult`, or
:class:`InsightFailure` carrying a classified error. ``generate`` never
raises for AI-side failures.

Failure classification (first match wins)
-----------------------------------------
1. adapter has no credential                      → INVALID_API_KEY   (503)
2. status_code 401/403, or credential wording     → INVALID_API_KEY   (503)
3. status_code 429, or rate-limit/quota wording   → RATE_LIMITED      (429)
4. anything else (timeout, empty, malformed ...)  → UPSTREAM_AI_ERROR (502)

Errors that are already classified pass through unchanged. An unsupported
language or detail level is reported as ``VALIDATION_ERROR`` (400) before the
model is called.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Final, Union

from app.domain.telemetry import InsightsDataset
from app.errors import (
    InsightsError,
    InvalidAIKeyError,
    RateLimitedError,
    UpstreamAIError,
    ValidationFailedError,
)
from llm_synthesis.adapter import BaseLLMAdapter
from llm_synthesis.deadline import DeadlineExceeded, race_against_deadline
from llm_synthesis.prompt_builder import (
    DETAIL_LEVELS,
    LANGUAGES,
    InsightsPromptBuilder,
    resolve_detail_level,
    resolve_language,
)
from llm_synthesis.schema import RESPONSE_SCHEMA, InsightResult
from llm_synthesis.validator import LLMOutputValidationError, validate_llm_output

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS: Final[float] = 20.0

_AUTH_STATUS_CODES: Final[frozenset[int]] = frozenset({401, 403})
_RATE_LIMIT_STATUS_CODES: Final[frozenset[int]] = frozenset({429})

_AUTH_PATTERN = re.compile(
    r"api[\s_-]?key|unauthori[sz]ed|permission[\s_]denied|invalid[\s_]credential|authenticat",
    re.IGNORECASE,
)
_RATE_LIMIT_PATTERN = re.compile(
    r"rate[\s_-]?limit|quota|resource[\s_]exhausted|too many requests",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class InsightSuccess:
    result: InsightResult
    model: str


@dataclass(frozen=True)
class InsightFailure:
    error: InsightsError


AIOutcome = Union[InsightSuccess, InsightFailure]


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_ai_error(exc: BaseException) -> InsightsError:
    """
    Map an exception raised while calling the AI service to the taxonomy.
    """

    if isinstance(exc, InsightsError):
        return exc

    status = _status_code(exc)
    text = str(exc)

    if status in _AUTH_STATUS_CODES or (status is None and _AUTH_PATTERN.search(text)):
        error: InsightsError = InvalidAIKeyError()
    elif status in _RATE_LIMIT_STATUS_CODES or (
        status is None and _RATE_LIMIT_PATTERN.search(text)
    ):
        error = RateLimitedError("The AI service is rate limited, please retry later.")
    elif isinstance(exc, DeadlineExceeded):
        error = UpstreamAIError("The AI service took too long to respond")
    else:
        error = UpstreamAIError()
    error.__cause__ = exc
    return error


class AIOrchestrator:
    """
    Produces a validated insight result for one dataset.

    Parameters
    ----------
    adapter:
        Generative-text adapter.
    timeout_seconds:
        Deadline for one model call. The in-flight call is abandoned, not
        cancelled, when the deadline wins.
    """

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        prompt_builder: InsightsPromptBuilder | None = None,
    ) -> None:
        self._adapter = adapter
        self._timeout_seconds = timeout_seconds
        self._prompt_builder = prompt_builder or InsightsPromptBuilder()

    @property
    def model_name(self) -> str:
        return self._adapter.model_name

    async def generate(
        self,
        dataset: InsightsDataset,
        *,
        language: str = "es",
        detail_level: str = "normal",
    ) -> AIOutcome:
        code = resolve_language(language)
        detail = resolve_detail_level(detail_level)
        if code is None or detail is None:
            return InsightFailure(
                ValidationFailedError(
                    "Unsupported language or detail level",
                    details={
                        "language": str(language),
                        "detailLevel": str(detail_level),
                        "languages": list(LANGUAGES),
                        "detailLevels": list(DETAIL_LEVELS),
                    },
                )
            )

        if not self._adapter.has_credentials:
            logger.error("AI credential is not configured")
            return InsightFailure(InvalidAIKeyError())

        system_instruction = self._prompt_builder.build_system_instruction(code, detail)
        prompt = self._prompt_builder.build_prompt(
            dataset.stats_dict(), dataset.meta.granularity
        )

        try:
            response = await race_against_deadline(
                self._adapter.generate(system_instruction, prompt, RESPONSE_SCHEMA),
                self._timeout_seconds,
            )
        except Exception as exc:
            error = classify_ai_error(exc)
            logger.warning(
                "AI call failed code=%s cause=%s: %s",
                error.code.value,
                type(exc).__name__,
                exc,
            )
            return InsightFailure(error)

        try:
            result = validate_llm_output(response.text)
        except LLMOutputValidationError as exc:
            logger.warning(
                "AI output rejected at stage '%s': %s",
                exc.stage,
                "; ".join(exc.errors),
            )
            message = (
                "The AI service returned an empty response"
                if exc.stage == "empty"
                else "The AI service response could not be interpreted"
            )
            error = UpstreamAIError(message)
            error.__cause__ = exc
            return InsightFailure(error)

        return InsightSuccess(result=result, model=response.model or self.model_name)
