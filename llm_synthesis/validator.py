"""Validation layer for raw LLM insight output.

Parses and validates JSON strings against the InsightResult schema. Output
that does not parse, or parses into the wrong shape, is rejected outright;
nothing is salvaged from a malformed response.
"""

import json
from typing import Any, Dict, List

from pydantic import ValidationError

from llm_synthesis.schema import INSIGHT_FIELDS, LIST_FIELDS, InsightResult


class LLMOutputValidationError(Exception):
    """Raised when LLM output fails parsing or schema validation.

    Attributes:
        stage: Which validation step failed ("empty", "json_parse" or "schema").
        errors: List of human-readable error descriptions.
        raw_response: The original string that failed validation.
    """

    def __init__(
        self,
        stage: str,
        errors: List[str],
        raw_response: str,
    ) -> None:
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        message = (
            f"LLM output validation failed at stage '{stage}': "
            + "; ".join(errors)
        )
        super().__init__(message)


def _project_to_insight_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only InsightResult keys; absent or null lists become []."""
    projected = {key: data.get(key) for key in INSIGHT_FIELDS}
    for key in LIST_FIELDS:
        if projected[key] is None:
            projected[key] = []
    return projected


def validate_llm_output(raw_response: str) -> InsightResult:
    """Parse and validate a raw LLM response string.

    Steps:
        1. Reject empty output.
        2. Parse as JSON.
        3. Require a top-level object.
        4. Project into InsightResult keys and validate.

    Args:
        raw_response: The raw string returned by the LLM adapter.

    Returns:
        A validated InsightResult instance.

    Raises:
        LLMOutputValidationError: If any step fails.
    """
    if not raw_response or not raw_response.strip():
        raise LLMOutputValidationError(
            stage="empty",
            errors=["model returned no text"],
            raw_response=raw_response or "",
        )

    try:
        data = json.loads(raw_response)
    except (json.JSONDecodeError, TypeError) as exc:
        raise LLMOutputValidationError(
            stage="json_parse",
            errors=[str(exc)],
            raw_response=raw_response,
        ) from exc

    if not isinstance(data, dict):
        raise LLMOutputValidationError(
            stage="schema",
            errors=["top-level JSON must be an object"],
            raw_response=raw_response,
        )

    try:
        return InsightResult.model_validate(_project_to_insight_fields(data))
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}"
            for e in exc.errors()
        ]
        raise LLMOutputValidationError(
            stage="schema",
            errors=errors,
            raw_response=raw_response,
        ) from exc
