"""
tests/test_insight_contract.py

Structured output contract: the JSON schema sent to the model and the strict
validation applied to what comes back.
"""

from __future__ import annotations

import json

import pytest

from llm_synthesis.schema import INSIGHT_FIELDS, RESPONSE_SCHEMA, InsightResult
from llm_synthesis.validator import LLMOutputValidationError, validate_llm_output
from tests.conftest import VALID_INSIGHTS


class TestResponseSchema:
    def test_all_six_fields_required(self) -> None:
        assert set(RESPONSE_SCHEMA["required"]) == {
            "resumen",
            "hallazgos",
            "riesgos",
            "recomendaciones",
            "anomalias",
            "preguntasSugeridas",
        }
        assert RESPONSE_SCHEMA["additionalProperties"] is False

    def test_schema_matches_model_fields(self) -> None:
        assert tuple(RESPONSE_SCHEMA["properties"]) == INSIGHT_FIELDS

    def test_anomaly_items_are_closed_objects(self) -> None:
        items = RESPONSE_SCHEMA["properties"]["anomalias"]["items"]
        assert items["required"] == ["represa", "fecha", "motivo"]
        assert items["additionalProperties"] is False


class TestValidateLLMOutput:
    def test_valid_payload(self) -> None:
        result = validate_llm_output(json.dumps(VALID_INSIGHTS))
        assert isinstance(result, InsightResult)
        assert result.anomalias[0].represa == "Alfa"

    def test_missing_lists_normalised_to_empty(self) -> None:
        result = validate_llm_output(json.dumps({"resumen": "ok", "riesgos": None}))
        assert result.hallazgos == []
        assert result.riesgos == []
        assert result.preguntasSugeridas == []

    def test_unknown_top_level_keys_are_dropped(self) -> None:
        payload = dict(VALID_INSIGHTS, extra="ignored")
        assert "extra" not in validate_llm_output(json.dumps(payload)).model_dump()

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_output(self, raw) -> None:
        with pytest.raises(LLMOutputValidationError) as exc_info:
            validate_llm_output(raw)
        assert exc_info.value.stage == "empty"

    @pytest.mark.parametrize(
        "raw",
        [
            '{"resumen": "cut off',
            '```json\n{"resumen": "fenced"}\n```',
            "Here are your insights: {}",
        ],
    )
    def test_malformed_json_is_never_salvaged(self, raw: str) -> None:
        with pytest.raises(LLMOutputValidationError) as exc_info:
            validate_llm_output(raw)
        assert exc_info.value.stage == "json_parse"

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"hallazgos": []},
            {"resumen": ""},
            {"resumen": "ok", "hallazgos": "not a list"},
            {"resumen": "ok", "anomalias": [{"represa": "A"}]},
        ],
    )
    def test_schema_violations(self, payload) -> None:
        with pytest.raises(LLMOutputValidationError) as exc_info:
            validate_llm_output(json.dumps(payload))
        assert exc_info.value.stage == "schema"
