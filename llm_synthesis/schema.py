"""Canonical structured output schema for generated insights."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Anomaly(BaseModel):
    """One anomaly called out by the model: which reservoir, when and why."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )

    represa: str
    fecha: str
    motivo: str


class InsightResult(BaseModel):
    """Only allowed output contract for the narrative layer.

    ``resumen`` is mandatory. The list fields default to empty lists so a
    model that omits one (or returns ``null``) still yields a usable result.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )

    resumen: str = Field(min_length=1)
    hallazgos: list[str] = Field(default_factory=list)
    riesgos: list[str] = Field(default_factory=list)
    recomendaciones: list[str] = Field(default_factory=list)
    anomalias: list[Anomaly] = Field(default_factory=list)
    preguntasSugeridas: list[str] = Field(default_factory=list)


INSIGHT_FIELDS: tuple[str, ...] = tuple(InsightResult.model_fields.keys())
LIST_FIELDS: tuple[str, ...] = tuple(f for f in INSIGHT_FIELDS if f != "resumen")

_STRING_LIST: dict[str, Any] = {"type": "array", "items": {"type": "string"}}

# JSON schema sent to the generative-text service. All six fields are
# required there even though the local model tolerates missing lists.
RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "resumen": {"type": "string"},
        "hallazgos": _STRING_LIST,
        "riesgos": _STRING_LIST,
        "recomendaciones": _STRING_LIST,
        "anomalias": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "represa": {"type": "string"},
                    "fecha": {"type": "string"},
                    "motivo": {"type": "string"},
                },
                "required": ["represa", "fecha", "motivo"],
                "additionalProperties": False,
            },
        },
        "preguntasSugeridas": _STRING_LIST,
    },
    "required": list(INSIGHT_FIELDS),
    "additionalProperties": False,
}
