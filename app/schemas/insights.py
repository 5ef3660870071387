"""
app/schemas/insights.py

Request and response schemas for the insights and metadata endpoints.

The request model is loose: field presence, date format and identifier
shape are checked by the insights pipeline.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.services.insights_pipeline import InsightsRequest
from llm_synthesis.schema import InsightResult


class InsightsRequestBody(BaseModel):
    """
    Body of ``POST /insights``.
    """

    model_config = ConfigDict(populate_by_name=True)

    fecha_ini: str | None = None
    fecha_fin: str | None = None
    represas: list[str | int] | None = None
    idioma: str | None = "es"
    nivel_detalle: str | None = Field(default="normal", alias="nivelDetalle")
    granularity: str | None = None

    def to_pipeline_request(self) -> InsightsRequest:
        return InsightsRequest(
            fecha_ini=self.fecha_ini,
            fecha_fin=self.fecha_fin,
            represas=self.represas,
            idioma=self.idioma,
            nivel_detalle=self.nivel_detalle,
            granularity=self.granularity,
        )


class InsightsMeta(BaseModel):
    fecha_ini: str
    fecha_fin: str
    represas: list[str]
    modelo: str
    cache: bool = False


class InsightsSuccessResponse(BaseModel):
    """
    Successful insights payload.
    """

    ok: bool = True
    meta: InsightsMeta
    insights: InsightResult


class EntityItem(BaseModel):
    id: int
    nombre: str


class EntityListResponse(BaseModel):
    ok: bool = True
    data: list[EntityItem]


class HealthStatus(BaseModel):
    status: str
    db: str


class HealthResponse(BaseModel):
    ok: bool = True
    data: HealthStatus


class ErrorResponse(BaseModel):
    """
    Shape of every non-2xx response body.
    """

    ok: bool = False
    code: str
    message: str
    requestId: str
    details: dict[str, Any] | None = None
