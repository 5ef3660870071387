"""
Shared fakes and fixtures for the insights test-suite.

Nothing here touches a database or the network: the telemetry source, the
generative-text adapter and the clock are all in-memory stand-ins.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from datetime import date
from typing import Any

import pytest

from app.config import (
    InsightsSettings,
    MetadataSettings,
    RateLimitSettings,
    SecuritySettings,
)
from app.domain.telemetry import EntityRef, TelemetryRow
from app.repositories.telemetry_repository import VARIABLE_CODES
from llm_synthesis.adapter import BaseLLMAdapter, LLMResponse

API_KEY = "test-secret"

VALID_INSIGHTS: dict[str, Any] = {
    "resumen": "Los niveles se mantienen estables.",
    "hallazgos": ["La cota de Alfa subió 4 m."],
    "riesgos": [],
    "recomendaciones": ["Monitorear la descarga."],
    "anomalias": [{"represa": "Alfa", "fecha": "2024-01-02", "motivo": "Pico de descarga"}],
    "preguntasSugeridas": ["¿Qué represa tiene mayor variación?"],
}


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTelemetrySource:
    """
    In-memory telemetry collaborator recording every call it receives.
    """

    def __init__(
        self,
        rows: Sequence[TelemetryRow] = (),
        entities: Sequence[EntityRef] = (),
        *,
        fail_with: Exception | None = None,
        listings: dict[str, list[EntityRef]] | None = None,
        ping_error: Exception | None = None,
    ) -> None:
        self.rows = list(rows)
        self.entities = list(entities)
        self.fail_with = fail_with
        self.listings = listings or {}
        self.ping_error = ping_error
        self.calls: list[tuple[str, Any]] = []

    async def fetch_entity_names(self, entity_ids: Sequence[int]) -> list[EntityRef]:
        self.calls.append(("names", tuple(entity_ids)))
        if self.fail_with is not None:
            raise self.fail_with
        return [e for e in self.entities if e.id in entity_ids]

    async def fetch_rows(
        self,
        *,
        start: date,
        end: date,
        entity_ids: Sequence[int],
        granularity: str,
        variable_codes: Sequence[str] = VARIABLE_CODES,
    ) -> list[TelemetryRow]:
        self.calls.append(("rows", (start, end, tuple(entity_ids), granularity)))
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.rows)

    async def list_entities(self, kind: str) -> list[EntityRef]:
        self.calls.append(("list", kind))
        return list(self.listings.get(kind, []))

    async def ping(self) -> None:
        self.calls.append(("ping", None))
        if self.ping_error is not None:
            raise self.ping_error


class FakeAdapter(BaseLLMAdapter):
    """
    Scriptable generative-text adapter.
    """

    model_name = "fake-model"

    def __init__(
        self,
        text: str | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        credentials: bool = True,
    ) -> None:
        self.text = json.dumps(VALID_INSIGHTS) if text is None else text
        self.error = error
        self.delay = delay
        self.credentials = credentials
        self.calls: list[tuple[str, str]] = []

    @property
    def has_credentials(self) -> bool:
        return self.credentials

    async def generate(
        self,
        system_instruction: str,
        prompt: str,
        response_schema: dict[str, Any],
    ) -> LLMResponse:
        self.calls.append((system_instruction, prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.text, model=self.model_name)


def sample_rows() -> list[TelemetryRow]:
    return [
        TelemetryRow("2024-01-01", 1, "Alfa", "COTA", 10.0),
        TelemetryRow("2024-01-02", 1, "Alfa", "COTA", 12.0),
        TelemetryRow("2024-01-03", 1, "Alfa", "COTA", None),
        TelemetryRow("2024-01-04", 1, "Alfa", "COTA", 14.0),
        TelemetryRow("2024-01-01", 2, "Beta", "DESCARGA", 5.0),
        TelemetryRow("2024-01-02", 2, "Beta", "DESCARGA", 5.0),
    ]


def sample_entities() -> list[EntityRef]:
    return [EntityRef(1, "Alfa"), EntityRef(2, "Beta")]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def source() -> FakeTelemetrySource:
    return FakeTelemetrySource(rows=sample_rows(), entities=sample_entities())


@pytest.fixture()
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture()
def make_app(clock: FakeClock):
    """
    Factory building an isolated app around the given fakes.
    """

    from app.main import create_app

    def _make(
        source: FakeTelemetrySource,
        adapter: BaseLLMAdapter,
        *,
        api_key: str | None = API_KEY,
        expose_details: bool = True,
        insights_limit: int = 10,
        api_limit: int = 200,
        timeout_seconds: float = 20.0,
        max_daily_rows: int = 1500,
        max_payload_bytes: int = 14000,
        max_range_days: int = 366,
    ):
        return create_app(
            source=source,
            adapter=adapter,
            insights_settings=InsightsSettings(
                max_range_days=max_range_days,
                model_timeout_seconds=timeout_seconds,
                max_daily_rows=max_daily_rows,
                max_payload_bytes=max_payload_bytes,
            ),
            insights_rate_limit=RateLimitSettings(
                max_requests=insights_limit, window_seconds=60.0, max_buckets=500
            ),
            api_rate_limit=RateLimitSettings(
                max_requests=api_limit, window_seconds=900.0, max_buckets=1000
            ),
            security=SecuritySettings(api_key=api_key, expose_error_details=expose_details),
            metadata=MetadataSettings(cache_ttl_seconds=300.0),
            clock=clock,
        )

    return _make
