"""
tests/test_api.py

HTTP contract of the insights API, exercised through FastAPI's TestClient
with in-memory collaborators.

Coverage
--------
- 200 success payload and meta block
- Correlation ID on every response, matching the error body
- 401 / 400 / 429 / 500 / 502 / 503 error mapping
- Retry-After header and production details suppression
- Routing errors (404 / 405) and unhandled exceptions
- Whole-API limiter, health check and cached metadata listings
- Error-handler logging policy
"""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from app.domain.telemetry import EntityRef
from tests.conftest import API_KEY, FakeAdapter, FakeTelemetrySource

AUTH = {"X-API-Key": API_KEY}

BODY = {
    "fecha_ini": "2024-01-01",
    "fecha_fin": "2024-01-05",
    "represas": ["1", "2"],
    "idioma": "es",
    "nivelDetalle": "normal",
}


@pytest.fixture()
def client(make_app, source, adapter) -> TestClient:
    return TestClient(make_app(source, adapter))


def _assert_error(response, status: int, code: str) -> dict:
    assert response.status_code == status
    body = response.json()
    assert body["ok"] is False
    assert body["code"] == code
    assert body["message"]
    assert body["requestId"] == response.headers["X-Request-ID"]
    return body


# ---------------------------------------------------------------------------
# POST /insights
# ---------------------------------------------------------------------------


class TestInsightsSuccess:
    def test_success_payload(self, client: TestClient) -> None:
        response = client.post("/insights", json=BODY, headers=AUTH)
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["meta"] == {
            "fecha_ini": "2024-01-01",
            "fecha_fin": "2024-01-05",
            "represas": ["Alfa", "Beta"],
            "modelo": "fake-model",
            "cache": False,
        }
        assert set(body["insights"]) == {
            "resumen",
            "hallazgos",
            "riesgos",
            "recomendaciones",
            "anomalias",
            "preguntasSugeridas",
        }
        assert response.headers["X-Request-ID"]

    def test_inbound_request_id_is_echoed(self, client: TestClient) -> None:
        response = client.post(
            "/insights", json=BODY, headers={**AUTH, "X-Request-ID": "trace-abc"}
        )
        assert response.headers["X-Request-ID"] == "trace-abc"

    def test_long_inbound_request_id_is_kept(self, client: TestClient) -> None:
        inbound = "t" * 200
        response = client.post(
            "/insights", json=BODY, headers={**AUTH, "X-Request-ID": f"  {inbound} "}
        )
        assert response.headers["X-Request-ID"] == inbound

    def test_blank_inbound_request_id_is_replaced(self, client: TestClient) -> None:
        response = client.post("/insights", json=BODY, headers={**AUTH, "X-Request-ID": "   "})
        assert response.headers["X-Request-ID"].strip()
        assert len(response.headers["X-Request-ID"]) == 36

    def test_numeric_ids_accepted(self, client: TestClient) -> None:
        response = client.post("/insights", json={**BODY, "represas": [1, 2, 1]}, headers=AUTH)
        assert response.status_code == 200


class TestInsightsErrors:
    @pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong"}])
    def test_unauthorized(self, client: TestClient, headers: dict) -> None:
        _assert_error(client.post("/insights", json=BODY, headers=headers), 401, "UNAUTHORIZED")

    def test_server_without_api_key_rejects_everyone(self, make_app, source, adapter) -> None:
        client = TestClient(make_app(source, adapter, api_key=None))
        _assert_error(client.post("/insights", json=BODY, headers=AUTH), 401, "UNAUTHORIZED")

    def test_missing_dates(self, client: TestClient, source: FakeTelemetrySource) -> None:
        body = _assert_error(
            client.post("/insights", json={"represas": ["1"]}, headers=AUTH),
            400,
            "VALIDATION_ERROR",
        )
        assert body["details"]["field"] == "fecha_ini"
        assert source.calls == []

    def test_empty_represas(self, client: TestClient, source: FakeTelemetrySource) -> None:
        body = _assert_error(
            client.post("/insights", json={**BODY, "represas": []}, headers=AUTH),
            400,
            "VALIDATION_ERROR",
        )
        assert body["details"]["field"] == "represas"
        assert source.calls == []

    def test_tecnico_detail_level_reaches_prompt(self, make_app, source) -> None:
        adapter = FakeAdapter()
        client = TestClient(make_app(source, adapter))
        response = client.post(
            "/insights", json={**BODY, "nivelDetalle": "tecnico"}, headers=AUTH
        )
        assert response.status_code == 200
        assert "Detail level: technical." in adapter.calls[0][0]

    def test_malformed_json_body(self, client: TestClient) -> None:
        response = client.post(
            "/insights",
            content="{not json",
            headers={**AUTH, "Content-Type": "application/json"},
        )
        _assert_error(response, 400, "VALIDATION_ERROR")

    def test_non_numeric_represa(self, client: TestClient) -> None:
        response = client.post("/insights", json={**BODY, "represas": ["abc"]}, headers=AUTH)
        _assert_error(response, 400, "VALIDATION_ERROR")

    def test_range_too_large(self, client: TestClient) -> None:
        response = client.post("/insights", json={**BODY, "fecha_fin": "2025-06-01"}, headers=AUTH)
        body = _assert_error(response, 400, "RANGE_TOO_LARGE")
        assert body["details"]["maxRangeDays"] == 366

    def test_insights_rate_limit(self, make_app, source, adapter) -> None:
        client = TestClient(make_app(source, adapter, insights_limit=1))
        assert client.post("/insights", json=BODY, headers=AUTH).status_code == 200
        response = client.post("/insights", json=BODY, headers=AUTH)
        body = _assert_error(response, 429, "RATE_LIMITED")
        assert response.headers["Retry-After"] == "60"
        assert body["details"]["retryAfterSeconds"] == 60

    def test_data_source_failure(self, make_app, adapter) -> None:
        source = FakeTelemetrySource(fail_with=ConnectionError("password=hunter2"))
        client = TestClient(make_app(source, adapter))
        body = _assert_error(client.post("/insights", json=BODY, headers=AUTH), 500, "DB_ERROR")
        assert "hunter2" not in str(body)

    def test_ai_timeout(self, make_app, source) -> None:
        client = TestClient(make_app(source, FakeAdapter(delay=0.5), timeout_seconds=0.05))
        _assert_error(client.post("/insights", json=BODY, headers=AUTH), 502, "UPSTREAM_AI_ERROR")

    def test_ai_malformed_output(self, make_app, source) -> None:
        client = TestClient(make_app(source, FakeAdapter(text='{"resumen": ')))
        _assert_error(client.post("/insights", json=BODY, headers=AUTH), 502, "UPSTREAM_AI_ERROR")

    def test_missing_ai_credential(self, make_app, source) -> None:
        client = TestClient(make_app(source, FakeAdapter(credentials=False)))
        _assert_error(client.post("/insights", json=BODY, headers=AUTH), 503, "INVALID_API_KEY")

    def test_details_suppressed_in_production(self, make_app, source, adapter) -> None:
        client = TestClient(make_app(source, adapter, expose_details=False, insights_limit=1))
        client.post("/insights", json=BODY, headers=AUTH)
        response = client.post("/insights", json=BODY, headers=AUTH)
        body = _assert_error(response, 429, "RATE_LIMITED")
        assert "details" not in body
        assert response.headers["Retry-After"] == "60"


# ---------------------------------------------------------------------------
# Routing, unhandled errors and the whole-API limiter
# ---------------------------------------------------------------------------


class TestRouting:
    def test_unknown_route(self, client: TestClient) -> None:
        _assert_error(client.get("/nope"), 404, "NOT_FOUND")

    def test_wrong_method(self, client: TestClient) -> None:
        _assert_error(client.get("/insights", headers=AUTH), 405, "METHOD_NOT_ALLOWED")

    def test_unhandled_exception_keeps_request_id(self, make_app, source, adapter) -> None:
        app = make_app(source, adapter)

        @app.get("/boom")
        def boom() -> None:
            raise RuntimeError("kaboom")

        response = TestClient(app).get("/boom", headers={"X-Request-ID": "req-boom"})
        body = _assert_error(response, 500, "INTERNAL_ERROR")
        assert body["requestId"] == "req-boom"
        assert "kaboom" not in response.text

    def test_whole_api_limit(self, make_app, source, adapter) -> None:
        client = TestClient(make_app(source, adapter, api_limit=2))
        assert client.get("/health").status_code == 200
        assert client.get("/health").status_code == 200
        response = client.get("/health")
        body = _assert_error(response, 429, "RATE_LIMITED")
        assert body["details"]["limiter"] == "api"

    def test_forwarded_for_identifies_client(self, make_app, source, adapter) -> None:
        client = TestClient(make_app(source, adapter, api_limit=1))
        assert client.get("/health", headers={"X-Forwarded-For": "198.51.100.1"}).status_code == 200
        assert client.get("/health", headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 200
        assert client.get("/health", headers={"X-Forwarded-For": "198.51.100.1"}).status_code == 429


# ---------------------------------------------------------------------------
# /health and /meta
# ---------------------------------------------------------------------------


class TestHealth:
    def test_healthy(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "data": {"status": "OK", "db": "Connected"}}

    def test_database_down(self, make_app, adapter) -> None:
        source = FakeTelemetrySource(ping_error=OSError("refused"))
        client = TestClient(make_app(source, adapter))
        _assert_error(client.get("/health"), 503, "DB_ERROR")


class TestMetadata:
    @pytest.fixture()
    def listing_source(self) -> FakeTelemetrySource:
        return FakeTelemetrySource(
            listings={"centrales": [EntityRef(4, "Central A"), EntityRef(2, "Central B")]}
        )

    def test_requires_auth(self, make_app, listing_source, adapter) -> None:
        client = TestClient(make_app(listing_source, adapter))
        _assert_error(client.get("/meta/centrales"), 401, "UNAUTHORIZED")

    def test_listing_is_cached_until_ttl(self, make_app, listing_source, adapter, clock) -> None:
        client = TestClient(make_app(listing_source, adapter))
        first = client.get("/meta/centrales", headers=AUTH)
        assert first.json() == {
            "ok": True,
            "data": [{"id": 4, "nombre": "Central A"}, {"id": 2, "nombre": "Central B"}],
        }
        client.get("/meta/centrales", headers=AUTH)
        assert listing_source.calls.count(("list", "centrales")) == 1

        clock.advance(301)
        client.get("/meta/centrales", headers=AUTH)
        assert listing_source.calls.count(("list", "centrales")) == 2

    def test_unknown_kind(self, make_app, listing_source, adapter) -> None:
        client = TestClient(make_app(listing_source, adapter))
        _assert_error(client.get("/meta/turbinas", headers=AUTH), 404, "NOT_FOUND")


# ---------------------------------------------------------------------------
# Logging policy
# ---------------------------------------------------------------------------


def _handler_records(caplog) -> list[logging.LogRecord]:
    return [r for r in caplog.records if r.name == "app.api.error_handlers"]


class TestErrorLogging:
    def test_client_errors_are_not_logged(self, client: TestClient, caplog) -> None:
        with caplog.at_level(logging.INFO):
            client.post("/insights", json={}, headers=AUTH)
        assert _handler_records(caplog) == []

    def test_server_errors_logged_with_cause_chain(self, make_app, adapter, caplog) -> None:
        source = FakeTelemetrySource(fail_with=ConnectionError("db unreachable"))
        client = TestClient(make_app(source, adapter))
        with caplog.at_level(logging.INFO):
            response = client.post("/insights", json=BODY, headers=AUTH)
        (record,) = _handler_records(caplog)
        assert record.levelno == logging.ERROR
        assert "db unreachable" in record.getMessage()
        assert response.headers["X-Request-ID"] in record.getMessage()
        assert record.exc_info is not None

    def test_rate_limit_logged_as_warning(self, make_app, source, adapter, caplog) -> None:
        client = TestClient(make_app(source, adapter, insights_limit=1))
        with caplog.at_level(logging.INFO):
            client.post("/insights", json=BODY, headers=AUTH)
            client.post("/insights", json=BODY, headers=AUTH)
        (record,) = _handler_records(caplog)
        assert record.levelno == logging.WARNING
        assert '"code": "RATE_LIMITED"' in record.getMessage()
