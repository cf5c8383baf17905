"""Tests for RequestLoggingMiddleware."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cadence.infrastructure.observability import RequestLoggingMiddleware, get_correlation_id


@pytest.fixture
def client() -> TestClient:
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"correlation_id": get_correlation_id()}

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("kaputt")

    return TestClient(app, raise_server_exceptions=False)


class TestRequestLoggingMiddleware:
    """Test correlation ID propagation and request logging."""

    def test_echoes_incoming_correlation_id(self, client: TestClient) -> None:
        response = client.get("/ping", headers={"X-Correlation-ID": "abc"})

        assert response.headers["X-Correlation-ID"] == "abc"
        assert response.json() == {"correlation_id": "abc"}

    def test_generates_correlation_id(self, client: TestClient) -> None:
        response = client.get("/ping")

        generated = response.headers["X-Correlation-ID"]
        assert len(generated) == 36
        assert response.json()["correlation_id"] == generated

    def test_logs_request_and_status(
        self, client: TestClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level("INFO", logger="cadence.infrastructure.observability.middleware"):
            client.get("/ping")

        messages = [record.getMessage() for record in caplog.records]
        assert "→ GET /ping" in messages
        assert any(m.startswith("✓ GET /ping → 200") for m in messages)

    def test_logs_failures(self, client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("INFO", logger="cadence.infrastructure.observability.middleware"):
            response = client.get("/boom")

        assert response.status_code == 500
        assert any("Request failed: GET /boom" in r.getMessage() for r in caplog.records)
