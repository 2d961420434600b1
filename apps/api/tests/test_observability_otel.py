from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from headsdown.core.config import get_settings
from headsdown.core.otel import parse_otlp_headers
from headsdown.main import create_app


@pytest.mark.parametrize(
    ("env", "reason"),
    [
        ({"ENABLE_OTEL_TRACING": "false"}, "disabled"),
        (
            {"ENABLE_OTEL_TRACING": "true", "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT": ""},
            "missing_endpoint",
        ),
    ],
)
def test_tracing_stays_off_unless_fully_configured(monkeypatch, env, reason) -> None:
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()

    app = create_app()

    assert app.state.otel_tracing_enabled is False
    assert app.state.otel_tracing_reason == reason
    assert app.state.otel_shutdown is None


def test_tracing_instruments_requests_and_slack_calls(monkeypatch) -> None:
    monkeypatch.setenv("ENABLE_OTEL_TRACING", "true")
    monkeypatch.setenv("OTEL_TRACE_SAMPLE_RATIO", "0")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "http://127.0.0.1:4318/v1/traces")
    monkeypatch.setenv("OTEL_SERVICE_NAME", "headsdown-api-test")
    get_settings.cache_clear()

    app = create_app()
    try:
        assert app.state.otel_tracing_enabled is True
        assert app.state.otel_tracing_reason == "enabled"
        assert HTTPXClientInstrumentor().is_instrumented_by_opentelemetry
        assert TestClient(app).get("/api/health").status_code == 200
    finally:
        app.state.otel_shutdown()

    assert not HTTPXClientInstrumentor().is_instrumented_by_opentelemetry


def test_otlp_headers_skip_malformed_entries() -> None:
    assert parse_otlp_headers("a=1, b = 2 ,broken,=x,c=") == {"a": "1", "b": "2"}
    assert parse_otlp_headers("authorization=Bearer abc=") == {"authorization": "Bearer abc="}
    assert parse_otlp_headers("") == {}
