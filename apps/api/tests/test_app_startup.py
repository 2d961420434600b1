from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from headsdown.core.config import get_settings
from headsdown.core.errors import ConfigurationError
from headsdown.main import create_app
from headsdown.storage.local import LocalKeyValueStore


@pytest.mark.parametrize("missing", ["SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET"])
def test_startup_refuses_without_boot_secrets(monkeypatch, missing: str) -> None:
    monkeypatch.setenv(missing, "")
    get_settings.cache_clear()
    with pytest.raises(ConfigurationError, match=missing):
        create_app()


def test_install_secrets_are_optional_at_startup(monkeypatch) -> None:
    monkeypatch.setenv("SLACK_CLIENT_ID", "")
    monkeypatch.setenv("SLACK_CLIENT_SECRET", "")
    get_settings.cache_clear()
    client = TestClient(create_app())
    assert client.get("/healthz").status_code == 200


def test_unknown_store_backend_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("STORE_BACKEND", "redis")
    get_settings.cache_clear()
    with pytest.raises(ValueError):
        get_settings()


def test_local_backend_is_selected_from_config(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("STORE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORE_DIR", str(tmp_path / "state"))
    get_settings.cache_clear()

    app = create_app()

    assert isinstance(app.state.stores.backend, LocalKeyValueStore)
    assert TestClient(app).get("/readyz").status_code == 200


def test_base_url_prefers_public_then_vercel(monkeypatch) -> None:
    assert get_settings().base_url == "https://bot.example.com"

    monkeypatch.setenv("PUBLIC_BASE_URL", "")
    monkeypatch.setenv("VERCEL_URL", "hd.vercel.app")
    get_settings.cache_clear()
    assert get_settings().base_url == "https://hd.vercel.app"

    monkeypatch.setenv("VERCEL_URL", "")
    monkeypatch.setenv("PORT", "8080")
    get_settings.cache_clear()
    assert get_settings().base_url == "http://localhost:8080"


def test_rate_limit_returns_429_when_enabled(monkeypatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "2")
    get_settings.cache_clear()
    client = TestClient(create_app())

    assert client.get("/healthz").status_code == 200
    assert client.get("/healthz").status_code == 200
    res = client.get("/healthz")
    assert res.status_code == 429
    assert res.json() == {"detail": "Rate limit exceeded"}
    assert res.headers["x-request-id"]


def test_slack_callbacks_are_never_rate_limited(monkeypatch, sign) -> None:
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "1")
    get_settings.cache_clear()
    client = TestClient(create_app())
    body = b'{"type":"url_verification","challenge":"c"}'

    for _ in range(3):
        res = client.post(
            "/api/slack/events",
            content=body,
            headers={**sign(body), "content-type": "application/json"},
        )
        assert res.status_code == 200
