from __future__ import annotations

import json
import os
import time
from collections.abc import Callable, Iterator
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from slack_sdk.signature import SignatureVerifier

# Must be in place before anything builds Settings.
_TEST_ENV = {
    "APP_ENV": "test",
    "SLACK_BOT_TOKEN": "xoxb-test-bot",
    "SLACK_SIGNING_SECRET": "test-signing-secret",
    "SLACK_CLIENT_ID": "test-client-id",
    "SLACK_CLIENT_SECRET": "test-client-secret",
    "SLACK_STATE_SECRET": "test-state-secret",
    "PUBLIC_BASE_URL": "https://bot.example.com/",
    "TEAM_USER_IDS": "U1, U2",
    "TEAM_NAME": "TPRM",
    "ROUTE_CHANNEL_ID": "C0SUPPORT",
    "ROUTE_CHANNEL_NAME": "#tprm-help",
    "STORE_BACKEND": "memory",
    "ENCRYPTION_KEY_BASE64": "",
    "ENABLE_OTEL_TRACING": "false",
}
for _key, _value in _TEST_ENV.items():
    os.environ[_key] = _value


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    from headsdown.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeSlack:
    """In-process stand-in for the Slack Web API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        # (token, channel) -> DM partner as seen by that token's owner
        self.partners: dict[tuple[str, str], str] = {}
        self.failing_tokens: set[str] = set()
        self.failing_methods: set[str] = set()
        # Channels that conversations.info reports as multi-party rather than a 1:1 DM.
        self.group_channels: set[str] = set()
        self.calls: list[tuple[str, str | None, dict[str, Any]]] = []
        self.posted: list[dict[str, Any]] = []
        self.profile_updates: list[tuple[str, dict[str, Any]]] = []
        self.responses: list[dict[str, Any]] = []
        self.oauth_result: dict[str, Any] = {
            "ok": True,
            "app_id": "A1",
            "authed_user": {
                "id": "U1",
                "scope": "im:history,chat:write,users.profile:write",
                "access_token": "xoxp-u1",
                "token_type": "user",
            },
            "team": {"id": "T1", "name": "Acme"},
            "enterprise": None,
        }
        self.used_codes: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith("https://hooks.slack.com/"):
            self.responses.append(_json_body(request))
            return httpx.Response(200, text="ok")

        if not url.startswith("https://slack.com/api/"):
            return httpx.Response(404, json={"error": "not_found"})

        method = request.url.path.rsplit("/", 1)[-1]
        auth = request.headers.get("Authorization") or ""
        token = auth.removeprefix("Bearer ") or None
        if method == "conversations.info":
            body = dict(request.url.params)
        elif method == "oauth.v2.access":
            body = {k: v[0] for k, v in parse_qs(request.content.decode("utf-8")).items()}
        else:
            body = _json_body(request)
        self.calls.append((method, token, body))

        if method in self.failing_methods or (token and token in self.failing_tokens):
            return httpx.Response(200, json={"ok": False, "error": "invalid_auth"})

        if method == "conversations.info":
            partner = self.partners.get((token or "", body.get("channel", "")))
            if partner is None:
                return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})
            is_im = body["channel"] not in self.group_channels
            channel = {"id": body["channel"], "is_im": is_im, "user": partner}
            return httpx.Response(200, json={"ok": True, "channel": channel})
        if method == "chat.postMessage":
            self.posted.append({"token": token, **body})
            return httpx.Response(200, json={"ok": True, "channel": body["channel"], "ts": "2.0"})
        if method == "users.profile.set":
            self.profile_updates.append((token or "", body["profile"]))
            return httpx.Response(200, json={"ok": True, "profile": body["profile"]})
        if method == "oauth.v2.access":
            code = body.get("code", "")
            if code in self.used_codes or code == "bad-code":
                return httpx.Response(200, json={"ok": False, "error": "invalid_code"})
            self.used_codes.add(code)
            return httpx.Response(200, json=self.oauth_result)

        return httpx.Response(200, json={"ok": False, "error": "unknown_method"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), timeout=10.0)

    def calls_for(self, method: str) -> list[tuple[str, str | None, dict[str, Any]]]:
        return [c for c in self.calls if c[0] == method]


def _json_body(request: httpx.Request) -> dict[str, Any]:
    if not request.content:
        return {}
    return json.loads(request.content.decode("utf-8"))


@pytest.fixture()
def slack() -> FakeSlack:
    return FakeSlack()


@pytest.fixture()
def app(slack: FakeSlack) -> Iterator[FastAPI]:
    from headsdown.core.http import get_http_client
    from headsdown.main import create_app

    app = create_app()
    http_client = slack.client()
    app.dependency_overrides[get_http_client] = lambda: http_client
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def sign() -> Callable[[bytes], dict[str, str]]:
    def _sign(body: bytes, *, secret: str = "test-signing-secret") -> dict[str, str]:
        timestamp = str(int(time.time()))
        signature = SignatureVerifier(secret).generate_signature(timestamp=timestamp, body=body)
        return {
            "X-Slack-Request-Timestamp": timestamp,
            "X-Slack-Signature": signature or "",
        }

    return _sign
