from __future__ import annotations

import httpx
from fastapi import Request

from headsdown.core.config import get_settings


def build_http_client() -> httpx.AsyncClient:
    settings = get_settings()
    return httpx.AsyncClient(timeout=settings.SLACK_HTTP_TIMEOUT_SECONDS)


def get_http_client(request: Request) -> httpx.AsyncClient:
    # One pooled client per app; background tasks outlive the request, so it can't be
    # scoped to a dependency with teardown. Overridden in tests.
    client = getattr(request.app.state, "http_client", None)
    if client is None:
        client = build_http_client()
        request.app.state.http_client = client
    return client
