from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from headsdown.core.config import get_settings
from headsdown.core.errors import ConfigurationError
from headsdown.core.middleware import install_request_context
from headsdown.core.otel import setup_tracing
from headsdown.core.team import TeamRoster
from headsdown.routers.health import router as health_router
from headsdown.routers.oauth import router as oauth_router
from headsdown.routers.slack import router as slack_router
from headsdown.storage.factory import build_stores

logger = logging.getLogger("headsdown.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Background tasks have drained by the time uvicorn runs shutdown.
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()
    if app.state.otel_shutdown is not None:
        app.state.otel_shutdown()


def create_app() -> FastAPI:
    settings = get_settings()
    missing = settings.missing_boot_secrets()
    if missing:
        logger.error("Refusing to start, missing env: %s", ", ".join(missing))
        raise ConfigurationError(f"Missing required env: {', '.join(missing)}")

    app = FastAPI(title="Heads-down DM Redirect", version=settings.VERSION, lifespan=lifespan)

    roster = TeamRoster.from_config(settings.TEAM_USER_IDS)
    if not roster.member_ids:
        logger.warning("TEAM_USER_IDS is empty; no one can enable heads-down mode.")
    app.state.roster = roster
    app.state.stores = build_stores(settings)
    logger.info(
        "Starting with team=%s members=%d store=%s",
        settings.TEAM_NAME,
        len(roster),
        settings.STORE_BACKEND,
    )

    tracing = setup_tracing(app=app, settings=settings)
    app.state.otel_tracing_enabled = tracing.enabled
    app.state.otel_tracing_reason = tracing.reason
    app.state.otel_shutdown = tracing.shutdown

    install_request_context(app, settings=settings)

    if settings.ENABLE_PROMETHEUS_METRICS:

        @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
        def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(health_router)
    app.include_router(slack_router)
    app.include_router(oauth_router)
    return app
