from __future__ import annotations

import html
import logging

import httpx
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from starlette.responses import Response

from headsdown.core.deps import get_stores
from headsdown.core.errors import (
    AuthorizationError,
    ConfigurationError,
    HeadsDownError,
    MalformedResponseError,
    UpstreamError,
)
from headsdown.core.http import get_http_client
from headsdown.schemas.slack import OAuthCallbackResponse
from headsdown.services.install import complete_install, start_install
from headsdown.storage.base import StoreError
from headsdown.storage.factory import Stores

logger = logging.getLogger("headsdown.slack")

router = APIRouter(prefix="/api/slack", tags=["oauth"])

_NO_STORE = {"Cache-Control": "no-store"}


@router.get("/install")
def slack_install() -> Response:
    try:
        url = start_install()
    except ConfigurationError as e:
        return PlainTextResponse(
            str(e), status_code=status.HTTP_503_SERVICE_UNAVAILABLE, headers=_NO_STORE
        )
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND, headers=_NO_STORE)


@router.get("/oauth_redirect")
async def slack_oauth_redirect(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    stores: Stores = Depends(get_stores),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    if error:
        return PlainTextResponse(
            f"OAuth error: {error}", status_code=status.HTTP_400_BAD_REQUEST, headers=_NO_STORE
        )

    try:
        record = await complete_install(
            http_client=http_client,
            credentials=stores.credentials,
            state=state,
            code=code,
        )
    except StoreError:
        logger.exception("Could not persist delegated token")
        return PlainTextResponse(
            "OAuth failed. Check logs.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            headers=_NO_STORE,
        )
    except HeadsDownError as e:
        status_code = _status_for(e)
        logger.warning("OAuth callback failed (%s): %s", status_code, e)
        return PlainTextResponse(str(e), status_code=status_code, headers=_NO_STORE)

    accept = request.headers.get("accept") or ""
    if "application/json" in accept and "text/html" not in accept:
        body = OAuthCallbackResponse(status="connected", member_id=record.member_id)
        return JSONResponse(body.model_dump(), headers=_NO_STORE)

    member = html.escape(record.member_id)
    return HTMLResponse(
        f"<h3>Success!</h3><p>Saved user token for {member}. You can close this window.</p>",
        headers=_NO_STORE,
    )


def _status_for(e: HeadsDownError) -> int:
    if isinstance(e, AuthorizationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(e, ConfigurationError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(e, MalformedResponseError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(e, UpstreamError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR
