from __future__ import annotations

from fastapi import HTTPException, Request, status
from slack_sdk.signature import SignatureVerifier

from headsdown.core.config import get_settings
from headsdown.core.team import TeamRoster
from headsdown.storage.factory import Stores


def get_stores(request: Request) -> Stores:
    return request.app.state.stores


def get_roster(request: Request) -> TeamRoster:
    return request.app.state.roster


async def verify_slack_request(request: Request) -> bytes:
    """Check Slack's request signature and hand back the raw body it covers."""
    settings = get_settings()
    body = await request.body()
    verifier = SignatureVerifier(settings.SLACK_SIGNING_SECRET)
    if not verifier.is_valid_request(body, dict(request.headers)):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Slack signature",
        )
    return body
