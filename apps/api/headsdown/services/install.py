from __future__ import annotations

import hmac
import logging

import httpx

from headsdown.core.config import Settings, get_settings
from headsdown.core.errors import AuthorizationError, ConfigurationError
from headsdown.models.records import CredentialRecord
from headsdown.services.slack.oauth import build_authorization_url, exchange_code_for_user_token
from headsdown.storage.credentials import CredentialStore

OAUTH_INSTALL_PATH = "/api/slack/install"
OAUTH_REDIRECT_PATH = "/api/slack/oauth_redirect"

logger = logging.getLogger("headsdown.slack")


def oauth_redirect_uri(settings: Settings) -> str:
    # Must be byte-identical between the authorize request and the code exchange.
    return f"{settings.base_url}{OAUTH_REDIRECT_PATH}"


def _split_scopes(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


def start_install() -> str:
    settings = get_settings()
    if not settings.SLACK_CLIENT_ID:
        raise ConfigurationError("Missing SLACK_CLIENT_ID in env.")
    if not settings.SLACK_STATE_SECRET:
        raise ConfigurationError("Missing SLACK_STATE_SECRET in env.")

    return build_authorization_url(
        client_id=settings.SLACK_CLIENT_ID,
        redirect_uri=oauth_redirect_uri(settings),
        bot_scopes=_split_scopes(settings.SLACK_BOT_SCOPES),
        user_scopes=_split_scopes(settings.SLACK_USER_SCOPES),
        state=settings.SLACK_STATE_SECRET,
    )


def verify_oauth_state(state: str | None) -> None:
    settings = get_settings()
    if not settings.SLACK_STATE_SECRET:
        raise ConfigurationError("Missing SLACK_STATE_SECRET in env.")
    if not state or not hmac.compare_digest(
        state.encode("utf-8"), settings.SLACK_STATE_SECRET.encode("utf-8")
    ):
        raise AuthorizationError("Invalid OAuth state")


async def complete_install(
    *,
    http_client: httpx.AsyncClient,
    credentials: CredentialStore,
    state: str | None,
    code: str | None,
) -> CredentialRecord:
    """Validate the callback, trade the code for a user token and persist it.

    Nothing is sent to Slack unless `state` matches. The availability store is never
    touched here.
    """
    settings = get_settings()
    verify_oauth_state(state)
    if not code:
        raise AuthorizationError("Missing ?code")
    if not settings.SLACK_CLIENT_ID or not settings.SLACK_CLIENT_SECRET:
        raise ConfigurationError("Missing SLACK_CLIENT_ID or SLACK_CLIENT_SECRET.")

    grant = await exchange_code_for_user_token(
        http_client,
        code=code,
        client_id=settings.SLACK_CLIENT_ID,
        client_secret=settings.SLACK_CLIENT_SECRET,
        redirect_uri=oauth_redirect_uri(settings),
    )

    record = await credentials.set(
        grant.member_id,
        token=grant.access_token,
        team_id=grant.team_id,
        enterprise_id=grant.enterprise_id,
    )
    logger.info(
        "Saved delegated token for member=%s team=%s scopes=%s",
        record.member_id,
        record.team_id,
        ",".join(grant.scopes),
    )
    return record
