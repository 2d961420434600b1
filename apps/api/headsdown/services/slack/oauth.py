from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from headsdown.core.errors import MalformedResponseError, UpstreamError
from headsdown.services.slack.web import SlackApiError, call_api

SLACK_OAUTH_AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"


@dataclass(frozen=True)
class SlackUserGrant:
    member_id: str
    access_token: str
    scope: str | None
    team_id: str | None
    enterprise_id: str | None

    @property
    def scopes(self) -> list[str]:
        if not self.scope:
            return []
        # Slack returns a comma-delimited string.
        return [s for s in self.scope.split(",") if s]


def build_authorization_url(
    *,
    client_id: str,
    redirect_uri: str,
    bot_scopes: list[str],
    user_scopes: list[str],
    state: str,
) -> str:
    params = {
        "client_id": client_id,
        "scope": ",".join(bot_scopes),
        "user_scope": ",".join(user_scopes),
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"{SLACK_OAUTH_AUTHORIZE_URL}?{urlencode(params)}"


async def exchange_code_for_user_token(
    client: httpx.AsyncClient,
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
) -> SlackUserGrant:
    try:
        payload = await call_api(
            client,
            "oauth.v2.access",
            token=None,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
    except SlackApiError as e:
        # Codes are single use: a replayed code comes back as `invalid_code`.
        raise UpstreamError(f"Slack rejected the authorization code ({e.error})") from e

    authed_user = payload.get("authed_user") or {}
    member_id = authed_user.get("id")
    access_token = authed_user.get("access_token")
    if not member_id or not access_token:
        raise MalformedResponseError("OAuth complete, but Slack returned no user token")

    return SlackUserGrant(
        member_id=member_id,
        access_token=access_token,
        scope=authed_user.get("scope"),
        team_id=(payload.get("team") or {}).get("id"),
        enterprise_id=(payload.get("enterprise") or {}).get("id"),
    )
