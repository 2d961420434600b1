from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from headsdown.core.errors import UpstreamError
from headsdown.core.metrics import observe_slack_api_error

SLACK_API_URL = "https://slack.com/api"

logger = logging.getLogger("headsdown.slack")


@dataclass(frozen=True)
class SlackConversation:
    is_im: bool
    # For a DM, the other participant as seen by the token's owner.
    user: str | None


class SlackApiError(UpstreamError):
    def __init__(self, *, method: str, error: str, status_code: int = 200) -> None:
        super().__init__(f"Slack {method} failed: {error}")
        self.method = method
        self.error = error
        self.status_code = status_code


async def conversations_info(
    client: httpx.AsyncClient,
    *,
    token: str,
    channel: str,
) -> SlackConversation:
    payload = await call_api(
        client, "conversations.info", token=token, params={"channel": channel}
    )
    raw = payload.get("channel") or {}
    return SlackConversation(
        is_im=bool(raw.get("is_im")),
        user=raw.get("user"),
    )


async def post_message(
    client: httpx.AsyncClient,
    *,
    token: str,
    channel: str,
    text: str,
    thread_ts: str | None = None,
) -> str | None:
    body: dict[str, Any] = {"channel": channel, "text": text}
    if thread_ts:
        body["thread_ts"] = thread_ts
    payload = await call_api(client, "chat.postMessage", token=token, json=body)
    return payload.get("ts")


async def set_profile_status(
    client: httpx.AsyncClient,
    *,
    token: str,
    emoji: str,
    text: str,
    expiration: int = 0,
) -> None:
    await call_api(
        client,
        "users.profile.set",
        token=token,
        json={
            "profile": {
                "status_emoji": emoji,
                "status_text": text,
                "status_expiration": expiration,
            }
        },
    )


async def respond(
    client: httpx.AsyncClient,
    *,
    response_url: str,
    text: str,
    response_type: str = "ephemeral",
) -> None:
    # response_url is pre-authorized by Slack; no token goes with it.
    try:
        res = await client.post(response_url, json={"response_type": response_type, "text": text})
    except httpx.HTTPError as e:
        observe_slack_api_error(method="response_url")
        raise SlackApiError(method="response_url", error=type(e).__name__) from e
    if res.status_code >= 400:
        observe_slack_api_error(method="response_url")
        raise SlackApiError(
            method="response_url", error=f"http_{res.status_code}", status_code=res.status_code
        )


async def call_api(
    client: httpx.AsyncClient,
    method: str,
    *,
    token: str | None,
    params: dict[str, Any] | None = None,
    json: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    headers: dict[str, str] = {}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    url = f"{SLACK_API_URL}/{method}"
    try:
        if json is None and data is None:
            res = await client.get(url, params=params, headers=headers)
        else:
            res = await client.post(url, params=params, json=json, data=data, headers=headers)
    except httpx.HTTPError as e:
        observe_slack_api_error(method=method)
        raise SlackApiError(method=method, error=type(e).__name__) from e

    return _raise_for_slack_error(res, method=method)


def _raise_for_slack_error(res: httpx.Response, *, method: str) -> dict[str, Any]:
    # Slack reports most failures as HTTP 200 with `ok: false`.
    if res.status_code >= 400:
        observe_slack_api_error(method=method)
        raise SlackApiError(
            method=method, error=f"http_{res.status_code}", status_code=res.status_code
        )

    try:
        payload = res.json()
    except ValueError as e:
        observe_slack_api_error(method=method)
        raise SlackApiError(
            method=method, error="invalid_json", status_code=res.status_code
        ) from e

    if not isinstance(payload, dict) or not payload.get("ok"):
        error = payload.get("error") if isinstance(payload, dict) else None
        observe_slack_api_error(method=method)
        raise SlackApiError(
            method=method, error=error or "unknown_error", status_code=res.status_code
        )

    warning = payload.get("warning")
    if warning:
        logger.debug("Slack %s warning: %s", method, warning)
    return payload
