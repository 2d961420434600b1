from __future__ import annotations

import logging
from urllib.parse import parse_qs

import httpx
import orjson
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from headsdown.core.config import get_settings
from headsdown.core.deps import get_roster, get_stores, verify_slack_request
from headsdown.core.http import get_http_client
from headsdown.core.team import TeamRoster
from headsdown.schemas.slack import SlashCommand
from headsdown.services.availability import run_availability_command
from headsdown.services.routing import handle_message_event
from headsdown.storage.factory import Stores

logger = logging.getLogger("headsdown.slack")

router = APIRouter(prefix="/api/slack", tags=["slack"])


@router.post("/events")
async def slack_events(
    request: Request,
    background: BackgroundTasks,
    body: bytes = Depends(verify_slack_request),
    roster: TeamRoster = Depends(get_roster),
    stores: Stores = Depends(get_stores),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    # Slack posts events, commands and interactivity to this one URL.
    if _is_form(request):
        return _accept_command(
            body,
            background=background,
            roster=roster,
            stores=stores,
            http_client=http_client,
        )

    try:
        envelope = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON") from e
    if not isinstance(envelope, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    if envelope.get("type") == "url_verification":
        return JSONResponse({"challenge": envelope.get("challenge")})

    if envelope.get("type") == "event_callback":
        event = envelope.get("event")
        if isinstance(event, dict) and event.get("type") == "message":
            background.add_task(
                handle_message_event,
                payload=event,
                roster=roster,
                availability=stores.availability,
                credentials=stores.credentials,
                http_client=http_client,
            )

    return Response(status_code=status.HTTP_200_OK)


@router.post("/commands")
async def slack_commands(
    background: BackgroundTasks,
    body: bytes = Depends(verify_slack_request),
    roster: TeamRoster = Depends(get_roster),
    stores: Stores = Depends(get_stores),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    return _accept_command(
        body,
        background=background,
        roster=roster,
        stores=stores,
        http_client=http_client,
    )


def _is_form(request: Request) -> bool:
    content_type = request.headers.get("content-type") or ""
    return content_type.startswith("application/x-www-form-urlencoded")


def _accept_command(
    body: bytes,
    *,
    background: BackgroundTasks,
    roster: TeamRoster,
    stores: Stores,
    http_client: httpx.AsyncClient,
) -> Response:
    # Ack now with an empty 200; the real reply goes to response_url from the background task.
    form = {k: v[0] for k, v in parse_qs(body.decode("utf-8"), keep_blank_values=True).items()}
    if "command" not in form:
        # Interactivity payloads share the URL; nothing here uses them.
        return Response(status_code=status.HTTP_200_OK)

    try:
        command = SlashCommand.model_validate(form)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed slash command"
        ) from e

    settings = get_settings()
    if command.command != settings.SLACK_COMMAND:
        logger.info("Ignoring unknown slash command %s", command.command)
        return JSONResponse(
            {"response_type": "ephemeral", "text": f"Unknown command {command.command}."}
        )

    background.add_task(
        run_availability_command,
        member_id=command.user_id,
        text=command.text,
        response_url=command.response_url,
        roster=roster,
        availability=stores.availability,
        credentials=stores.credentials,
        http_client=http_client,
    )
    return Response(status_code=status.HTTP_200_OK)
