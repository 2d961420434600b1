from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import httpx

from headsdown.core.config import get_settings
from headsdown.core.errors import AuthorizationError, HeadsDownError, UpstreamError
from headsdown.core.metrics import observe_availability_command
from headsdown.core.team import TeamRoster
from headsdown.services.slack.web import respond, set_profile_status
from headsdown.storage.availability import AvailabilityStore
from headsdown.storage.credentials import CredentialStore

logger = logging.getLogger("headsdown.slack")

_ON_WORDS = {"on", "enable", "start"}
_OFF_WORDS = {"off", "disable", "stop"}

GENERIC_FAILURE_TEXT = "Something went wrong updating your heads-down mode."


class GuardAction(str, enum.Enum):
    on = "on"
    off = "off"
    status = "status"
    toggle = "toggle"


def parse_guard_action(text: str | None) -> GuardAction:
    arg = (text or "").strip().lower()
    if arg in _ON_WORDS:
        return GuardAction.on
    if arg in _OFF_WORDS:
        return GuardAction.off
    if arg == "status":
        return GuardAction.status
    return GuardAction.toggle


@dataclass(frozen=True)
class CommandReply:
    text: str
    guard_on: bool | None
    status_updated: bool = False


async def apply_availability_command(
    *,
    member_id: str,
    text: str | None,
    roster: TeamRoster,
    availability: AvailabilityStore,
    credentials: CredentialStore,
    http_client: httpx.AsyncClient,
) -> CommandReply:
    settings = get_settings()
    if not roster.is_member(member_id):
        raise AuthorizationError(f"You are not on the managed {settings.TEAM_NAME} list.")

    action = parse_guard_action(text)
    observe_availability_command(action=action.value)

    if action == GuardAction.status:
        state = "ON" if await availability.is_guarded(member_id) else "OFF"
        return CommandReply(text=f"Your heads-down is *{state}*.", guard_on=state == "ON")

    if action == GuardAction.on:
        guard_on = True
    elif action == GuardAction.off:
        guard_on = False
    else:
        guard_on = not await availability.is_guarded(member_id)

    await availability.set(member_id, guard_on)
    status_updated = await _sync_profile_status(
        member_id=member_id,
        guard_on=guard_on,
        credentials=credentials,
        http_client=http_client,
    )

    if action == GuardAction.on:
        reply = "Heads-down is *ON*. I will auto-reply in DMs."
    elif action == GuardAction.off:
        reply = "Heads-down is *OFF*. I will not auto-reply in DMs."
    else:
        reply = f"Toggled. Heads-down is now *{'ON' if guard_on else 'OFF'}*."
    return CommandReply(text=reply, guard_on=guard_on, status_updated=status_updated)


async def _sync_profile_status(
    *,
    member_id: str,
    guard_on: bool,
    credentials: CredentialStore,
    http_client: httpx.AsyncClient,
) -> bool:
    # Cosmetic only: the guard flag is already stored, so failures here are logged and dropped.
    settings = get_settings()
    try:
        token = await credentials.get_token(member_id)
    except HeadsDownError as e:
        logger.warning("Could not load delegated token for member=%s: %s", member_id, e)
        return False
    if token is None:
        logger.debug("No delegated token for member=%s; skipping status update", member_id)
        return False

    try:
        await set_profile_status(
            http_client,
            token=token,
            emoji=settings.STATUS_EMOJI if guard_on else "",
            text=settings.status_text if guard_on else "",
        )
    except UpstreamError as e:
        logger.warning("users.profile.set failed for member=%s: %s", member_id, e)
        return False
    return True


async def run_availability_command(
    *,
    member_id: str,
    text: str | None,
    response_url: str | None,
    roster: TeamRoster,
    availability: AvailabilityStore,
    credentials: CredentialStore,
    http_client: httpx.AsyncClient,
) -> CommandReply:
    """Background half of the slash command: runs after Slack has been acked."""
    try:
        reply = await apply_availability_command(
            member_id=member_id,
            text=text,
            roster=roster,
            availability=availability,
            credentials=credentials,
            http_client=http_client,
        )
    except AuthorizationError as e:
        logger.info("Rejected availability command from non-member=%s", member_id)
        reply = CommandReply(text=str(e), guard_on=None)
    except Exception:
        logger.exception("Availability command failed for member=%s", member_id)
        reply = CommandReply(text=GENERIC_FAILURE_TEXT, guard_on=None)

    if not response_url:
        logger.warning("Availability command for member=%s had no response_url", member_id)
        return reply

    try:
        await respond(http_client, response_url=response_url, text=reply.text)
    except UpstreamError as e:
        logger.warning("Could not deliver availability reply to member=%s: %s", member_id, e)
    return reply
