from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

import httpx

from headsdown.core.config import get_settings
from headsdown.core.errors import HeadsDownError, UpstreamError
from headsdown.core.metrics import observe_dm_routing
from headsdown.core.team import TeamRoster, canonical_member_id
from headsdown.schemas.slack import MessageEvent
from headsdown.services.slack.web import conversations_info, post_message
from headsdown.storage.availability import AvailabilityStore
from headsdown.storage.credentials import CredentialStore

logger = logging.getLogger("headsdown.slack")


class Verdict(str, enum.Enum):
    skip = "skip"
    abort = "abort"
    reply = "reply"


@dataclass(frozen=True)
class CandidateOutcome:
    member_id: str
    verdict: Verdict
    reason: str
    token: str | None = None


@dataclass(frozen=True)
class PartnerLookup:
    partner: str | None
    error: str | None = None

    @property
    def resolved(self) -> bool:
        return self.error is None and self.partner is not None


@dataclass(frozen=True)
class RoutingResult:
    outcome: str  # ignored|aborted|no_match|replied|post_failed
    reason: str
    replied_as: str | None = None
    candidates: list[CandidateOutcome] = field(default_factory=list)


def build_redirect_text() -> str:
    route = get_settings().route_reference
    return (
        "Hi there, thanks for reaching out. I am currently heads down in deep work mode "
        "and not checking messages in real time.\n"
        f"For quicker support, please post your question in {route} "
        "so a teammate can jump in.\n"
        "Otherwise, I will respond once I wrap up what I'm working on. "
        "Appreciate your patience!"
    )


def ignore_reason(event: MessageEvent) -> str | None:
    """Why this event can never trigger an auto-reply, or None if it is a candidate."""
    if event.type != "message":
        return "not_a_message"
    if event.subtype:
        return "has_subtype"
    if event.channel_type != "im":
        return "not_a_dm"
    if event.thread_ts:
        return "threaded_reply"
    if not event.sender:
        return "no_sender"
    if not event.conversation_id or not event.ts:
        return "incomplete_event"
    return None


async def resolve_partner(
    http_client: httpx.AsyncClient, *, token: str, channel: str
) -> PartnerLookup:
    try:
        conversation = await conversations_info(http_client, token=token, channel=channel)
    except UpstreamError as e:
        return PartnerLookup(partner=None, error=str(e))
    if not conversation.is_im:
        return PartnerLookup(partner=None, error="conversation is not a DM")
    if not conversation.user:
        return PartnerLookup(partner=None, error="conversation has no DM partner")
    return PartnerLookup(partner=conversation.user)


async def evaluate_candidate(
    *,
    member_id: str,
    event: MessageEvent,
    availability: AvailabilityStore,
    credentials: CredentialStore,
    http_client: httpx.AsyncClient,
) -> CandidateOutcome:
    try:
        if not await availability.is_guarded(member_id):
            return CandidateOutcome(member_id, Verdict.skip, "guard_off")
        token = await credentials.get_token(member_id)
    except HeadsDownError as e:
        logger.warning("Skipping member=%s: state unavailable (%s)", member_id, e)
        return CandidateOutcome(member_id, Verdict.skip, "state_unavailable")
    if token is None:
        return CandidateOutcome(member_id, Verdict.skip, "no_credential")

    lookup = await resolve_partner(http_client, token=token, channel=event.conversation_id or "")
    if not lookup.resolved:
        # Inconclusive: this member's token can't see the channel, or Slack failed.
        logger.info(
            "Partner lookup inconclusive for member=%s channel=%s: %s",
            member_id,
            event.conversation_id,
            lookup.error,
        )
        return CandidateOutcome(member_id, Verdict.skip, "partner_unresolved")

    if lookup.partner != event.sender:
        return CandidateOutcome(member_id, Verdict.skip, "partner_mismatch")

    if canonical_member_id(event.sender or "") == member_id:
        return CandidateOutcome(member_id, Verdict.abort, "self_message")

    return CandidateOutcome(member_id, Verdict.reply, "matched", token=token)


async def route_direct_message(
    *,
    event: MessageEvent,
    roster: TeamRoster,
    availability: AvailabilityStore,
    credentials: CredentialStore,
    http_client: httpx.AsyncClient,
) -> RoutingResult:
    """Decide whether, and as whom, to auto-reply to an inbound DM.

    Guarded members are tried in allow-list order and the first one whose DM partner is
    the sender replies, threaded under the triggering message. Self-authored and
    bot-authored messages end the pass with no reply at all.
    """
    reason = ignore_reason(event)
    if reason is not None:
        return RoutingResult(outcome="ignored", reason=reason)
    if event.is_automated:
        return RoutingResult(outcome="aborted", reason="automated_sender")

    outcomes: list[CandidateOutcome] = []
    for member_id in roster.member_ids:
        outcome = await evaluate_candidate(
            member_id=member_id,
            event=event,
            availability=availability,
            credentials=credentials,
            http_client=http_client,
        )
        outcomes.append(outcome)

        if outcome.verdict == Verdict.abort:
            return RoutingResult(outcome="aborted", reason=outcome.reason, candidates=outcomes)
        if outcome.verdict == Verdict.skip:
            continue

        try:
            reply_ts = await post_message(
                http_client,
                token=outcome.token or "",
                channel=event.conversation_id or "",
                text=build_redirect_text(),
                thread_ts=event.ts,
            )
        except UpstreamError as e:
            # The matched member is the only possible replier for this DM; no fallback.
            logger.warning("Auto-reply as member=%s failed: %s", member_id, e)
            return RoutingResult(outcome="post_failed", reason=str(e), candidates=outcomes)

        logger.info(
            "Auto-replied as member=%s to sender=%s in channel=%s ts=%s",
            member_id,
            event.sender,
            event.conversation_id,
            reply_ts,
        )
        return RoutingResult(
            outcome="replied", reason="matched", replied_as=member_id, candidates=outcomes
        )

    return RoutingResult(outcome="no_match", reason="no_guarded_recipient", candidates=outcomes)


async def handle_message_event(
    *,
    payload: dict,
    roster: TeamRoster,
    availability: AvailabilityStore,
    credentials: CredentialStore,
    http_client: httpx.AsyncClient,
) -> RoutingResult | None:
    # Nobody is waiting on this task, so errors end here as log lines.
    try:
        event = MessageEvent.model_validate(payload)
        result = await route_direct_message(
            event=event,
            roster=roster,
            availability=availability,
            credentials=credentials,
            http_client=http_client,
        )
    except Exception:
        logger.exception("Message event handling failed")
        observe_dm_routing(outcome="error")
        return None

    observe_dm_routing(outcome=result.outcome)
    if result.outcome != "ignored":
        logger.debug("DM routing outcome=%s reason=%s", result.outcome, result.reason)
    return result
