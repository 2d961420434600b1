from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse

from headsdown.core.config import get_settings
from headsdown.core.deps import get_roster, get_stores
from headsdown.core.team import TeamRoster
from headsdown.schemas.slack import HealthResponse, TeamDebugResponse, TeamMemberOut
from headsdown.services.install import OAUTH_INSTALL_PATH, OAUTH_REDIRECT_PATH
from headsdown.storage.base import StoreError
from headsdown.storage.factory import Stores

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(stores: Stores = Depends(get_stores)) -> dict[str, str]:
    try:
        await stores.ping()
    except StoreError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="state store not ready",
        ) from e
    return {"status": "ready"}


@router.get("/api", response_class=PlainTextResponse)
def landing() -> str:
    return f"Heads-down DM redirect bot. Use {OAUTH_INSTALL_PATH} to authorize a user."


@router.get("/api/health", response_model=HealthResponse)
def api_health() -> HealthResponse:
    return HealthResponse(
        ok=True,
        events_endpoint="/api/slack/events",
        oauth_install=OAUTH_INSTALL_PATH,
        oauth_redirect=OAUTH_REDIRECT_PATH,
    )


@router.get("/api/debug/team", response_model=TeamDebugResponse)
async def debug_team(
    roster: TeamRoster = Depends(get_roster),
    stores: Stores = Depends(get_stores),
) -> TeamDebugResponse:
    # Read-only operational view; never includes tokens.
    authorized = await stores.credentials.member_ids()
    authorized_set = set(authorized)
    members = [
        TeamMemberOut(
            member_id=member_id,
            guard_on=await stores.availability.is_guarded(member_id),
            has_token=member_id in authorized_set,
        )
        for member_id in roster.member_ids
    ]
    return TeamDebugResponse(
        team_name=get_settings().TEAM_NAME,
        team_user_ids=list(roster.member_ids),
        members=members,
        authorized_member_ids=authorized,
    )
