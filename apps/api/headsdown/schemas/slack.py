from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MessageEvent(BaseModel):
    """The subset of a Slack `message` event the router looks at."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = "message"
    sender: str | None = Field(default=None, alias="user")
    conversation_id: str | None = Field(default=None, alias="channel")
    channel_type: str | None = None
    ts: str | None = None
    thread_ts: str | None = None
    subtype: str | None = None
    bot_id: str | None = None

    @property
    def is_automated(self) -> bool:
        return bool(self.bot_id)


class SlashCommand(BaseModel):
    model_config = ConfigDict(extra="ignore")

    command: str
    user_id: str
    text: str = ""
    response_url: str | None = None
    team_id: str | None = None
    channel_id: str | None = None


class OAuthCallbackResponse(BaseModel):
    status: str
    member_id: str


class HealthResponse(BaseModel):
    ok: bool
    events_endpoint: str
    oauth_install: str
    oauth_redirect: str


class TeamMemberOut(BaseModel):
    member_id: str
    guard_on: bool
    has_token: bool


class TeamDebugResponse(BaseModel):
    team_name: str
    team_user_ids: list[str]
    members: list[TeamMemberOut]
    authorized_member_ids: list[str]
