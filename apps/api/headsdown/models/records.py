from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AvailabilityRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_id: str
    guard_on: bool = False
    # None means the member never toggled; the record is the implicit default.
    updated_at: datetime | None = None


class CredentialRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_id: str
    delegated_token: str
    team_id: str | None = None
    enterprise_id: str | None = None
    updated_at: datetime
