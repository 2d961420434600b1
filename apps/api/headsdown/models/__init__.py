from __future__ import annotations

from headsdown.models.records import AvailabilityRecord, CredentialRecord  # noqa: F401
