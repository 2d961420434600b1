from __future__ import annotations

from datetime import UTC, datetime

from headsdown.models.records import AvailabilityRecord
from headsdown.storage.base import KeyValueStore

NAMESPACE = "availability"


class AvailabilityStore:
    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    async def get(self, member_id: str) -> AvailabilityRecord:
        doc = await self._kv.get(namespace=NAMESPACE, key=member_id)
        if doc is None:
            return AvailabilityRecord(member_id=member_id)
        return AvailabilityRecord.model_validate({**doc, "member_id": member_id})

    async def is_guarded(self, member_id: str) -> bool:
        return (await self.get(member_id)).guard_on

    async def set(
        self, member_id: str, guard_on: bool, *, now: datetime | None = None
    ) -> AvailabilityRecord:
        record = AvailabilityRecord(
            member_id=member_id,
            guard_on=bool(guard_on),
            updated_at=now or datetime.now(UTC),
        )
        await self._kv.put(namespace=NAMESPACE, key=member_id, value=record.model_dump(mode="json"))
        return record

    async def member_ids(self) -> list[str]:
        return await self._kv.keys(namespace=NAMESPACE)
