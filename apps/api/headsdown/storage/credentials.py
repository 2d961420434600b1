from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from headsdown.core.crypto import TokenCipher
from headsdown.models.records import CredentialRecord
from headsdown.storage.base import KeyValueStore, StoreError

NAMESPACE = "credentials"


def _token_aad(member_id: str) -> bytes:
    # Binds the ciphertext to its key so a sealed token can't be replayed under another member.
    return f"credentials:{member_id}:slack".encode()


class CredentialStore:
    """Delegated (user) tokens, one per member.

    With a cipher configured the token is stored as `sealed_token`; otherwise it is
    stored as-is, which is acceptable for the volatile in-memory backing.
    """

    def __init__(self, kv: KeyValueStore, *, cipher: TokenCipher | None = None) -> None:
        self._kv = kv
        self._cipher = cipher

    async def get(self, member_id: str) -> CredentialRecord | None:
        doc = await self._kv.get(namespace=NAMESPACE, key=member_id)
        if doc is None:
            return None
        return CredentialRecord.model_validate(
            {**doc, "member_id": member_id, "delegated_token": self._unseal(member_id, doc)}
        )

    async def get_token(self, member_id: str) -> str | None:
        record = await self.get(member_id)
        return record.delegated_token if record is not None else None

    async def set(
        self,
        member_id: str,
        *,
        token: str,
        team_id: str | None = None,
        enterprise_id: str | None = None,
        now: datetime | None = None,
    ) -> CredentialRecord:
        record = CredentialRecord(
            member_id=member_id,
            delegated_token=token,
            team_id=team_id,
            enterprise_id=enterprise_id,
            updated_at=now or datetime.now(UTC),
        )
        doc = record.model_dump(mode="json", exclude={"delegated_token"})
        if self._cipher is not None:
            doc["sealed_token"] = self._cipher.seal(plaintext=token, aad=_token_aad(member_id))
        else:
            doc["delegated_token"] = token
        await self._kv.put(namespace=NAMESPACE, key=member_id, value=doc)
        return record

    async def member_ids(self) -> list[str]:
        return await self._kv.keys(namespace=NAMESPACE)

    def _unseal(self, member_id: str, doc: dict[str, Any]) -> str:
        sealed = doc.get("sealed_token")
        if sealed is None:
            token = doc.get("delegated_token")
            if not token:
                raise StoreError(f"Credential record for {member_id} has no token")
            return token
        if self._cipher is None:
            raise StoreError("Credential is encrypted but ENCRYPTION_KEY_BASE64 is not set")
        try:
            return self._cipher.open(sealed=sealed, aad=_token_aad(member_id))
        except Exception as e:  # noqa: BLE001
            raise StoreError(
                "Could not decrypt delegated token (check ENCRYPTION_KEY_BASE64)"
            ) from e
