from __future__ import annotations

from dataclasses import dataclass

from headsdown.core.config import Settings
from headsdown.core.crypto import TokenCipher
from headsdown.storage.availability import AvailabilityStore
from headsdown.storage.base import KeyValueStore
from headsdown.storage.credentials import CredentialStore
from headsdown.storage.local import LocalKeyValueStore
from headsdown.storage.memory import MemoryKeyValueStore
from headsdown.storage.s3 import S3Config, S3KeyValueStore


@dataclass(frozen=True)
class Stores:
    backend: KeyValueStore
    availability: AvailabilityStore
    credentials: CredentialStore

    async def ping(self) -> None:
        await self.backend.ping()


def build_key_value_store(settings: Settings) -> KeyValueStore:
    if settings.STORE_BACKEND == "memory":
        return MemoryKeyValueStore()
    if settings.STORE_BACKEND == "local":
        return LocalKeyValueStore(settings.LOCAL_STORE_DIR)
    if settings.STORE_BACKEND == "s3":
        return S3KeyValueStore(
            S3Config(
                endpoint_url=settings.S3_ENDPOINT_URL,
                access_key_id=settings.S3_ACCESS_KEY_ID,
                secret_access_key=settings.S3_SECRET_ACCESS_KEY,
                bucket=settings.S3_BUCKET,
                prefix=settings.S3_PREFIX,
            )
        )
    raise ValueError(f"Unsupported STORE_BACKEND: {settings.STORE_BACKEND}")


def build_stores(settings: Settings) -> Stores:
    kv = build_key_value_store(settings)
    cipher = TokenCipher.from_base64(settings.ENCRYPTION_KEY_BASE64)
    return Stores(
        backend=kv,
        availability=AvailabilityStore(kv),
        credentials=CredentialStore(kv, cipher=cipher),
    )
