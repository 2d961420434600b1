from __future__ import annotations

from typing import Any

from headsdown.storage.base import KeyValueStore, decode_document, encode_document


class MemoryKeyValueStore(KeyValueStore):
    # Volatile: everything is gone on restart.

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, bytes]] = {}

    async def get(self, *, namespace: str, key: str) -> dict[str, Any] | None:
        raw = self._namespaces.get(namespace, {}).get(key)
        if raw is None:
            return None
        return decode_document(raw)

    async def put(self, *, namespace: str, key: str, value: dict[str, Any]) -> None:
        # Stored encoded so callers can't mutate a record after writing it.
        self._namespaces.setdefault(namespace, {})[key] = encode_document(value)

    async def keys(self, *, namespace: str) -> list[str]:
        return sorted(self._namespaces.get(namespace, {}))
