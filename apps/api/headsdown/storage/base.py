from __future__ import annotations

from typing import Any

import orjson

from headsdown.core.errors import HeadsDownError


class StoreError(HeadsDownError):
    """State could not be read or written. Callers treat the affected member as unavailable."""


class KeyValueStore:
    """One JSON document per (namespace, key).

    `put` replaces the whole document, so readers always see either the old or the
    new value for a key, never a mix.
    """

    async def get(self, *, namespace: str, key: str) -> dict[str, Any] | None:  # pragma: no cover
        raise NotImplementedError

    async def put(
        self, *, namespace: str, key: str, value: dict[str, Any]
    ) -> None:  # pragma: no cover
        raise NotImplementedError

    async def keys(self, *, namespace: str) -> list[str]:  # pragma: no cover
        raise NotImplementedError

    async def ping(self) -> None:
        return None


def encode_document(value: dict[str, Any]) -> bytes:
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS)


def decode_document(raw: bytes) -> dict[str, Any]:
    try:
        doc = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise StoreError(f"Stored document is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise StoreError("Stored document is not a JSON object")
    return doc
