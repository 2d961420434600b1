from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import orjson

from headsdown.storage.base import KeyValueStore, StoreError

logger = logging.getLogger("headsdown.storage")


class LocalKeyValueStore(KeyValueStore):
    """One pretty-printed JSON file per namespace, rewritten atomically on every put.

    Files are read once and then served from memory; this process is the only writer.
    """

    def __init__(self, root_dir: str) -> None:
        self._root = Path(root_dir)
        self._root.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, dict[str, dict[str, Any]]] = {}

    def _path_for_namespace(self, namespace: str) -> Path:
        return self._root / f"{namespace.strip('/')}.json"

    def _load(self, namespace: str) -> dict[str, dict[str, Any]]:
        cached = self._cache.get(namespace)
        if cached is not None:
            return cached

        path = self._path_for_namespace(namespace)
        data: dict[str, dict[str, Any]] = {}
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            raw = None
        except OSError as e:
            raise StoreError(str(e)) from e

        if raw:
            try:
                parsed = orjson.loads(raw)
            except orjson.JSONDecodeError:
                # Start empty rather than refuse to boot; the next put rewrites the file.
                logger.warning("Ignoring unreadable state file %s", path)
                parsed = {}
            if isinstance(parsed, dict):
                data = {k: v for k, v in parsed.items() if isinstance(v, dict)}

        self._cache[namespace] = data
        return data

    def _flush(self, namespace: str, data: dict[str, dict[str, Any]]) -> None:
        path = self._path_for_namespace(namespace)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with open(tmp_path, "wb") as f:
                f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreError(str(e)) from e

    async def get(self, *, namespace: str, key: str) -> dict[str, Any] | None:
        doc = self._load(namespace).get(key)
        return dict(doc) if doc is not None else None

    async def put(self, *, namespace: str, key: str, value: dict[str, Any]) -> None:
        current = self._load(namespace)
        updated = {**current, key: dict(value)}
        self._flush(namespace, updated)
        self._cache[namespace] = updated

    async def keys(self, *, namespace: str) -> list[str]:
        return sorted(self._load(namespace))

    async def ping(self) -> None:
        if not os.access(self._root, os.W_OK):
            raise StoreError(f"State directory is not writable: {self._root}")
