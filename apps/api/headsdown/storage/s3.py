from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from headsdown.storage.base import KeyValueStore, StoreError, decode_document, encode_document

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass(frozen=True)
class S3Config:
    endpoint_url: str | None
    access_key_id: str | None
    secret_access_key: str | None
    bucket: str
    prefix: str = ""


class S3KeyValueStore(KeyValueStore):
    """Remote backing: one object per key under `{prefix}{namespace}/{key}.json`.

    boto3 is blocking, so every call is pushed to the threadpool to keep the event loop free.
    """

    def __init__(self, config: S3Config) -> None:
        self._bucket = config.bucket
        self._prefix = config.prefix
        self._client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )

    def _object_key(self, namespace: str, key: str) -> str:
        return f"{self._prefix}{namespace}/{key}.json"

    async def get(self, *, namespace: str, key: str) -> dict[str, Any] | None:
        raw = await run_in_threadpool(self._get_bytes, self._object_key(namespace, key))
        if raw is None:
            return None
        return decode_document(raw)

    async def put(self, *, namespace: str, key: str, value: dict[str, Any]) -> None:
        await run_in_threadpool(
            self._put_bytes, self._object_key(namespace, key), encode_document(value)
        )

    async def keys(self, *, namespace: str) -> list[str]:
        return await run_in_threadpool(self._list_keys, f"{self._prefix}{namespace}/")

    async def ping(self) -> None:
        await run_in_threadpool(self._head_bucket)

    def _get_bytes(self, object_key: str) -> bytes | None:
        try:
            res = self._client.get_object(Bucket=self._bucket, Key=object_key)
            body = res["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                return None
            raise StoreError(str(e)) from e
        except BotoCoreError as e:
            raise StoreError(str(e)) from e
        if not isinstance(body, (bytes, bytearray)):
            raise StoreError("S3 returned non-bytes body")
        return bytes(body)

    def _put_bytes(self, object_key: str, data: bytes) -> None:
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=object_key,
                Body=data,
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreError(str(e)) from e

    def _list_keys(self, prefix: str) -> list[str]:
        out: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                for item in page.get("Contents") or []:
                    name = item["Key"][len(prefix) :]
                    if name.endswith(".json"):
                        out.append(name[: -len(".json")])
        except (BotoCoreError, ClientError) as e:
            raise StoreError(str(e)) from e
        return sorted(out)

    def _head_bucket(self) -> None:
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except (BotoCoreError, ClientError) as e:
            raise StoreError(str(e)) from e
