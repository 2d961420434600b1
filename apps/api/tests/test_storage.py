from __future__ import annotations

import asyncio
import base64
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest
from botocore.stub import Stubber

from headsdown.core.crypto import EncryptionKeyError, TokenCipher
from headsdown.storage.availability import AvailabilityStore
from headsdown.storage.base import StoreError
from headsdown.storage.credentials import CredentialStore
from headsdown.storage.local import LocalKeyValueStore
from headsdown.storage.memory import MemoryKeyValueStore
from headsdown.storage.s3 import S3Config, S3KeyValueStore

_KEY = base64.b64encode(b"k" * 32).decode("ascii")


def test_unknown_member_defaults_to_guard_off() -> None:
    store = AvailabilityStore(MemoryKeyValueStore())
    record = asyncio.run(store.get("U1"))
    assert record.member_id == "U1"
    assert record.guard_on is False
    assert record.updated_at is None
    assert asyncio.run(store.member_ids()) == []


def test_availability_set_and_read_back() -> None:
    store = AvailabilityStore(MemoryKeyValueStore())
    now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)

    asyncio.run(store.set("U1", True, now=now))
    record = asyncio.run(store.get("U1"))

    assert record.guard_on is True
    assert record.updated_at == now
    assert asyncio.run(store.is_guarded("U1")) is True
    assert asyncio.run(store.is_guarded("U2")) is False


def test_credentials_absent_until_saved() -> None:
    store = CredentialStore(MemoryKeyValueStore())
    assert asyncio.run(store.get("U1")) is None
    assert asyncio.run(store.get_token("U1")) is None


def test_credentials_overwrite_keeps_latest_token() -> None:
    store = CredentialStore(MemoryKeyValueStore())
    asyncio.run(store.set("U1", token="xoxp-old", team_id="T1"))
    asyncio.run(store.set("U1", token="xoxp-new", team_id="T1"))

    record = asyncio.run(store.get("U1"))
    assert record is not None
    assert record.delegated_token == "xoxp-new"
    assert record.team_id == "T1"
    assert asyncio.run(store.member_ids()) == ["U1"]


def test_local_store_survives_restart(tmp_path: Path) -> None:
    first = AvailabilityStore(LocalKeyValueStore(str(tmp_path)))
    asyncio.run(first.set("U1", True))

    second = AvailabilityStore(LocalKeyValueStore(str(tmp_path)))
    assert asyncio.run(second.is_guarded("U1")) is True

    on_disk = json.loads((tmp_path / "availability.json").read_text("utf-8"))
    assert on_disk["U1"]["guard_on"] is True
    assert not (tmp_path / "availability.json.tmp").exists()


def test_local_store_ignores_corrupt_file(tmp_path: Path) -> None:
    (tmp_path / "availability.json").write_text("{not json", "utf-8")
    store = AvailabilityStore(LocalKeyValueStore(str(tmp_path)))

    assert asyncio.run(store.is_guarded("U1")) is False
    asyncio.run(store.set("U1", True))
    assert json.loads((tmp_path / "availability.json").read_text("utf-8"))["U1"]["guard_on"]


def test_encrypted_tokens_are_not_stored_in_plaintext(tmp_path: Path) -> None:
    kv = LocalKeyValueStore(str(tmp_path))
    store = CredentialStore(kv, cipher=TokenCipher.from_base64(_KEY))

    asyncio.run(store.set("U1", token="xoxp-secret"))

    raw = (tmp_path / "credentials.json").read_text("utf-8")
    assert "xoxp-secret" not in raw
    assert "sealed_token" in raw
    assert asyncio.run(store.get_token("U1")) == "xoxp-secret"


def test_sealed_token_is_bound_to_its_member() -> None:
    kv = MemoryKeyValueStore()
    store = CredentialStore(kv, cipher=TokenCipher.from_base64(_KEY))
    asyncio.run(store.set("U1", token="xoxp-secret"))

    doc = asyncio.run(kv.get(namespace="credentials", key="U1"))
    asyncio.run(kv.put(namespace="credentials", key="U2", value=doc))

    with pytest.raises(StoreError):
        asyncio.run(store.get("U2"))


def test_sealed_token_without_key_is_an_error() -> None:
    kv = MemoryKeyValueStore()
    asyncio.run(CredentialStore(kv, cipher=TokenCipher.from_base64(_KEY)).set("U1", token="t"))

    with pytest.raises(StoreError):
        asyncio.run(CredentialStore(kv).get("U1"))


def test_cipher_rejects_bad_keys() -> None:
    assert TokenCipher.from_base64("  ") is None
    with pytest.raises(EncryptionKeyError):
        TokenCipher.from_base64("not base64!")
    with pytest.raises(EncryptionKeyError):
        TokenCipher.from_base64(base64.b64encode(b"short").decode("ascii"))


def _s3_store(monkeypatch: pytest.MonkeyPatch) -> S3KeyValueStore:
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    return S3KeyValueStore(
        S3Config(
            endpoint_url="http://s3.test",
            access_key_id="test",
            secret_access_key="test",
            bucket="state",
            prefix="hd/",
        )
    )


def test_s3_store_missing_key_is_none(monkeypatch: pytest.MonkeyPatch) -> None:
    kv = _s3_store(monkeypatch)
    with Stubber(kv._client) as stub:
        stub.add_client_error(
            "get_object",
            service_error_code="NoSuchKey",
            http_status_code=404,
            expected_params={"Bucket": "state", "Key": "hd/availability/U1.json"},
        )
        assert asyncio.run(AvailabilityStore(kv).is_guarded("U1")) is False
        stub.assert_no_pending_responses()


def test_s3_store_writes_and_lists_objects(monkeypatch: pytest.MonkeyPatch) -> None:
    kv = _s3_store(monkeypatch)
    with Stubber(kv._client) as stub:
        stub.add_response(
            "put_object",
            {},
            {
                "Bucket": "state",
                "Key": "hd/credentials/U1.json",
                "Body": b'{"delegated_token":"xoxp-1"}',
                "ContentType": "application/json",
            },
        )
        stub.add_response(
            "list_objects_v2",
            {
                "IsTruncated": False,
                "Contents": [
                    {"Key": "hd/credentials/U2.json"},
                    {"Key": "hd/credentials/U1.json"},
                    {"Key": "hd/credentials/notes.txt"},
                ],
            },
            {"Bucket": "state", "Prefix": "hd/credentials/"},
        )

        asyncio.run(kv.put(namespace="credentials", key="U1", value={"delegated_token": "xoxp-1"}))
        assert asyncio.run(kv.keys(namespace="credentials")) == ["U1", "U2"]
        stub.assert_no_pending_responses()


def test_s3_store_ping_surfaces_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    kv = _s3_store(monkeypatch)
    with Stubber(kv._client) as stub:
        stub.add_client_error("head_bucket", service_error_code="403", http_status_code=403)
        with pytest.raises(StoreError):
            asyncio.run(kv.ping())
