from __future__ import annotations

import base64
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from headsdown.core.errors import ConfigurationError


class EncryptionKeyError(ConfigurationError):
    pass


def load_key(raw: str) -> bytes:
    try:
        key = base64.b64decode(raw, validate=True)
    except Exception as e:  # noqa: BLE001
        raise EncryptionKeyError("ENCRYPTION_KEY_BASE64 must be valid base64") from e

    if len(key) != 32:
        raise EncryptionKeyError("ENCRYPTION_KEY_BASE64 must decode to 32 bytes (AES-256)")

    return key


class TokenCipher:
    """Seals delegated tokens so a leaked state file or bucket is not enough to act as a member."""

    def __init__(self, key: bytes) -> None:
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_base64(cls, raw: str) -> TokenCipher | None:
        if not raw.strip():
            return None
        return cls(load_key(raw.strip()))

    def seal(self, *, plaintext: str, aad: bytes) -> str:
        nonce = os.urandom(12)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), aad)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def open(self, *, sealed: str, aad: bytes) -> str:
        blob = base64.b64decode(sealed)
        if len(blob) < 13:
            raise ValueError("Encrypted blob is too short")
        return self._aesgcm.decrypt(blob[:12], blob[12:], aad).decode("utf-8")
