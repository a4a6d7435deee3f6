"""Authenticated encryption of report payloads.

Blob layout (fixed, all sizes in bytes)::

    [ nonce: 12 ][ tag: 16 ][ ciphertext: n ]

The plaintext is compact UTF-8 JSON. AES-256-GCM with a random nonce per
call; decryption fails closed on any tag mismatch.
"""

import base64
import binascii
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.exceptions import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


class PayloadCipher:
    """Encrypts JSON-serialisable objects into opaque blobs and back."""

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise ConfigurationError(f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_base64(cls, value: str) -> "PayloadCipher":
        """Build a cipher from the base64 key provisioned in the environment."""
        if not value:
            raise ConfigurationError("WB_AES_KEY is not configured")
        try:
            key = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError(f"WB_AES_KEY is not valid base64: {e}") from e
        return cls(key)

    def encrypt(self, obj: Any) -> bytes:
        plaintext = json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(nonce, plaintext, None)
        # AESGCM appends the tag; move it in front of the ciphertext
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return nonce + tag + ciphertext

    def decrypt(self, blob: bytes) -> Any:
        if len(blob) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Encrypted payload is truncated")
        nonce = blob[:NONCE_SIZE]
        tag = blob[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
        ciphertext = blob[NONCE_SIZE + TAG_SIZE:]
        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            raise DecryptionError() from e
        return json.loads(plaintext.decode("utf-8"))

    def decrypt_field(self, blob: bytes | None, field: str) -> str:
        """Decrypt a single-field payload such as {"description": ...}.

        Empty or absent blobs read as an empty string.
        """
        if not blob:
            return ""
        payload = self.decrypt(blob)
        if not isinstance(payload, dict):
            return ""
        value = payload.get(field)
        return value if isinstance(value, str) else ""
