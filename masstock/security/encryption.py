"""AES-256-GCM encryption for API keys handed to the worker.

Records are plain dicts of hex strings so they survive a JSON round trip
through the queue::

    {"encrypted": ..., "iv": ..., "authTag": ..., "salt": ..., "algorithm": "aes-256-gcm"}
"""

from __future__ import annotations

import logging
import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import EncryptionError

logger = logging.getLogger(__name__)

ALGORITHM = "aes-256-gcm"
IV_LENGTH = 16
TAG_LENGTH = 16
SALT_LENGTH = 64
KEY_HEX_LENGTH = 64


def generate_key() -> str:
    """Return a fresh 32-byte key as 64 hex characters."""
    return secrets.token_hex(32)


def validate_key(key: Optional[str]) -> bool:
    if not key or len(key) != KEY_HEX_LENGTH:
        return False
    try:
        bytes.fromhex(key)
    except ValueError:
        return False
    return True


class KeyEncryptor:
    def __init__(self, key: Optional[str]) -> None:
        if not key:
            raise EncryptionError("ENCRYPTION_KEY is not configured", "MISSING_ENCRYPTION_KEY")
        if not validate_key(key):
            raise EncryptionError(
                "ENCRYPTION_KEY must be 64 hexadecimal characters", "INVALID_ENCRYPTION_KEY"
            )
        self._aead = AESGCM(bytes.fromhex(key))

    def encrypt(self, plaintext: str) -> dict[str, str]:
        if not plaintext:
            raise EncryptionError("Cannot encrypt an empty value")
        iv = os.urandom(IV_LENGTH)
        salt = os.urandom(SALT_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return {
            "encrypted": sealed[:-TAG_LENGTH].hex(),
            "iv": iv.hex(),
            "authTag": sealed[-TAG_LENGTH:].hex(),
            "salt": salt.hex(),
            "algorithm": ALGORITHM,
        }

    def decrypt(self, record: dict[str, str]) -> str:
        try:
            ciphertext = bytes.fromhex(record["encrypted"])
            iv = bytes.fromhex(record["iv"])
            tag = bytes.fromhex(record["authTag"])
        except (KeyError, TypeError, ValueError):
            raise EncryptionError("Malformed encrypted record", "DECRYPTION_FAILED")
        try:
            plaintext = self._aead.decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            logger.error("Authentication tag mismatch while decrypting API key")
            raise EncryptionError("Failed to decrypt value", "DECRYPTION_FAILED")
        return plaintext.decode("utf-8")
