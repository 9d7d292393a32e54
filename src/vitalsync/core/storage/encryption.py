"""Fernet encryption for archived device payloads.

Typed metric columns stay in the clear so window queries can filter and
aggregate them; the raw JSON a device pushed is archived encrypted.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts JSON payloads with a Fernet key.

    Usage::

        encryptor = FieldEncryptor(FieldEncryptor.generate_key())
        token = encryptor.encrypt({"steps": 8500})
        encryptor.decrypt(token)  # {"steps": 8500}
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Raises:
            EncryptionError: If the key is empty or not a valid Fernet key.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str:
        """Serialize ``data`` to compact JSON and encrypt it.

        ``None`` encrypts to the empty string so absent payloads stay NULL-like.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Payload is not JSON-serializable: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str | None) -> Any:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token was not produced with this key.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        return json.loads(plaintext)

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")
