"""Credential encryption using AES-GCM.

Provides encryption for integration credentials (API keys, OAuth tokens) at
rest. Uses AES-256-GCM for authenticated encryption.
"""

import base64
import json
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.errors import ConfigurationError


def generate_encryption_key() -> str:
    """Generate a new 256-bit encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for AES-256
    """
    key = secrets.token_bytes(32)
    return base64.b64encode(key).decode('utf-8')


@dataclass
class EncryptedCredentials:
    """Encrypted credential blob with metadata."""
    ciphertext: str  # Base64-encoded encrypted data (GCM tag appended)
    nonce: str       # Base64-encoded 96-bit nonce
    created_at: str  # ISO timestamp
    key_version: int = 1  # For key rotation support

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ciphertext": self.ciphertext,
            "nonce": self.nonce,
            "created_at": self.created_at,
            "key_version": self.key_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedCredentials":
        return cls(
            ciphertext=data["ciphertext"],
            nonce=data["nonce"],
            created_at=data["created_at"],
            key_version=data.get("key_version", 1),
        )


class CredentialEncryption:
    """AES-256-GCM encryption for integration credentials.

    Security properties:
    - Confidentiality: AES-256 encryption
    - Integrity: GCM authentication tag
    - Uniqueness: Random 96-bit nonce per encryption
    - Binding: the connection id is authenticated data, so a blob copied to
      another connection does not decrypt

    Usage:
        enc = CredentialEncryption(generate_encryption_key())
        blob = enc.encrypt({"access_token": "..."}, binding="conn-id")
        creds = enc.decrypt(blob, binding="conn-id")
    """

    def __init__(self, encryption_key: str):
        """Initialize with base64-encoded encryption key.

        Args:
            encryption_key: Base64-encoded 32-byte key (from generate_encryption_key())
        """
        try:
            self._key = base64.b64decode(encryption_key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid encryption key: {e}")
        if len(self._key) != 32:
            raise ConfigurationError("Encryption key must be 32 bytes (256 bits)")

        self._aesgcm = AESGCM(self._key)

    def encrypt(
        self,
        data: Dict[str, Any],
        binding: str,
        key_version: int = 1,
    ) -> EncryptedCredentials:
        """Encrypt a credentials dictionary.

        Args:
            data: Credentials (api keys, tokens, etc.)
            binding: Identifier authenticated alongside the data
            key_version: Key version for rotation support
        """
        plaintext = json.dumps(data).encode('utf-8')
        nonce = os.urandom(12)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext, binding.encode('utf-8'))

        return EncryptedCredentials(
            ciphertext=base64.b64encode(ciphertext).decode('utf-8'),
            nonce=base64.b64encode(nonce).decode('utf-8'),
            created_at=datetime.now(timezone.utc).isoformat(),
            key_version=key_version,
        )

    def decrypt(self, encrypted: EncryptedCredentials, binding: str) -> Dict[str, Any]:
        """Decrypt a credentials blob.

        Raises:
            ValueError: If decryption fails (wrong key, tampered data, wrong binding)
        """
        try:
            ciphertext = base64.b64decode(encrypted.ciphertext)
            nonce = base64.b64decode(encrypted.nonce)
            plaintext = self._aesgcm.decrypt(nonce, ciphertext, binding.encode('utf-8'))
        except (InvalidTag, ValueError) as e:
            raise ValueError(f"Credential decryption failed: {e!r}")

        return json.loads(plaintext.decode('utf-8'))
