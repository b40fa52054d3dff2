"""Credential storage backends.

Stores encrypted provider credentials per integration connection:
- InMemoryCredentialStore: For development/testing
- SqliteCredentialStore: Shared with the queue database, survives restarts

Plaintext never touches the backend; encryption happens in the store
before the blob is written.
"""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

from core.db import read_connection, write_transaction
from core.errors import ConfigurationError
from core.security.encryption import CredentialEncryption, EncryptedCredentials


class CredentialStore(ABC):
    """Abstract base class for credential storage."""

    def __init__(self, encryption: CredentialEncryption):
        self._encryption = encryption

    def save(self, connection_id: str, credentials: Dict[str, Any]) -> None:
        """Encrypt and store credentials for a connection (replaces existing)."""
        blob = self._encryption.encrypt(credentials, binding=connection_id)
        self._put(connection_id, blob)

    def load(self, connection_id: str) -> Optional[Dict[str, Any]]:
        """Load and decrypt credentials, or None if none are stored.

        Raises:
            ConfigurationError: The stored blob cannot be decrypted (key rotated, data tampered)
        """
        blob = self._get(connection_id)
        if blob is None:
            return None
        try:
            return self._encryption.decrypt(blob, binding=connection_id)
        except ValueError as e:
            raise ConfigurationError(f"Stored credentials cannot be decrypted; reconnect required ({e})") from e

    def has(self, connection_id: str) -> bool:
        return self._get(connection_id) is not None

    @abstractmethod
    def _put(self, connection_id: str, blob: EncryptedCredentials) -> None:
        pass

    @abstractmethod
    def _get(self, connection_id: str) -> Optional[EncryptedCredentials]:
        pass

    @abstractmethod
    def delete(self, connection_id: str) -> bool:
        """Delete stored credentials. Returns True if something was removed."""
        pass


class InMemoryCredentialStore(CredentialStore):
    """In-memory credential storage for development/testing.

    WARNING: Credentials are lost on restart. Use only for development.
    """

    def __init__(self, encryption: CredentialEncryption):
        super().__init__(encryption)
        self._blobs: Dict[str, EncryptedCredentials] = {}
        self._lock = threading.Lock()

    def _put(self, connection_id: str, blob: EncryptedCredentials) -> None:
        with self._lock:
            self._blobs[connection_id] = blob

    def _get(self, connection_id: str) -> Optional[EncryptedCredentials]:
        with self._lock:
            return self._blobs.get(connection_id)

    def delete(self, connection_id: str) -> bool:
        with self._lock:
            return self._blobs.pop(connection_id, None) is not None


class SqliteCredentialStore(CredentialStore):
    """Credential storage in the `integration_credentials` table."""

    def __init__(self, encryption: CredentialEncryption, db_path: Union[str, Path]):
        super().__init__(encryption)
        self.db_path = db_path

    def _put(self, connection_id: str, blob: EncryptedCredentials) -> None:
        with write_transaction(self.db_path) as conn:
            conn.execute("""
                INSERT INTO integration_credentials
                    (connection_id, ciphertext, nonce, key_version, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(connection_id) DO UPDATE SET
                    ciphertext = excluded.ciphertext,
                    nonce = excluded.nonce,
                    key_version = excluded.key_version,
                    created_at = excluded.created_at
            """, (connection_id, blob.ciphertext, blob.nonce, blob.key_version, blob.created_at))

    def _get(self, connection_id: str) -> Optional[EncryptedCredentials]:
        with read_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM integration_credentials WHERE connection_id = ?",
                (connection_id,),
            ).fetchone()
        if row is None:
            return None
        return EncryptedCredentials(
            ciphertext=row["ciphertext"],
            nonce=row["nonce"],
            created_at=row["created_at"],
            key_version=row["key_version"],
        )

    def delete(self, connection_id: str) -> bool:
        with write_transaction(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM integration_credentials WHERE connection_id = ?",
                (connection_id,),
            )
            return cursor.rowcount > 0
