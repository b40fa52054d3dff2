"""Security module - credential encryption and storage."""

from core.security.encryption import (
    CredentialEncryption,
    EncryptedCredentials,
    generate_encryption_key,
)
from core.security.credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    SqliteCredentialStore,
)

__all__ = [
    "CredentialEncryption",
    "EncryptedCredentials",
    "generate_encryption_key",
    "CredentialStore",
    "InMemoryCredentialStore",
    "SqliteCredentialStore",
]
