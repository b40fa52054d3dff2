"""Service wiring shared by the API, the Temporal activity and scripts."""

from dataclasses import dataclass
from typing import Optional

from core.config import Settings, get_settings
from core.db import init_db
from core.errors import ConfigurationError
from core.security.credential_store import SqliteCredentialStore
from core.security.encryption import CredentialEncryption
from integrations.registry import ConnectionRegistry
from posting_queue.queue import PostingQueue
from sync_dispatcher.dispatcher import ConnectorFactory, SyncDispatcher


@dataclass
class PostingServices:
    settings: Settings
    registry: ConnectionRegistry
    queue: PostingQueue
    dispatcher: SyncDispatcher


def build_services(
    settings: Optional[Settings] = None,
    connector_factory: Optional[ConnectorFactory] = None,
    initialize: bool = True,
) -> PostingServices:
    """Build registry, queue and dispatcher over the configured database.

    Raises:
        ConfigurationError: CREDENTIALS_ENCRYPTION_KEY is missing or invalid
    """
    settings = settings or get_settings()
    if not settings.credentials_encryption_key:
        raise ConfigurationError(
            "CREDENTIALS_ENCRYPTION_KEY is not set. "
            "Generate one with core.security.generate_encryption_key()"
        )

    if initialize:
        init_db(settings.db_path)

    credentials = SqliteCredentialStore(
        CredentialEncryption(settings.credentials_encryption_key),
        settings.db_path,
    )
    registry = ConnectionRegistry(settings.db_path, credentials)
    queue = PostingQueue(settings.db_path, settings=settings)
    dispatcher = SyncDispatcher(
        queue,
        registry,
        connector_factory=connector_factory,
        settings=settings,
    )
    return PostingServices(settings=settings, registry=registry, queue=queue, dispatcher=dispatcher)
