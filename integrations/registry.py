"""Connection Registry.

Tracks one integration connection per (tenant, type) and owns its
credentials. Connection status decides whether the sync dispatcher may post
through it: only CONNECTED connections are dispatched.

Usage:
    registry = ConnectionRegistry(db_path, credential_store)
    conn = registry.connect("tenant-1", "xero", "Xero (AU)", auth_data={...})
    registry.set_route("tenant-1", "invoice", "xero")
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.errors import ConflictError, NotFoundError
from core.models import ConnectionStatus, ConnectionType, DocType
from core.observability.logging import get_logger, with_correlation
from core.security.credential_store import CredentialStore
from integrations import db
from integrations.models import NO_AUTH_PROVIDERS, IntegrationConnection, PostingRoute


logger = get_logger(__name__)


class ConnectionRegistry:
    """Create, re-activate, disconnect and look up integration connections."""

    def __init__(self, db_path: Union[str, Path], credentials: CredentialStore):
        self.db_path = db_path
        self.credentials = credentials

    # -------------------------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------------------------

    def connect(
        self,
        tenant_id: str,
        connection_type: Union[str, ConnectionType],
        name: str,
        auth_data: Optional[Dict[str, Any]] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> IntegrationConnection:
        """Create or re-activate the tenant's connection of this type.

        Raises:
            ConflictError: The tenant already has a CONNECTED connection of this type
            ValueError: Unknown connection type
        """
        connection_type = ConnectionType(connection_type)

        with with_correlation(tenant_id=tenant_id, connection_type=connection_type.value):
            existing = db.get_connection_by_type(self.db_path, tenant_id, connection_type.value)
            if existing and existing.status == ConnectionStatus.CONNECTED:
                raise ConflictError(_conflict_message(connection_type))

            has_credentials = (
                bool(auth_data)
                or connection_type in NO_AUTH_PROVIDERS
                or (existing is not None and self.credentials.has(existing.id))
            )
            status = ConnectionStatus.CONNECTED if has_credentials else ConnectionStatus.PENDING_AUTH

            connection, refused = db.upsert_connection(
                self.db_path,
                tenant_id,
                connection_type.value,
                name,
                status,
                config=config,
                refuse_if_status=ConnectionStatus.CONNECTED,
            )
            if refused:
                raise ConflictError(_conflict_message(connection_type))

            if auth_data:
                try:
                    self.credentials.save(connection.id, auth_data)
                except Exception:
                    # The row is already committed; it must not claim credentials it lacks
                    db.update_connection_status(
                        self.db_path,
                        connection.id,
                        ConnectionStatus.PENDING_AUTH,
                        error_message="Credentials could not be stored",
                    )
                    logger.exception(f"Storing credentials for {connection.name} failed")
                    raise

            logger.info(
                f"Connection {connection.name} is {connection.status.value}",
                extra_fields={"connection_id": connection.id, "reactivated": existing is not None},
            )
            return connection

    def disconnect(self, connection_id: str, tenant_id: Optional[str] = None) -> IntegrationConnection:
        """Set the connection to DISCONNECTED and drop its credentials.

        Idempotent: disconnecting a disconnected connection returns it unchanged.
        """
        connection = self.get_connection(connection_id, tenant_id=tenant_id)
        if connection.status == ConnectionStatus.DISCONNECTED:
            return connection

        updated = db.update_connection_status(self.db_path, connection_id, ConnectionStatus.DISCONNECTED)
        self.credentials.delete(connection_id)

        with with_correlation(tenant_id=connection.tenant_id, connection_id=connection_id):
            logger.info(f"Connection {connection.name} disconnected")
        return updated

    # -------------------------------------------------------------------------
    # Dispatcher outcomes
    # -------------------------------------------------------------------------

    def mark_error(self, connection_id: str, message: str) -> Optional[IntegrationConnection]:
        """Flip a connection to ERROR; the dispatcher stops using it until reconnect."""
        connection = db.update_connection_status(
            self.db_path, connection_id, ConnectionStatus.ERROR, error_message=message
        )
        if connection:
            with with_correlation(tenant_id=connection.tenant_id, connection_id=connection_id):
                logger.warning(f"Connection {connection.name} set to ERROR: {message}")
        return connection

    def mark_synced(self, connection_id: str) -> None:
        db.touch_last_sync(self.db_path, connection_id)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get(self, tenant_id: str) -> List[IntegrationConnection]:
        """All of the tenant's connections, regardless of status."""
        return db.list_connections(self.db_path, tenant_id)

    def get_connection(self, connection_id: str, tenant_id: Optional[str] = None) -> IntegrationConnection:
        """Fetch one connection; another tenant's connection counts as missing."""
        connection = db.get_connection(self.db_path, connection_id)
        if connection is None or (tenant_id is not None and connection.tenant_id != tenant_id):
            raise NotFoundError("Integration connection not found")
        return connection

    def load_credentials(self, connection_id: str) -> Dict[str, Any]:
        return self.credentials.load(connection_id) or {}

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def set_route(
        self,
        tenant_id: str,
        doc_type: Union[str, DocType],
        connection_type: Union[str, ConnectionType],
    ) -> PostingRoute:
        doc_type = DocType(doc_type)
        connection_type = ConnectionType(connection_type)
        return db.set_route(self.db_path, tenant_id, doc_type.value, connection_type.value)

    def list_routes(self, tenant_id: str) -> List[PostingRoute]:
        return db.list_routes(self.db_path, tenant_id)

    def resolve(
        self,
        tenant_id: str,
        doc_type: str,
        pinned_type: Optional[str] = None,
    ) -> Optional[IntegrationConnection]:
        """Connection an item posts through: the pinned type, else the tenant's route.

        Returns None when neither names a connection that exists.
        """
        connection_type = pinned_type or db.get_route(self.db_path, tenant_id, doc_type)
        if connection_type is None:
            return None
        return db.get_connection_by_type(self.db_path, tenant_id, connection_type)


def _conflict_message(connection_type: ConnectionType) -> str:
    return (
        f"An active {connection_type.value} connection already exists for this tenant; "
        "disconnect it before connecting again"
    )
