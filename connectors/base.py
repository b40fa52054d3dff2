"""Abstract Accounting Connector Interface.

This module defines the interface every provider connector implements.
It is provider-agnostic: no Xero, Sage or SAP specifics here.

Connectors:
1. Authenticate with their provider using the connection's credentials
2. Post an already-mapped payload for a document type
3. Return the provider's id for the created record

Key Design Principles:
- The sync dispatcher depends ONLY on this interface
- Payload mapping happens before the connector (document_mapper)
- Provider-specific implementations live in connectors.providers
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type, Union

from core.models import ConnectionType, DocType


@dataclass
class ConnectorConfig:
    """Everything a connector needs to reach one tenant's provider account."""
    connection_type: str
    connection_id: Optional[str] = None
    credentials: Dict[str, Any] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)  # Non-secret connection config
    timeout_seconds: float = 30

    @property
    def base_url(self) -> Optional[str]:
        return self.settings.get("base_url") or self.credentials.get("base_url")


@dataclass(frozen=True)
class PostingResult:
    """Outcome of a successful post."""
    external_ref: str
    response: Dict[str, Any] = field(default_factory=dict)


class AccountingConnector(ABC):
    """Abstract base class for accounting system connectors.

    Lifecycle:
        connector = create_connector(config)
        try:
            result = await connector.post_document("invoice", payload)
        finally:
            await connector.close()
    """

    connection_type: ConnectionType

    def __init__(self, config: ConnectorConfig):
        self.config = config

    @abstractmethod
    async def post_document(self, doc_type: Union[str, DocType], payload: Dict[str, Any]) -> PostingResult:
        """Create the document at the provider.

        Raises:
            AuthError: Credentials rejected
            ExternalCallError: Network failure, timeout, throttling or provider error
            ConfigurationError: Connection config lacks a required setting
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass


# =============================================================================
# Connector Registry
# =============================================================================

_connector_registry: Dict[str, Type[AccountingConnector]] = {}


def register_connector(connection_type: Union[str, ConnectionType]):
    """Decorator to register a connector implementation."""
    key = ConnectionType(connection_type)

    def decorator(cls):
        cls.connection_type = key
        _connector_registry[key.value] = cls
        return cls
    return decorator


def create_connector(config: ConnectorConfig) -> AccountingConnector:
    """Create a connector instance from configuration.

    Raises:
        ValueError: If connection_type is not registered
    """
    connection_type = str(getattr(config.connection_type, "value", config.connection_type)).lower()

    if connection_type not in _connector_registry:
        available = list(_connector_registry.keys())
        raise ValueError(
            f"Unknown connection type: {connection_type}. "
            f"Available: {available}"
        )

    connector_class = _connector_registry[connection_type]
    return connector_class(config)


def list_available_connectors() -> List[str]:
    """List all registered connection types."""
    return list(_connector_registry.keys())
