"""Accounting Connectors - pluggable provider integrations.

This package contains the abstract connector interface and the HTTP
connectors for each supported provider (Xero, Sage, QuickBooks,
Sage Evolution, SAP Business One, custom API).

Key Design Principle:
- The sync dispatcher depends ONLY on the AccountingConnector interface
- Connectors receive payloads already mapped by document_mapper
- Failures surface as AuthError / ExternalCallError

To add a new provider:
1. Subclass HttpAccountingConnector (or AccountingConnector)
2. Register it using the @register_connector decorator
"""

from connectors.base import (
    AccountingConnector,
    ConnectorConfig,
    PostingResult,
    create_connector,
    list_available_connectors,
    register_connector,
)
from connectors.http_client import ProviderHttpClient
from connectors.providers import (
    CustomApiConnector,
    EvolutionConnector,
    HttpAccountingConnector,
    QuickBooksConnector,
    SageConnector,
    SapB1Connector,
    XeroConnector,
)

__all__ = [
    "AccountingConnector",
    "ConnectorConfig",
    "PostingResult",
    "ProviderHttpClient",
    "HttpAccountingConnector",
    "XeroConnector",
    "SageConnector",
    "QuickBooksConnector",
    "EvolutionConnector",
    "SapB1Connector",
    "CustomApiConnector",
    "create_connector",
    "register_connector",
    "list_available_connectors",
]
