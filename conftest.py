"""Shared pytest fixtures: an isolated database, services and fake connectors."""

import asyncio
from typing import Any, Dict, List, Optional, Union

import pytest

from connectors.base import AccountingConnector, ConnectorConfig, PostingResult
from core.config import Settings
from core.models import DocType
from core.security.encryption import generate_encryption_key
from sync_dispatcher.factory import build_services


TENANT = "8f14e45f-ceea-467f-a0e6-5d2c1a3b7e01"
OTHER_TENANT = "c9f0f895-fb98-4b91-9d5a-0c1f2e3d4b02"

INVOICE_SNAPSHOT = {
    "invoiceNo": "INV-001",
    "invoiceDate": "2024-03-01",
    "dueDate": "2024-03-31",
    "customer": {"code": "C001", "name": "Acme Trading", "externalId": "ext-acme"},
    "lines": [
        {"sku": "SKU-1", "description": "Widget", "qty": 2, "unitPrice": "10.50", "taxRate": 15},
    ],
}


class FakeConnector(AccountingConnector):
    """Connector whose outcomes are scripted.

    Each post pops the next outcome: an exception is raised, a string is
    returned as the external ref. When the script runs out, posts succeed.
    """

    def __init__(self, outcomes: Optional[List[Union[str, Exception]]] = None, delay: float = 0):
        super().__init__(ConnectorConfig(connection_type="custom_api"))
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.posted: List[Dict[str, Any]] = []
        self.closed = 0

    async def post_document(self, doc_type, payload):
        if self.delay:
            await asyncio.sleep(self.delay)
        self.posted.append({"doc_type": DocType(doc_type), "payload": payload})
        outcome = self.outcomes.pop(0) if self.outcomes else f"EXT-{len(self.posted)}"
        if isinstance(outcome, Exception):
            raise outcome
        return PostingResult(external_ref=outcome, response={"id": outcome})

    async def close(self) -> None:
        self.closed += 1


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=tmp_path / "posting.db",
        max_attempts=3,
        retry_backoff_seconds=0,
        claim_lease_seconds=900,
        external_call_timeout_seconds=5,
        credentials_encryption_key=generate_encryption_key(),
    )


@pytest.fixture
def services(settings, connector):
    return build_services(settings, connector_factory=lambda connection, credentials, timeout: connector)


@pytest.fixture
def xero_connection(services):
    """A CONNECTED xero connection that invoices are routed through."""
    connection = services.registry.connect(
        TENANT,
        "xero",
        "Xero",
        auth_data={"access_token": "token"},
        config={"xero_tenant_id": "xt-1"},
    )
    services.registry.set_route(TENANT, "invoice", "xero")
    return connection
