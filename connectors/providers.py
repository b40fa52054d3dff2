"""Provider connectors.

Each provider is a thin HTTP connector described by:
- default_base_url: API root (None when every tenant has its own server)
- endpoints: doc type -> path the mapped payload is POSTed to
- ref_fields: doc type -> dotted path of the created record's id in the response
- auth_headers(): headers built from the connection's credentials
"""

import base64
from typing import Any, Dict, Optional, Union

from connectors.base import AccountingConnector, ConnectorConfig, PostingResult, register_connector
from connectors.http_client import ProviderHttpClient
from core.errors import AuthError, ConfigurationError, ExternalCallError
from core.models import ConnectionType, DocType
from core.observability.logging import get_logger


logger = get_logger(__name__)


def extract_field(body: Any, path: str) -> Optional[str]:
    """Follow a dotted path ("Invoices.0.InvoiceID") through dicts and lists."""
    current = body
    for part in path.split("."):
        if isinstance(current, list):
            if not part.isdigit() or int(part) >= len(current):
                return None
            current = current[int(part)]
        elif isinstance(current, dict):
            current = current.get(part)
        else:
            return None
        if current is None:
            return None
    return str(current) if current not in ("", None) else None


class HttpAccountingConnector(AccountingConnector):
    """POST the mapped payload to a per-doc-type endpoint and read back the id."""

    default_base_url: Optional[str] = None
    endpoints: Dict[DocType, str] = {}
    ref_fields: Dict[DocType, str] = {}

    def __init__(self, config: ConnectorConfig):
        super().__init__(config)
        self._client: Optional[ProviderHttpClient] = None

    # -------------------------------------------------------------------------
    # Provider hooks
    # -------------------------------------------------------------------------

    def base_url(self) -> str:
        url = self.config.base_url or self.default_base_url
        if not url:
            raise ConfigurationError(f"{self.connection_type.value} connection has no base_url configured")
        return url

    def auth_headers(self) -> Dict[str, str]:
        token = self.config.credentials.get("access_token")
        if not token:
            raise AuthError(f"{self.connection_type.value} connection has no access token")
        return {"Authorization": f"Bearer {token}"}

    def endpoint(self, doc_type: DocType, payload: Dict[str, Any]) -> str:
        return self.endpoints[doc_type]

    def prepare_body(self, doc_type: DocType, payload: Dict[str, Any]) -> Dict[str, Any]:
        return payload

    async def before_post(self, client: ProviderHttpClient) -> None:
        """Called once per client before the first post."""
        pass

    # -------------------------------------------------------------------------
    # AccountingConnector
    # -------------------------------------------------------------------------

    async def _get_client(self) -> ProviderHttpClient:
        if self._client is None:
            client = ProviderHttpClient(
                self.base_url(),
                headers=self.auth_headers(),
                timeout_seconds=self.config.timeout_seconds,
            )
            try:
                await self.before_post(client)
            except BaseException:
                await client.close()
                raise
            self._client = client
        return self._client

    async def post_document(self, doc_type: Union[str, DocType], payload: Dict[str, Any]) -> PostingResult:
        doc_type = DocType(doc_type)
        if doc_type not in self.endpoints:
            raise ConfigurationError(
                f"{self.connection_type.value} connector has no endpoint for {doc_type.value}"
            )

        client = await self._get_client()
        path = self.endpoint(doc_type, payload)
        response = await client.request("POST", path, data=self.prepare_body(doc_type, payload))

        ref_field = self.ref_fields.get(doc_type, "id")
        external_ref = extract_field(response, ref_field)
        if not external_ref:
            raise ExternalCallError(
                f"{self.connection_type.value} response has no '{ref_field}'",
                response_body=str(response)[:500],
            )

        logger.debug(
            f"Posted {doc_type.value} to {self.connection_type.value}",
            extra_fields={"path": path, "external_ref": external_ref},
        )
        return PostingResult(external_ref=external_ref, response=response)

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None


# =============================================================================
# Providers
# =============================================================================

@register_connector(ConnectionType.XERO)
class XeroConnector(HttpAccountingConnector):
    """Xero Accounting API. Requests are scoped by the xero-tenant-id header."""

    default_base_url = "https://api.xero.com/api.xro/2.0"
    endpoints = {
        DocType.INVOICE: "/Invoices",
        DocType.CREDIT_NOTE: "/CreditNotes",
        DocType.CUSTOMER: "/Contacts",
        DocType.SUPPLIER: "/Contacts",
    }
    ref_fields = {
        DocType.INVOICE: "Invoices.0.InvoiceID",
        DocType.CREDIT_NOTE: "CreditNotes.0.CreditNoteID",
        DocType.CUSTOMER: "Contacts.0.ContactID",
        DocType.SUPPLIER: "Contacts.0.ContactID",
    }

    def auth_headers(self) -> Dict[str, str]:
        headers = super().auth_headers()
        xero_tenant = self.config.settings.get("xero_tenant_id") or self.config.credentials.get("xero_tenant_id")
        if not xero_tenant:
            raise ConfigurationError("xero connection has no xero_tenant_id configured")
        headers["xero-tenant-id"] = xero_tenant
        return headers


@register_connector(ConnectionType.SAGE)
class SageConnector(HttpAccountingConnector):
    """Sage Business Cloud Accounting v3.1."""

    default_base_url = "https://api.accounting.sage.com/v3.1"
    endpoints = {
        DocType.INVOICE: "/sales_invoices",
        DocType.CREDIT_NOTE: "/sales_credit_notes",
        DocType.STOCK_JOURNAL: "/stock_movements",
        DocType.CUSTOMER: "/contacts",
        DocType.SUPPLIER: "/contacts",
    }

    def auth_headers(self) -> Dict[str, str]:
        headers = super().auth_headers()
        business_id = self.config.settings.get("business_id")
        if business_id:
            headers["X-Business"] = business_id
        return headers


@register_connector(ConnectionType.QUICKBOOKS)
class QuickBooksConnector(HttpAccountingConnector):
    """QuickBooks Online Accounting API, company-scoped by realm id."""

    default_base_url = "https://quickbooks.api.intuit.com/v3/company"
    endpoints = {
        DocType.INVOICE: "/invoice",
        DocType.CREDIT_NOTE: "/creditmemo",
        DocType.CUSTOMER: "/customer",
        DocType.SUPPLIER: "/vendor",
    }
    ref_fields = {
        DocType.INVOICE: "Invoice.Id",
        DocType.CREDIT_NOTE: "CreditMemo.Id",
        DocType.CUSTOMER: "Customer.Id",
        DocType.SUPPLIER: "Vendor.Id",
    }

    def base_url(self) -> str:
        realm_id = self.config.settings.get("realm_id") or self.config.credentials.get("realm_id")
        if not realm_id:
            raise ConfigurationError("quickbooks connection has no realm_id configured")
        return f"{super().base_url().rstrip('/')}/{realm_id}"


@register_connector(ConnectionType.EVOLUTION)
class EvolutionConnector(HttpAccountingConnector):
    """Sage 200 Evolution REST gateway hosted by the tenant. Basic auth."""

    endpoints = {
        DocType.INVOICE: "/invoices",
        DocType.CREDIT_NOTE: "/creditnotes",
        DocType.STOCK_JOURNAL: "/inventorytransactions",
        DocType.CUSTOMER: "/customers",
        DocType.SUPPLIER: "/suppliers",
    }
    ref_fields = {
        DocType.INVOICE: "DocumentID",
        DocType.CREDIT_NOTE: "DocumentID",
        DocType.STOCK_JOURNAL: "TransactionID",
        DocType.CUSTOMER: "DCLink",
        DocType.SUPPLIER: "DCLink",
    }

    def auth_headers(self) -> Dict[str, str]:
        username = self.config.credentials.get("username")
        password = self.config.credentials.get("password")
        if not username or not password:
            raise AuthError("evolution connection has no username/password")
        token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}


@register_connector(ConnectionType.SAP_B1)
class SapB1Connector(HttpAccountingConnector):
    """SAP Business One Service Layer.

    Authenticates with POST /Login; the B1SESSION cookie is kept by the
    client's session for the following posts.
    """

    endpoints = {
        DocType.INVOICE: "/Invoices",
        DocType.CREDIT_NOTE: "/CreditNotes",
        DocType.STOCK_JOURNAL: "/InventoryGenEntries",
        DocType.CUSTOMER: "/BusinessPartners",
        DocType.SUPPLIER: "/BusinessPartners",
    }
    ref_fields = {
        DocType.INVOICE: "DocEntry",
        DocType.CREDIT_NOTE: "DocEntry",
        DocType.STOCK_JOURNAL: "DocEntry",
        DocType.CUSTOMER: "CardCode",
        DocType.SUPPLIER: "CardCode",
    }

    def auth_headers(self) -> Dict[str, str]:
        return {}

    async def before_post(self, client: ProviderHttpClient) -> None:
        creds = self.config.credentials
        company_db = self.config.settings.get("company_db") or creds.get("company_db")
        if not creds.get("username") or not creds.get("password") or not company_db:
            raise AuthError("sap_b1 connection needs username, password and company_db")
        await client.request("POST", "/Login", data={
            "CompanyDB": company_db,
            "UserName": creds["username"],
            "Password": creds["password"],
        })

    def endpoint(self, doc_type: DocType, payload: Dict[str, Any]) -> str:
        # Imported here: the mapper package registers all cells on import
        from document_mapper.sap_b1 import DIRECTION_FIELD

        if doc_type == DocType.STOCK_JOURNAL and payload.get(DIRECTION_FIELD) == "OUT":
            return "/InventoryGenExits"
        return super().endpoint(doc_type, payload)

    def prepare_body(self, doc_type: DocType, payload: Dict[str, Any]) -> Dict[str, Any]:
        from document_mapper.sap_b1 import DIRECTION_FIELD

        return {k: v for k, v in payload.items() if k != DIRECTION_FIELD}


@register_connector(ConnectionType.CUSTOM_API)
class CustomApiConnector(HttpAccountingConnector):
    """Tenant-operated endpoint receiving canonical JSON.

    Config:
        base_url: required
        endpoints: optional doc type -> path overrides (default /documents/<doc type>)
        ref_field: response field with the created id (default "id")
    Credentials (optional):
        api_key: sent as X-Api-Key
    """

    endpoints = {doc_type: f"/documents/{doc_type.value}" for doc_type in DocType}

    def auth_headers(self) -> Dict[str, str]:
        api_key = self.config.credentials.get("api_key")
        return {"X-Api-Key": api_key} if api_key else {}

    def endpoint(self, doc_type: DocType, payload: Dict[str, Any]) -> str:
        overrides = self.config.settings.get("endpoints") or {}
        return overrides.get(doc_type.value) or super().endpoint(doc_type, payload)

    @property
    def ref_fields(self) -> Dict[DocType, str]:
        ref_field = self.config.settings.get("ref_field", "id")
        return {doc_type: ref_field for doc_type in DocType}
