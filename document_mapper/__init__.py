"""Outbound Document Mapper - canonical documents to provider payloads.

Mapping cells live in one module per provider and register themselves on
import. To support a new (doc type, provider) pair:
1. Add a function to the provider's module
2. Decorate it with @register_mapper(doc_type, connection_type)
"""

from document_mapper.documents import (
    CreditNoteDocument,
    InvoiceDocument,
    PartyDocument,
    StockJournalDocument,
)
from document_mapper.mapper import (
    DocumentMapper,
    ExternalPayload,
    register_mapper,
    supported_pairs,
)

# Register mapping cells
from document_mapper import custom_api, evolution, quickbooks, sage, sap_b1, xero  # noqa: F401

__all__ = [
    "CreditNoteDocument",
    "DocumentMapper",
    "ExternalPayload",
    "InvoiceDocument",
    "PartyDocument",
    "StockJournalDocument",
    "register_mapper",
    "supported_pairs",
]
