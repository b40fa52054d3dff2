"""Custom API mapping cells.

The tenant's own endpoint receives the canonical document as JSON wrapped
in a small envelope. Amount totals are added for the sales documents.
"""

from core.models import ConnectionType, DocType
from document_mapper.mapper import amount, register_mapper


PROVIDER = ConnectionType.CUSTOM_API


def _envelope(doc_type: DocType, doc, doc_id: str) -> dict:
    return {
        "documentType": doc_type.value,
        "documentId": doc_id,
        "data": doc.model_dump(mode="json", by_alias=True, exclude_none=True),
    }


def _with_totals(doc_type: DocType, doc, doc_id: str) -> dict:
    body = _envelope(doc_type, doc, doc_id)
    body["totals"] = {
        "subtotal": amount(doc.subtotal),
        "taxAmount": amount(doc.tax_amount),
        "total": amount(doc.total),
    }
    return body


@register_mapper(DocType.INVOICE, PROVIDER)
def map_invoice(doc, doc_id: str) -> dict:
    return _with_totals(DocType.INVOICE, doc, doc_id)


@register_mapper(DocType.CREDIT_NOTE, PROVIDER)
def map_credit_note(doc, doc_id: str) -> dict:
    return _with_totals(DocType.CREDIT_NOTE, doc, doc_id)


@register_mapper(DocType.STOCK_JOURNAL, PROVIDER)
def map_stock_journal(doc, doc_id: str) -> dict:
    return _envelope(DocType.STOCK_JOURNAL, doc, doc_id)


@register_mapper(DocType.CUSTOMER, PROVIDER)
def map_customer(doc, doc_id: str) -> dict:
    return _envelope(DocType.CUSTOMER, doc, doc_id)


@register_mapper(DocType.SUPPLIER, PROVIDER)
def map_supplier(doc, doc_id: str) -> dict:
    return _envelope(DocType.SUPPLIER, doc, doc_id)
