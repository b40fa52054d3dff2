"""QuickBooks Online mapping cells.

Transactions reference the customer by QuickBooks id, so the snapshot's
customer must carry external_id. QuickBooks Online has no stock journal
entity; stock_journal is not registered.
"""

from core.models import ConnectionType, DocType
from document_mapper.documents import (
    CreditNoteDocument,
    DocumentLine,
    InvoiceDocument,
    PartyDocument,
)
from document_mapper.mapper import amount, iso_date, quantity, register_mapper, require


PROVIDER = ConnectionType.QUICKBOOKS


def _sales_line(line: DocumentLine) -> dict:
    detail = {
        "Qty": quantity(line.qty),
        "UnitPrice": amount(line.unit_price),
        "TaxCodeRef": {"value": "TAX" if line.tax_rate else "NON"},
    }
    if line.sku:
        detail["ItemRef"] = {"name": line.sku}
    return {
        "DetailType": "SalesItemLineDetail",
        "Amount": amount(line.net_amount),
        "Description": line.label,
        "SalesItemLineDetail": detail,
    }


@register_mapper(DocType.INVOICE, PROVIDER)
def map_invoice(doc: InvoiceDocument, doc_id: str) -> dict:
    body = {
        "DocNumber": doc.invoice_no,
        "TxnDate": iso_date(doc.invoice_date),
        "CustomerRef": {
            "value": require(doc.customer.external_id, "customer.externalId", PROVIDER),
            "name": doc.customer.name,
        },
        "CurrencyRef": {"value": doc.currency},
        "Line": [_sales_line(line) for line in doc.lines],
        "TxnTaxDetail": {"TotalTax": amount(doc.tax_amount)},
        "PrivateNote": doc.notes or f"Posted from {doc_id}",
    }
    if doc.due_date:
        body["DueDate"] = iso_date(doc.due_date)
    return body


@register_mapper(DocType.CREDIT_NOTE, PROVIDER)
def map_credit_note(doc: CreditNoteDocument, doc_id: str) -> dict:
    return {
        "DocNumber": doc.credit_no,
        "TxnDate": iso_date(doc.credit_date),
        "CustomerRef": {
            "value": require(doc.customer.external_id, "customer.externalId", PROVIDER),
            "name": doc.customer.name,
        },
        "CurrencyRef": {"value": doc.currency},
        "Line": [_sales_line(line) for line in doc.lines],
        "TxnTaxDetail": {"TotalTax": amount(doc.tax_amount)},
        "PrivateNote": doc.reason or doc.invoice_no or f"Posted from {doc_id}",
    }


def _party(doc: PartyDocument) -> dict:
    body = {
        "DisplayName": doc.name,
        "CompanyName": doc.name,
        "CurrencyRef": {"value": doc.currency},
    }
    if doc.email:
        body["PrimaryEmailAddr"] = {"Address": doc.email}
    if doc.phone:
        body["PrimaryPhone"] = {"FreeFormNumber": doc.phone}
    if doc.address:
        body["BillAddr"] = {
            k: v for k, v in {
                "Line1": doc.address.line1,
                "Line2": doc.address.line2,
                "City": doc.address.city,
                "PostalCode": doc.address.postal_code,
                "Country": doc.address.country,
            }.items() if v is not None
        }
    return body


@register_mapper(DocType.CUSTOMER, PROVIDER)
def map_customer(doc: PartyDocument, doc_id: str) -> dict:
    body = _party(doc)
    if doc.vat_no:
        body["ResaleNum"] = doc.vat_no
    return body


@register_mapper(DocType.SUPPLIER, PROVIDER)
def map_supplier(doc: PartyDocument, doc_id: str) -> dict:
    body = _party(doc)
    if doc.vat_no:
        body["TaxIdentifier"] = doc.vat_no
    if doc.code:
        body["AcctNum"] = doc.code
    return body
