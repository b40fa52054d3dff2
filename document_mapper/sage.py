"""Sage Business Cloud Accounting mapping cells."""

from core.models import ConnectionType, DocType
from document_mapper.documents import (
    CreditNoteDocument,
    DocumentLine,
    InvoiceDocument,
    PartyDocument,
    StockJournalDocument,
)
from document_mapper.mapper import amount, iso_date, quantity, register_mapper, require


PROVIDER = ConnectionType.SAGE


def _line(line: DocumentLine) -> dict:
    body = {
        "description": line.label,
        "quantity": quantity(line.qty),
        "unit_price": amount(line.unit_price),
        "discount_percentage": amount(line.discount_pct),
        "net_amount": amount(line.net_amount),
        "tax_amount": amount(line.tax_amount),
    }
    if line.sku:
        body["product_code"] = line.sku
    if line.account_code:
        body["ledger_account_id"] = line.account_code
    return body


@register_mapper(DocType.INVOICE, PROVIDER)
def map_invoice(doc: InvoiceDocument, doc_id: str) -> dict:
    return {
        "sales_invoice": {
            "contact_id": require(doc.customer.external_id, "customer.externalId", PROVIDER),
            "invoice_number_prefix": "",
            "reference": doc.invoice_no,
            "date": iso_date(doc.invoice_date),
            "due_date": iso_date(doc.due_date),
            "currency_id": doc.currency,
            "notes": doc.notes,
            "invoice_lines": [_line(line) for line in doc.lines],
            "net_amount": amount(doc.subtotal),
            "tax_amount": amount(doc.tax_amount),
            "total_amount": amount(doc.total),
        }
    }


@register_mapper(DocType.CREDIT_NOTE, PROVIDER)
def map_credit_note(doc: CreditNoteDocument, doc_id: str) -> dict:
    return {
        "sales_credit_note": {
            "contact_id": require(doc.customer.external_id, "customer.externalId", PROVIDER),
            "reference": doc.credit_no,
            "original_invoice_number": doc.invoice_no,
            "date": iso_date(doc.credit_date),
            "currency_id": doc.currency,
            "notes": doc.reason,
            "credit_note_lines": [_line(line) for line in doc.lines],
            "net_amount": amount(doc.subtotal),
            "tax_amount": amount(doc.tax_amount),
            "total_amount": amount(doc.total),
        }
    }


@register_mapper(DocType.STOCK_JOURNAL, PROVIDER)
def map_stock_journal(doc: StockJournalDocument, doc_id: str) -> dict:
    return {
        "stock_movements": [
            {
                "product_code": line.sku,
                "date": iso_date(doc.journal_date),
                "quantity": quantity(line.qty),
                "cost_price": amount(line.unit_cost) if line.unit_cost is not None else None,
                "details": f"{doc.journal_no} {doc.reason_code or ''}".strip(),
            }
            for line in doc.lines
        ]
    }


def _contact(doc: PartyDocument, contact_type: str) -> dict:
    contact = {
        "name": doc.name,
        "contact_type_ids": [contact_type],
        "reference": doc.code,
        "tax_number": doc.vat_no,
        "currency_id": doc.currency,
        "email": doc.email,
        "telephone": doc.phone,
    }
    if doc.address:
        contact["main_address"] = {
            "address_line_1": doc.address.line1,
            "address_line_2": doc.address.line2,
            "city": doc.address.city,
            "postal_code": doc.address.postal_code,
            "country_id": doc.address.country,
        }
    return {"contact": {k: v for k, v in contact.items() if v is not None}}


@register_mapper(DocType.CUSTOMER, PROVIDER)
def map_customer(doc: PartyDocument, doc_id: str) -> dict:
    return _contact(doc, "CUSTOMER")


@register_mapper(DocType.SUPPLIER, PROVIDER)
def map_supplier(doc: PartyDocument, doc_id: str) -> dict:
    return _contact(doc, "VENDOR")
