"""Sage 200 Evolution mapping cells.

Evolution identifies customers, suppliers and stock items by account or
item code, so codes are mandatory here.
"""

from core.models import ConnectionType, DocType
from document_mapper.documents import (
    CreditNoteDocument,
    DocumentLine,
    InvoiceDocument,
    PartyDocument,
    StockJournalDocument,
)
from document_mapper.mapper import amount, iso_date, quantity, register_mapper, require


PROVIDER = ConnectionType.EVOLUTION


def _line(line: DocumentLine) -> dict:
    return {
        "StockCode": require(line.sku, "a stock code on every line", PROVIDER),
        "Description": line.label,
        "Quantity": quantity(line.qty),
        "UnitPriceExcl": amount(line.unit_price),
        "LineDiscountPercent": amount(line.discount_pct),
        "TaxRate": amount(line.tax_rate),
        "LineTotalExcl": amount(line.net_amount),
    }


@register_mapper(DocType.INVOICE, PROVIDER)
def map_invoice(doc: InvoiceDocument, doc_id: str) -> dict:
    return {
        "CustomerAccountCode": require(doc.customer.code, "customer.code", PROVIDER),
        "InvoiceNumber": doc.invoice_no,
        "OrderNumber": doc.order_no,
        "InvoiceDate": iso_date(doc.invoice_date),
        "DueDate": iso_date(doc.due_date),
        "ExternalOrderNo": doc_id,
        "Currency": doc.currency,
        "Lines": [_line(line) for line in doc.lines],
        "TotalExcl": amount(doc.subtotal),
        "TotalTax": amount(doc.tax_amount),
        "TotalIncl": amount(doc.total),
    }


@register_mapper(DocType.CREDIT_NOTE, PROVIDER)
def map_credit_note(doc: CreditNoteDocument, doc_id: str) -> dict:
    return {
        "CustomerAccountCode": require(doc.customer.code, "customer.code", PROVIDER),
        "CreditNoteNumber": doc.credit_no,
        "InvoiceNumber": doc.invoice_no,
        "CreditNoteDate": iso_date(doc.credit_date),
        "ExternalOrderNo": doc_id,
        "Message": doc.reason,
        "Currency": doc.currency,
        "Lines": [_line(line) for line in doc.lines],
        "TotalExcl": amount(doc.subtotal),
        "TotalTax": amount(doc.tax_amount),
        "TotalIncl": amount(doc.total),
    }


@register_mapper(DocType.STOCK_JOURNAL, PROVIDER)
def map_stock_journal(doc: StockJournalDocument, doc_id: str) -> dict:
    return {
        "Reference": doc.journal_no,
        "Date": iso_date(doc.journal_date),
        "Description": doc.notes or doc.reason_code,
        "Transactions": [
            {
                "ItemCode": line.sku,
                "WarehouseCode": line.warehouse_code,
                "Operation": "Increase" if line.qty > 0 else "Decrease",
                "Quantity": quantity(abs(line.qty)),
                "UnitCost": amount(line.unit_cost) if line.unit_cost is not None else None,
                "ReasonCode": doc.reason_code,
            }
            for line in doc.lines
        ],
    }


def _account(doc: PartyDocument) -> dict:
    account = {
        "Code": require(doc.code, "an account code", PROVIDER),
        "Description": doc.name,
        "ContactPerson": doc.contact_person,
        "EmailAddress": doc.email,
        "Telephone": doc.phone,
        "TaxNumber": doc.vat_no,
        "Currency": doc.currency,
    }
    if doc.address:
        account["PostalAddress"] = [
            value for value in (
                doc.address.line1,
                doc.address.line2,
                doc.address.city,
                doc.address.postal_code,
                doc.address.country,
            ) if value
        ]
    return {k: v for k, v in account.items() if v is not None}


@register_mapper(DocType.CUSTOMER, PROVIDER)
def map_customer(doc: PartyDocument, doc_id: str) -> dict:
    return _account(doc)


@register_mapper(DocType.SUPPLIER, PROVIDER)
def map_supplier(doc: PartyDocument, doc_id: str) -> dict:
    return _account(doc)
