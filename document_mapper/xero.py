"""Xero mapping cells (Accounting API).

Xero has no stock journal resource, so stock_journal is not registered
for xero and such items fail with UnsupportedMappingError.
"""

from core.models import ConnectionType, DocType
from document_mapper.documents import (
    CreditNoteDocument,
    DocumentLine,
    InvoiceDocument,
    PartyDocument,
    PartyRef,
)
from document_mapper.mapper import amount, iso_date, quantity, register_mapper


def _contact(party: PartyRef) -> dict:
    if party.external_id:
        return {"ContactID": party.external_id}
    contact = {"Name": party.name}
    if party.code:
        contact["ContactNumber"] = party.code
    return contact


def _line_item(line: DocumentLine) -> dict:
    item = {
        "Description": line.label,
        "Quantity": quantity(line.qty),
        "UnitAmount": amount(line.unit_price),
        "DiscountRate": amount(line.discount_pct),
        "LineAmount": amount(line.net_amount),
        "TaxAmount": amount(line.tax_amount),
    }
    if line.sku:
        item["ItemCode"] = line.sku
    if line.account_code:
        item["AccountCode"] = line.account_code
    return item


@register_mapper(DocType.INVOICE, ConnectionType.XERO)
def map_invoice(doc: InvoiceDocument, doc_id: str) -> dict:
    return {
        "Type": "ACCREC",
        "Contact": _contact(doc.customer),
        "InvoiceNumber": doc.invoice_no,
        "Reference": doc.order_no or doc_id,
        "Date": iso_date(doc.invoice_date),
        "DueDate": iso_date(doc.due_date),
        "CurrencyCode": doc.currency,
        "LineAmountTypes": "Exclusive",
        "LineItems": [_line_item(line) for line in doc.lines],
        "SubTotal": amount(doc.subtotal),
        "TotalTax": amount(doc.tax_amount),
        "Total": amount(doc.total),
        "Status": "AUTHORISED",
    }


@register_mapper(DocType.CREDIT_NOTE, ConnectionType.XERO)
def map_credit_note(doc: CreditNoteDocument, doc_id: str) -> dict:
    return {
        "Type": "ACCRECCREDIT",
        "Contact": _contact(doc.customer),
        "CreditNoteNumber": doc.credit_no,
        "Reference": doc.invoice_no or doc_id,
        "Date": iso_date(doc.credit_date),
        "CurrencyCode": doc.currency,
        "LineAmountTypes": "Exclusive",
        "LineItems": [_line_item(line) for line in doc.lines],
        "SubTotal": amount(doc.subtotal),
        "TotalTax": amount(doc.tax_amount),
        "Total": amount(doc.total),
        "Status": "AUTHORISED",
    }


def _contact_record(doc: PartyDocument, is_customer: bool) -> dict:
    record = {
        "Name": doc.name,
        "ContactNumber": doc.code,
        "EmailAddress": doc.email,
        "TaxNumber": doc.vat_no,
        "DefaultCurrency": doc.currency,
        "IsCustomer": is_customer,
        "IsSupplier": not is_customer,
    }
    if doc.phone:
        record["Phones"] = [{"PhoneType": "DEFAULT", "PhoneNumber": doc.phone}]
    if doc.address:
        record["Addresses"] = [{
            "AddressType": "POBOX",
            "AddressLine1": doc.address.line1,
            "AddressLine2": doc.address.line2,
            "City": doc.address.city,
            "PostalCode": doc.address.postal_code,
            "Country": doc.address.country,
        }]
    return {k: v for k, v in record.items() if v is not None}


@register_mapper(DocType.CUSTOMER, ConnectionType.XERO)
def map_customer(doc: PartyDocument, doc_id: str) -> dict:
    return _contact_record(doc, is_customer=True)


@register_mapper(DocType.SUPPLIER, ConnectionType.XERO)
def map_supplier(doc: PartyDocument, doc_id: str) -> dict:
    return _contact_record(doc, is_customer=False)
