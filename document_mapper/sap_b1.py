"""SAP Business One mapping cells (Service Layer)."""

from core.errors import MappingError
from core.models import ConnectionType, DocType
from document_mapper.documents import (
    CreditNoteDocument,
    DocumentLine,
    InvoiceDocument,
    PartyDocument,
    StockJournalDocument,
)
from document_mapper.mapper import amount, iso_date, quantity, register_mapper, require


PROVIDER = ConnectionType.SAP_B1

# User-defined field telling the connector which inventory document to create
DIRECTION_FIELD = "U_Direction"


def _document_line(line: DocumentLine) -> dict:
    body = {
        "ItemCode": require(line.sku, "an item code on every line", PROVIDER),
        "ItemDescription": line.label,
        "Quantity": quantity(line.qty),
        "UnitPrice": amount(line.unit_price),
        "DiscountPercent": amount(line.discount_pct),
        "LineTotal": amount(line.net_amount),
    }
    if line.account_code:
        body["AccountCode"] = line.account_code
    return body


def _card_code(code) -> str:
    return require(code, "customer.code (CardCode)", PROVIDER)


@register_mapper(DocType.INVOICE, PROVIDER)
def map_invoice(doc: InvoiceDocument, doc_id: str) -> dict:
    return {
        "CardCode": _card_code(doc.customer.code),
        "NumAtCard": doc.invoice_no,
        "DocDate": iso_date(doc.invoice_date),
        "DocDueDate": iso_date(doc.due_date or doc.invoice_date),
        "DocCurrency": doc.currency,
        "Comments": doc.notes,
        "Reference2": doc.order_no,
        "DocumentLines": [_document_line(line) for line in doc.lines],
        "DocTotal": amount(doc.total),
    }


@register_mapper(DocType.CREDIT_NOTE, PROVIDER)
def map_credit_note(doc: CreditNoteDocument, doc_id: str) -> dict:
    return {
        "CardCode": _card_code(doc.customer.code),
        "NumAtCard": doc.credit_no,
        "DocDate": iso_date(doc.credit_date),
        "DocCurrency": doc.currency,
        "Comments": doc.reason,
        "Reference2": doc.invoice_no,
        "DocumentLines": [_document_line(line) for line in doc.lines],
        "DocTotal": amount(doc.total),
    }


@register_mapper(DocType.STOCK_JOURNAL, PROVIDER)
def map_stock_journal(doc: StockJournalDocument, doc_id: str) -> dict:
    """Goods receipt (all lines positive) or goods issue (all negative).

    A journal mixing both has to be split upstream.
    """
    if all(line.qty > 0 for line in doc.lines):
        direction = "IN"
    elif all(line.qty < 0 for line in doc.lines):
        direction = "OUT"
    else:
        raise MappingError(
            f"{PROVIDER.value} stock journal {doc.journal_no} mixes increases and decreases"
        )

    lines = []
    for line in doc.lines:
        body = {
            "ItemCode": line.sku,
            "Quantity": quantity(abs(line.qty)),
            "WarehouseCode": line.warehouse_code,
        }
        if line.unit_cost is not None:
            body["UnitPrice"] = amount(line.unit_cost)
        if doc.adjustment_account:
            body["AccountCode"] = doc.adjustment_account
        lines.append({k: v for k, v in body.items() if v is not None})

    return {
        DIRECTION_FIELD: direction,
        "DocDate": iso_date(doc.journal_date),
        "Reference2": doc.journal_no,
        "Comments": doc.notes or doc.reason_code,
        "DocumentLines": lines,
    }


def _business_partner(doc: PartyDocument, card_type: str) -> dict:
    partner = {
        "CardCode": require(doc.code, "a CardCode", PROVIDER),
        "CardName": doc.name,
        "CardType": card_type,
        "EmailAddress": doc.email,
        "Phone1": doc.phone,
        "FederalTaxID": doc.vat_no,
        "ContactPerson": doc.contact_person,
        "Currency": doc.currency,
    }
    if doc.address:
        partner["BPAddresses"] = [{
            "AddressName": "Bill To",
            "AddressType": "bo_BillTo",
            "Street": doc.address.line1,
            "Block": doc.address.line2,
            "City": doc.address.city,
            "ZipCode": doc.address.postal_code,
            "Country": doc.address.country,
        }]
    return {k: v for k, v in partner.items() if v is not None}


@register_mapper(DocType.CUSTOMER, PROVIDER)
def map_customer(doc: PartyDocument, doc_id: str) -> dict:
    return _business_partner(doc, "cCustomer")


@register_mapper(DocType.SUPPLIER, PROVIDER)
def map_supplier(doc: PartyDocument, doc_id: str) -> dict:
    return _business_partner(doc, "cSupplier")
