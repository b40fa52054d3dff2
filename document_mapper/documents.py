"""Canonical outbound documents - provider-neutral snapshot models.

The snapshot stored on a queue item is validated into one of these models
before any provider mapping runs. Field names accept both snake_case and
the camelCase the warehouse application emits.

Provider-specific field layouts are handled in the per-provider mapping
modules of this package.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


CENTS = Decimal("0.01")


# =============================================================================
# Value Parsers
# =============================================================================

def _parse_decimal(value):
    """Parse decimal from numbers or strings ("1,234.50", "(12.00)")."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not an amount")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        s = s.replace(",", "")
        if s.startswith("(") and s.endswith(")"):
            s = "-" + s[1:-1]
        try:
            return Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Cannot parse amount: {value}")
    return value


def _parse_date(value):
    """Parse date from ISO strings or datetimes."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return None
        for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%d/%m/%Y"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        try:
            # Full ISO timestamps ("2024-03-01T10:00:00Z")
            return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
        except ValueError:
            raise ValueError(f"Cannot parse date: {s}")
    return value


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
DateValue = Annotated[date, BeforeValidator(_parse_date)]


def money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all outbound documents."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# =============================================================================
# Parties
# =============================================================================

class Address(CanonicalBase):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class PartyRef(CanonicalBase):
    """Customer or supplier referenced from a transaction document."""
    code: Optional[str] = None
    name: str = Field(..., min_length=1)
    external_id: Optional[str] = Field(default=None, description="Id of the party at the provider, if known")


class PartyDocument(CanonicalBase):
    """Customer or supplier master record."""
    code: Optional[str] = None
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    vat_no: Optional[str] = None
    contact_person: Optional[str] = None
    address: Optional[Address] = None
    currency: str = "ZAR"


# =============================================================================
# Sales Documents
# =============================================================================

class DocumentLine(CanonicalBase):
    """A priced line on an invoice or credit note."""
    sku: Optional[str] = None
    description: Optional[str] = None
    qty: DecimalValue
    unit_price: DecimalValue
    discount_pct: DecimalValue = Decimal("0")
    tax_rate: DecimalValue = Field(default=Decimal("0"), description="Percentage, e.g. 15 for 15% VAT")
    account_code: Optional[str] = None

    @property
    def label(self) -> str:
        return self.description or self.sku or ""

    @property
    def net_amount(self) -> Decimal:
        gross = self.qty * self.unit_price
        return money(gross * (Decimal("100") - self.discount_pct) / Decimal("100"))

    @property
    def tax_amount(self) -> Decimal:
        return money(self.net_amount * self.tax_rate / Decimal("100"))


class _SalesDocument(CanonicalBase):
    customer: PartyRef
    currency: str = "ZAR"
    lines: List[DocumentLine] = Field(..., min_length=1)
    notes: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return money(sum((line.net_amount for line in self.lines), Decimal("0")))

    @property
    def tax_amount(self) -> Decimal:
        return money(sum((line.tax_amount for line in self.lines), Decimal("0")))

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax_amount


class InvoiceDocument(_SalesDocument):
    """Customer invoice."""
    invoice_no: str = Field(..., min_length=1)
    invoice_date: DateValue
    due_date: Optional[DateValue] = None
    payment_terms: Optional[str] = None
    order_no: Optional[str] = None


class CreditNoteDocument(_SalesDocument):
    """Credit note raised against a customer (typically from a return)."""
    credit_no: str = Field(..., min_length=1)
    credit_date: DateValue
    invoice_no: Optional[str] = Field(default=None, description="Invoice being credited")
    reason: Optional[str] = None


# =============================================================================
# Stock
# =============================================================================

class StockJournalLine(CanonicalBase):
    """Quantity movement of one item; negative qty is a write-off."""
    sku: str = Field(..., min_length=1)
    description: Optional[str] = None
    qty: DecimalValue
    unit_cost: Optional[DecimalValue] = None
    warehouse_code: Optional[str] = None

    @property
    def value(self) -> Decimal:
        if self.unit_cost is None:
            return Decimal("0.00")
        return money(self.qty * self.unit_cost)


class StockJournalDocument(CanonicalBase):
    """Stock adjustment / cycle count variance journal."""
    journal_no: str = Field(..., min_length=1)
    journal_date: DateValue
    reason_code: Optional[str] = None
    inventory_account: Optional[str] = None
    adjustment_account: Optional[str] = None
    lines: List[StockJournalLine] = Field(..., min_length=1)
    notes: Optional[str] = None
