"""Outbound document mapping registry.

Each (doc type, connection type) cell is a pure function from a canonical
document to the provider's request body. Cells register themselves with
`@register_mapper`; a pair with no registered cell is unsupported.

Usage:
    mapper = DocumentMapper()
    body = mapper.map("invoice", "INV-001", "xero", snapshot)
"""

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ValidationError

from core.errors import MappingError, UnsupportedMappingError
from core.models import ConnectionType, DocType
from document_mapper.documents import (
    CreditNoteDocument,
    InvoiceDocument,
    PartyDocument,
    StockJournalDocument,
    money,
)


ExternalPayload = Dict[str, Any]
MapperFn = Callable[[Any, str], ExternalPayload]

DOCUMENT_MODELS: Dict[DocType, Type[BaseModel]] = {
    DocType.INVOICE: InvoiceDocument,
    DocType.CREDIT_NOTE: CreditNoteDocument,
    DocType.STOCK_JOURNAL: StockJournalDocument,
    DocType.CUSTOMER: PartyDocument,
    DocType.SUPPLIER: PartyDocument,
}

_mapper_registry: Dict[Tuple[DocType, ConnectionType], MapperFn] = {}


def register_mapper(doc_type: Union[str, DocType], connection_type: Union[str, ConnectionType]):
    """Decorator to register the mapping cell for a (doc type, connection type) pair."""
    key = (DocType(doc_type), ConnectionType(connection_type))

    def decorator(fn: MapperFn) -> MapperFn:
        if key in _mapper_registry:
            raise ValueError(f"Mapper already registered for {key[0].value} on {key[1].value}")
        _mapper_registry[key] = fn
        return fn
    return decorator


def amount(value: Decimal) -> str:
    """Serialise an amount as a 2 dp string."""
    return str(money(value))


def quantity(value: Decimal) -> str:
    """Serialise a quantity without float noise or trailing zeros."""
    normalized = value.normalize()
    # normalize() turns 100 into 1E+2
    return format(normalized, "f")


def supported_pairs() -> List[Tuple[str, str]]:
    """All registered (doc type, connection type) pairs."""
    return sorted((d.value, c.value) for d, c in _mapper_registry)


class DocumentMapper:
    """Validate a snapshot and map it to a provider payload."""

    def __init__(self, registry: Optional[Dict[Tuple[DocType, ConnectionType], MapperFn]] = None):
        self._registry = _mapper_registry if registry is None else registry

    def supports(self, doc_type: Union[str, DocType], connection_type: Union[str, ConnectionType]) -> bool:
        return (DocType(doc_type), ConnectionType(connection_type)) in self._registry

    def map(
        self,
        doc_type: Union[str, DocType],
        doc_id: str,
        connection_type: Union[str, ConnectionType],
        snapshot: Dict[str, Any],
    ) -> ExternalPayload:
        """Map one document.

        Deterministic: the same snapshot always gives the same payload.

        Raises:
            UnsupportedMappingError: No cell for this pair
            MappingError: Snapshot is missing fields or has malformed values
        """
        doc_type = DocType(doc_type)
        connection_type = ConnectionType(connection_type)

        cell = self._registry.get((doc_type, connection_type))
        if cell is None:
            raise UnsupportedMappingError(doc_type.value, connection_type.value)

        model = DOCUMENT_MODELS[doc_type]
        try:
            document = model.model_validate(snapshot or {})
        except ValidationError as e:
            raise MappingError(f"Invalid {doc_type.value} {doc_id}: {_summarize(e)}") from e

        return cell(document, doc_id)


def _summarize(error: ValidationError) -> str:
    parts = []
    for err in error.errors()[:5]:
        location = ".".join(str(p) for p in err["loc"]) or "document"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def require(value: Optional[str], field: str, provider: ConnectionType) -> str:
    """Fields a provider cannot post without; raise MappingError when missing."""
    if not value:
        raise MappingError(f"{provider.value} requires {field}")
    return value


def iso_date(value) -> Optional[str]:
    return value.isoformat() if value else None
