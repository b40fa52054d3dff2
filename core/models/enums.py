"""Enumerations for connections and posting queue items."""

from enum import Enum


class ConnectionType(str, Enum):
    """External accounting systems a tenant can connect."""
    XERO = "xero"
    SAGE = "sage"
    QUICKBOOKS = "quickbooks"
    EVOLUTION = "evolution"
    SAP_B1 = "sap_b1"
    CUSTOM_API = "custom_api"


class ConnectionStatus(str, Enum):
    """Connection status to an external system."""
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    ERROR = "ERROR"               # Provider rejected credentials; dispatch paused
    PENDING_AUTH = "PENDING_AUTH"  # Created, waiting for credentials


class DocType(str, Enum):
    """Internal documents that can be posted."""
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    STOCK_JOURNAL = "stock_journal"
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class PostingStatus(str, Enum):
    """Status of a posting queue item."""
    PENDING = "PENDING"        # Never attempted
    PROCESSING = "PROCESSING"  # Claimed by a dispatcher
    SUCCESS = "SUCCESS"        # Posted; external_ref set
    FAILED = "FAILED"          # Needs an operator retry
    RETRYING = "RETRYING"      # Waiting for the next dispatch
