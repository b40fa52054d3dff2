"""Core data models - enums shared by every module.

The closed sets of provider types, connection statuses, postable document
types and queue statuses. Record models live with the module that owns the
table (integrations.models, posting_queue.models).
"""

from core.models.enums import (
    ConnectionType,
    ConnectionStatus,
    DocType,
    PostingStatus,
)

__all__ = [
    "ConnectionType",
    "ConnectionStatus",
    "DocType",
    "PostingStatus",
]
