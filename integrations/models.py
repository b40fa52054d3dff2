"""Integration connection models."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.models import ConnectionStatus, ConnectionType, DocType


# Providers that post without stored credentials
NO_AUTH_PROVIDERS = frozenset({ConnectionType.CUSTOM_API})


class IntegrationConnection(BaseModel):
    """A tenant's link to one external accounting system.

    One row per (tenant, type); disconnecting keeps the row.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    tenant_id: str
    type: ConnectionType
    name: str
    status: ConnectionStatus
    config: Dict[str, Any] = Field(default_factory=dict, description="Non-secret provider settings")
    last_sync_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_dispatchable(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED


class PostingRoute(BaseModel):
    """Which connection type a tenant posts a document type through."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tenant_id: str
    doc_type: DocType
    connection_type: ConnectionType
    updated_at: datetime
