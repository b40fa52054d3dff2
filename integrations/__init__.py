"""Integration connections - registry, credentials and posting routes."""

from integrations.db import init_integrations_db
from integrations.models import IntegrationConnection, PostingRoute
from integrations.registry import ConnectionRegistry

__all__ = [
    "ConnectionRegistry",
    "IntegrationConnection",
    "PostingRoute",
    "init_integrations_db",
]
