"""Sync dispatcher - drains the posting queue into accounting systems."""

from sync_dispatcher.dispatcher import (
    ConnectorFactory,
    SweepReport,
    SyncDispatcher,
    default_connector_factory,
)
from sync_dispatcher.factory import PostingServices, build_services

__all__ = [
    "ConnectorFactory",
    "PostingServices",
    "SweepReport",
    "SyncDispatcher",
    "build_services",
    "default_connector_factory",
]
