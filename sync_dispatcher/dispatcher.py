"""Sync Dispatcher.

A sweep drains eligible queue items into their accounting systems:

    recover stale claims
    for each eligible item (FIFO):
        resolve connection  -> skip unless CONNECTED
        claim (CAS)         -> skip if another dispatcher won
        map                 -> UnsupportedMappingError / MappingError: FAILED
        post (bounded)      -> SUCCESS, or RETRYING / FAILED per retry policy

One item's failure never stops the sweep. An AuthError also puts the
connection into ERROR, and the connection's remaining items are left
untouched for the rest of the sweep.
"""

import asyncio
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from connectors.base import AccountingConnector, ConnectorConfig, create_connector
from core.config import Settings, get_settings
from core.db import utcnow
from core.errors import (
    NON_RETRYABLE_ERRORS,
    AuthError,
    ConfigurationError,
    ExternalCallError,
)
from core.models import PostingStatus
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import MetricsCollector, get_metrics
from document_mapper import DocumentMapper
from integrations.models import IntegrationConnection
from integrations.registry import ConnectionRegistry
from posting_queue.models import PostingQueueItem
from posting_queue.queue import PostingQueue


logger = get_logger(__name__)

ConnectorFactory = Callable[[IntegrationConnection, Dict[str, Any], float], AccountingConnector]


def default_connector_factory(
    connection: IntegrationConnection,
    credentials: Dict[str, Any],
    timeout_seconds: float,
) -> AccountingConnector:
    """Build the registered connector for a connection."""
    return create_connector(ConnectorConfig(
        connection_type=connection.type.value,
        connection_id=connection.id,
        credentials=credentials,
        settings=connection.config,
        timeout_seconds=timeout_seconds,
    ))


@dataclass
class SweepReport:
    """Counts for one sweep."""
    sweep_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    recovered: int = 0
    scanned: int = 0
    claimed: int = 0
    succeeded: int = 0
    retrying: int = 0
    failed: int = 0
    skipped: int = 0
    claim_lost: int = 0
    blocked_connections: Set[str] = field(default_factory=set)

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        data["blocked_connections"] = sorted(self.blocked_connections)
        return data


class _SweepState:
    """Connectors opened and connections blocked during one sweep."""

    def __init__(self):
        self.connectors: Dict[str, AccountingConnector] = {}
        self.blocked: Set[str] = set()
        self.claimed = 0

    async def close(self) -> None:
        for connector in self.connectors.values():
            try:
                await connector.close()
            except Exception:
                logger.exception("Failed to close connector")
        self.connectors.clear()


class SyncDispatcher:
    """Posts queue items through their tenant's connections.

    Usage:
        dispatcher = SyncDispatcher(queue, registry)
        report = await dispatcher.sweep()
    """

    def __init__(
        self,
        queue: PostingQueue,
        registry: ConnectionRegistry,
        mapper: Optional[DocumentMapper] = None,
        connector_factory: Optional[ConnectorFactory] = None,
        settings: Optional[Settings] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.queue = queue
        self.registry = registry
        self.mapper = mapper or DocumentMapper()
        self.connector_factory = connector_factory or default_connector_factory
        self.settings = settings or get_settings()
        self.metrics = metrics or get_metrics()

    # =========================================================================
    # Entry points
    # =========================================================================

    async def sweep(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> SweepReport:
        """Run one pass over the eligible items."""
        now = now or utcnow()
        report = SweepReport(sweep_id=str(uuid.uuid4()), started_at=now)
        state = _SweepState()

        with with_correlation(sweep_id=report.sweep_id):
            report.recovered = self.queue.recover_stale(now=now)
            items = self.queue.eligible(limit=limit or self.settings.sweep_batch_size, now=now)
            report.scanned = len(items)

            try:
                for item in items:
                    outcome = await self._process(item, state)
                    report.record(outcome)
            finally:
                await state.close()

            report.claimed = state.claimed
            report.blocked_connections = set(state.blocked)
            report.finished_at = utcnow()
            self.metrics.record_sweep(report.scanned, stale_recovered=report.recovered)

            if report.scanned or report.recovered:
                logger.info(
                    f"Sweep finished: {report.succeeded} posted, {report.retrying} retrying, "
                    f"{report.failed} failed, {report.skipped} skipped",
                    extra_fields={"scanned": report.scanned, "recovered": report.recovered},
                )
        return report

    async def dispatch_item(self, item_id: str, tenant_id: Optional[str] = None) -> PostingQueueItem:
        """Attempt one item now, ignoring its retry schedule.

        The item is returned unchanged when its connection is not CONNECTED
        or the item is not claimable (already PROCESSING, SUCCESS or FAILED).

        Raises:
            NotFoundError: No such item for this tenant
        """
        item = self.queue.get(item_id, tenant_id=tenant_id)
        state = _SweepState()
        try:
            await self._process(item, state)
        finally:
            await state.close()
        return self.queue.get(item_id)

    # =========================================================================
    # Per-item processing
    # =========================================================================

    async def _process(self, item: PostingQueueItem, state: _SweepState) -> str:
        pinned = item.connection_type.value if item.connection_type else None

        with with_correlation(tenant_id=item.tenant_id, queue_item_id=item.id, doc_type=item.doc_type.value):
            connection = self.registry.resolve(item.tenant_id, item.doc_type.value, pinned)

            if connection is None:
                logger.debug(f"No connection for {item.doc_type.value}; item left queued")
                self.metrics.record_outcome(pinned, "skipped")
                return "skipped"

            if not connection.is_dispatchable or connection.id in state.blocked:
                logger.debug(
                    f"Connection {connection.name} is {connection.status.value}; item left queued",
                    extra_fields={"connection_id": connection.id},
                )
                self.metrics.record_outcome(connection.type.value, "skipped")
                return "skipped"

            claimed = self.queue.claim(item.id)
            if claimed is None:
                logger.debug("Item claimed by another dispatcher")
                self.metrics.record_outcome(connection.type.value, "claim_lost")
                return "claim_lost"
            state.claimed += 1
            self.metrics.record_outcome(connection.type.value, "claimed")

            with with_correlation(connection_id=connection.id, connection_type=connection.type.value):
                return await self._attempt(claimed, connection, state)

    async def _attempt(
        self,
        item: PostingQueueItem,
        connection: IntegrationConnection,
        state: _SweepState,
    ) -> str:
        connection_type = connection.type.value
        try:
            payload = self.mapper.map(item.doc_type, item.doc_id, connection.type, item.payload)
            connector = self._get_connector(connection, state)
            result = await self._post(connector, item, payload, connection_type)
        except NON_RETRYABLE_ERRORS as e:
            return self._record_failure(item, e.message, retryable=False, connection_type=connection_type)
        except (AuthError, ConfigurationError) as e:
            self.registry.mark_error(connection.id, e.message)
            state.blocked.add(connection.id)
            return self._record_failure(item, e.message, retryable=True, connection_type=connection_type)
        except ExternalCallError as e:
            return self._record_failure(item, e.message, retryable=True, connection_type=connection_type)
        except Exception as e:
            logger.exception(f"Unexpected error posting {item.doc_type.value} {item.doc_id}")
            return self._record_failure(
                item, f"{type(e).__name__}: {e}", retryable=True, connection_type=connection_type
            )

        completed = self.queue.complete(item.id, result.external_ref)
        if completed is None:
            logger.warning("Item was released before the post finished; result not recorded")
            self.metrics.record_outcome(connection_type, "claim_lost")
            return "claim_lost"

        self.registry.mark_synced(connection.id)
        self.metrics.record_outcome(connection_type, "succeeded")
        logger.info(
            f"Posted {item.doc_type.value} {item.doc_id} to {connection.name}",
            extra_fields={"external_ref": result.external_ref, "attempts": completed.attempts},
        )
        return "succeeded"

    async def _post(self, connector: AccountingConnector, item: PostingQueueItem, payload, connection_type: str):
        timeout = self.settings.external_call_timeout_seconds
        started = time.monotonic()
        try:
            return await asyncio.wait_for(connector.post_document(item.doc_type, payload), timeout=timeout)
        except asyncio.TimeoutError:
            raise ExternalCallError(f"{connection_type} call timed out after {timeout}s")
        finally:
            self.metrics.record_external_call(connection_type, (time.monotonic() - started) * 1000)

    def _get_connector(self, connection: IntegrationConnection, state: _SweepState) -> AccountingConnector:
        connector = state.connectors.get(connection.id)
        if connector is None:
            credentials = self.registry.load_credentials(connection.id)
            connector = self.connector_factory(
                connection, credentials, self.settings.external_call_timeout_seconds
            )
            state.connectors[connection.id] = connector
        return connector

    def _record_failure(self, item: PostingQueueItem, message: str, retryable: bool, connection_type: str) -> str:
        updated = self.queue.fail(item.id, message, retryable=retryable)
        if updated is None:
            logger.warning("Item was released before the failure was recorded")
            self.metrics.record_outcome(connection_type, "claim_lost")
            return "claim_lost"

        outcome = "retrying" if updated.status == PostingStatus.RETRYING else "failed"
        self.metrics.record_outcome(connection_type, outcome)
        logger.warning(
            f"Posting {item.doc_type.value} {item.doc_id} failed ({updated.status.value}): {message}",
            extra_fields={
                "attempts": updated.attempts,
                "max_attempts": updated.max_attempts,
                "next_retry_at": updated.next_retry_at.isoformat() if updated.next_retry_at else None,
            },
        )
        return outcome
