"""
Sync Dispatcher Tests

Sweeps run against a real SQLite queue and registry with a scripted
connector standing in for the provider.
"""

import asyncio
import copy
from datetime import timedelta


from conftest import INVOICE_SNAPSHOT, OTHER_TENANT, TENANT
from core.db import utcnow
from core.errors import AuthError, ConfigurationError, ExternalCallError
from core.models import ConnectionStatus, PostingStatus
from core.observability.metrics import MetricsCollector
from posting_queue.db import STALE_CLAIM_ERROR


def sweep(services, **kwargs):
    return asyncio.run(services.dispatcher.sweep(**kwargs))


class TestSweep:

    def test_posts_pending_item(self, services, connector, xero_connection):
        item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

        report = sweep(services)

        done = services.queue.get(item.id)
        assert done.status == PostingStatus.SUCCESS
        assert done.external_ref == "EXT-1"
        assert done.attempts == 1
        assert report.scanned == 1
        assert report.claimed == 1
        assert report.succeeded == 1
        assert connector.posted[0]["payload"]["InvoiceNumber"] == "INV-001"
        assert services.registry.get_connection(xero_connection.id).last_sync_at is not None

    def test_items_processed_in_fifo_order(self, services, connector, xero_connection):
        ids = []
        for n in range(3):
            snapshot = dict(INVOICE_SNAPSHOT, invoiceNo=f"INV-{n}")
            ids.append(services.queue.enqueue(TENANT, "invoice", f"INV-{n}", payload=snapshot).id)

        sweep(services)

        assert [p["payload"]["InvoiceNumber"] for p in connector.posted] == ["INV-0", "INV-1", "INV-2"]

    def test_unrouted_item_is_left_queued(self, services, connector):
        item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

        report = sweep(services)

        assert report.skipped == 1
        assert services.queue.get(item.id).status == PostingStatus.PENDING
        assert connector.posted == []

    def test_pinned_connection_type_overrides_route(self, services, connector, xero_connection):
        services.registry.connect(TENANT, "custom_api", "ERP", config={"base_url": "https://erp.example"})
        item = services.queue.enqueue(
            TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT, connection_type="custom_api"
        )

        sweep(services)

        assert services.queue.get(item.id).status == PostingStatus.SUCCESS
        assert connector.posted[0]["payload"]["documentType"] == "invoice"

    def test_connector_closed_after_sweep(self, services, connector, xero_connection):
        services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)
        sweep(services)
        assert connector.closed == 1

    def test_sweep_records_metrics(self, settings, connector, xero_connection):
        from sync_dispatcher.dispatcher import SyncDispatcher
        from sync_dispatcher.factory import build_services

        metrics = MetricsCollector()
        services = build_services(settings, connector_factory=lambda c, creds, t: connector)
        dispatcher = SyncDispatcher(
            services.queue,
            services.registry,
            connector_factory=lambda c, creds, t: connector,
            settings=settings,
            metrics=metrics,
        )
        services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

        asyncio.run(dispatcher.sweep())

        summary = metrics.get_summary()
        assert summary["sweeps"]["runs"] == 1
        assert summary["postings"]["totals"]["succeeded"] == 1
        assert summary["postings"]["by_connection_type"]["xero"]["claimed"] == 1


class TestRetries:

    def test_transient_errors_then_operator_retry(self, services, connector, xero_connection):
        """Scenario B: FAILED after 3 transient errors, operator retry, then SUCCESS."""
        connector.outcomes = [ExternalCallError("HTTP 503")] * 3 + ["EXT-OK"]
        item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

        for _ in range(3):
            sweep(services)

        failed = services.queue.get(item.id)
        assert failed.status == PostingStatus.FAILED
        assert failed.attempts == 3
        assert failed.last_error == "HTTP 503"

        # Nothing to do until an operator steps in
        assert sweep(services).scanned == 0

        services.queue.retry(item.id, tenant_id=TENANT)
        sweep(services)

        done = services.queue.get(item.id)
        assert done.status == PostingStatus.SUCCESS
        assert done.external_ref == "EXT-OK"
        assert done.attempts == 4

    def test_backoff_delays_next_attempt(self, settings, connector, xero_connection):
        from dataclasses import replace
        from sync_dispatcher.factory import build_services

        services = build_services(
            replace(settings, retry_backoff_seconds=300),
            connector_factory=lambda c, creds, t: connector,
        )
        connector.outcomes = [ExternalCallError("HTTP 500")]
        item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

        sweep(services)
        assert services.queue.get(item.id).status == PostingStatus.RETRYING

        assert sweep(services).scanned == 0
        assert len(connector.posted) == 1

        sweep(services, now=utcnow() + timedelta(seconds=301))
        assert services.queue.get(item.id).status == PostingStatus.SUCCESS

    def test_mapping_error_fails_without_retry(self, services, connector, xero_connection):
        snapshot = copy.deepcopy(INVOICE_SNAPSHOT)
        del snapshot["lines"]
        item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=snapshot)

        report = sweep(services)

        failed = services.queue.get(item.id)
        assert failed.status == PostingStatus.FAILED
        assert failed.attempts == 1
        assert "lines" in failed.last_error
        assert report.failed == 1
        assert connector.posted == []

    def test_unsupported_mapping_fails_without_retry(self, services, connector):
        services.registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        services.registry.set_route(TENANT, "stock_journal", "xero")
        item = services.queue.enqueue(TENANT, "stock_journal", "SJ-1", payload={
            "journalNo": "SJ-1",
            "journalDate": "2024-03-01",
            "lines": [{"sku": "SKU-1", "qty": 1}],
        })

        sweep(services)

        failed = services.queue.get(item.id)
        assert failed.status == PostingStatus.FAILED
        assert failed.attempts == 1
        assert "No mapping registered" in failed.last_error

    def test_timeout_is_a_transient_failure(self, settings, xero_connection):
        from dataclasses import replace
        from conftest import FakeConnector
        from sync_dispatcher.factory import build_services

        slow = FakeConnector(delay=1)
        services = build_services(
            replace(settings, external_call_timeout_seconds=0.05),
            connector_factory=lambda c, creds, t: slow,
        )
        item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

        report = sweep(services)

        retrying = services.queue.get(item.id)
        assert retrying.status == PostingStatus.RETRYING
        assert "timed out" in retrying.last_error
        assert report.retrying == 1

    def test_unexpected_exception_is_retried(self, services, connector, xero_connection):
        connector.outcomes = [RuntimeError("socket exploded")]
        item = services.queue.enqueue(TENANT, "invoice", "INV-001", payload=INVOICE_SNAPSHOT)

        sweep(services)

        retrying = services.queue.get(item.id)
        assert retrying.status == PostingStatus.RETRYING
        assert "RuntimeError" in retrying.last_error

    def test_one_failure_does_not_stop_sweep(self, services, connector, xero_connection):
        connector.outcomes = [ExternalCallError("HTTP 500"), "EXT-2"]
        first = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)
        second = services.queue.enqueue(TENANT, "invoice", "INV-2", payload=INVOICE_SNAPSHOT)

        report = sweep(services)

        assert services.queue.get(first.id).status == PostingStatus.RETRYING
        assert services.queue.get(second.id).status == PostingStatus.SUCCESS
        assert report.retrying == 1
        assert report.succeeded == 1


class TestConnectionHealth:

    def test_auth_error_sets_connection_error_and_skips_rest(self, services, connector, xero_connection):
        connector.outcomes = [AuthError("Authentication failed (401)", 401)]
        first = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)
        second = services.queue.enqueue(TENANT, "invoice", "INV-2", payload=INVOICE_SNAPSHOT)

        report = sweep(services)

        connection = services.registry.get_connection(xero_connection.id)
        assert connection.status == ConnectionStatus.ERROR
        assert "401" in connection.error_message
        assert services.queue.get(first.id).status == PostingStatus.RETRYING
        untouched = services.queue.get(second.id)
        assert untouched.status == PostingStatus.PENDING
        assert untouched.attempts == 0
        assert report.skipped == 1
        assert xero_connection.id in report.blocked_connections

    def test_configuration_error_sets_connection_error(self, services, connector, xero_connection):
        connector.outcomes = [ConfigurationError("xero connection has no xero_tenant_id configured")]
        services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)

        sweep(services)

        assert services.registry.get_connection(xero_connection.id).status == ConnectionStatus.ERROR

    def test_undecryptable_credentials_set_connection_error(self, settings, connector, xero_connection):
        from dataclasses import replace
        from core.security import generate_encryption_key
        from sync_dispatcher.factory import build_services

        rotated = build_services(
            replace(settings, credentials_encryption_key=generate_encryption_key()),
            connector_factory=lambda connection, credentials, timeout: connector,
        )
        items = [
            rotated.queue.enqueue(TENANT, "invoice", f"INV-{n}", payload=INVOICE_SNAPSHOT)
            for n in range(3)
        ]

        report = sweep(rotated)

        connection = rotated.registry.get_connection(xero_connection.id)
        assert connection.status == ConnectionStatus.ERROR
        assert "decrypted" in connection.error_message
        assert report.claimed == 1
        assert report.skipped == 2
        assert rotated.queue.get(items[0].id).status == PostingStatus.RETRYING
        assert [rotated.queue.get(i.id).attempts for i in items[1:]] == [0, 0]
        assert connector.posted == []

    def test_error_connection_skipped_until_reconnected(self, services, connector, xero_connection):
        """Scenario D: ERROR connection's items wait for connect()."""
        services.registry.mark_error(xero_connection.id, "token expired")
        item = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)

        for _ in range(2):
            report = sweep(services)
            assert report.skipped == 1
            assert services.queue.get(item.id).status == PostingStatus.PENDING

        services.registry.connect(TENANT, "xero", "Xero", auth_data={"access_token": "fresh"})
        sweep(services)

        assert services.queue.get(item.id).status == PostingStatus.SUCCESS

    def test_other_tenants_unaffected_by_error_connection(self, services, connector, xero_connection):
        services.registry.mark_error(xero_connection.id, "token expired")
        services.registry.connect(OTHER_TENANT, "xero", "Xero", auth_data={"access_token": "t"})
        services.registry.set_route(OTHER_TENANT, "invoice", "xero")
        blocked = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)
        allowed = services.queue.enqueue(OTHER_TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)

        sweep(services)

        assert services.queue.get(blocked.id).status == PostingStatus.PENDING
        assert services.queue.get(allowed.id).status == PostingStatus.SUCCESS

    def test_disconnected_connection_skipped(self, services, connector, xero_connection):
        services.registry.disconnect(xero_connection.id)
        item = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)

        assert sweep(services).skipped == 1
        assert services.queue.get(item.id).status == PostingStatus.PENDING


class TestRecoveryAndDispatchNow:

    def test_sweep_recovers_stale_claims(self, services, connector, xero_connection, settings):
        item = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)
        services.queue.claim(item.id)

        report = sweep(services, now=utcnow() + timedelta(seconds=settings.claim_lease_seconds + 1))

        assert report.recovered == 1
        done = services.queue.get(item.id)
        assert done.status == PostingStatus.SUCCESS
        assert done.attempts == 2

    def test_stale_error_recorded(self, services, settings):
        item = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)
        services.queue.claim(item.id)

        sweep(services, now=utcnow() + timedelta(seconds=settings.claim_lease_seconds + 1))

        recovered = services.queue.get(item.id)
        assert recovered.status == PostingStatus.RETRYING
        assert recovered.last_error == STALE_CLAIM_ERROR

    def test_dispatch_item_ignores_backoff(self, settings, connector, xero_connection):
        from dataclasses import replace
        from sync_dispatcher.factory import build_services

        services = build_services(
            replace(settings, retry_backoff_seconds=3600),
            connector_factory=lambda c, creds, t: connector,
        )
        connector.outcomes = [ExternalCallError("HTTP 502")]
        item = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)

        first = asyncio.run(services.dispatcher.dispatch_item(item.id, tenant_id=TENANT))
        assert first.status == PostingStatus.RETRYING

        second = asyncio.run(services.dispatcher.dispatch_item(item.id, tenant_id=TENANT))
        assert second.status == PostingStatus.SUCCESS
        assert second.attempts == 2

    def test_dispatch_item_without_connection_leaves_item(self, services, connector):
        item = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)

        result = asyncio.run(services.dispatcher.dispatch_item(item.id, tenant_id=TENANT))

        assert result.status == PostingStatus.PENDING
        assert result.attempts == 0

    def test_dispatch_item_on_success_is_noop(self, services, connector, xero_connection):
        item = services.queue.enqueue(TENANT, "invoice", "INV-1", payload=INVOICE_SNAPSHOT)
        asyncio.run(services.dispatcher.dispatch_item(item.id))

        again = asyncio.run(services.dispatcher.dispatch_item(item.id))

        assert again.status == PostingStatus.SUCCESS
        assert again.attempts == 1
        assert len(connector.posted) == 1
