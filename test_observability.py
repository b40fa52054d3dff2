"""
Observability and Configuration Tests

This test validates the ambient stack:
1. Metrics collection (sweeps, per-connection outcomes, call latency)
2. Structured logging with correlation IDs
3. Settings read from the environment
4. Invalidation events
"""

import json
import logging

import pytest


def test_observability_imports():
    """Verify all observability modules import correctly."""
    from core.observability import (
        CorrelationContext,
        MetricsCollector,
        configure_logging,
        get_logger,
        get_metrics,
        with_correlation,
    )
    assert MetricsCollector is not None
    assert get_metrics is not None
    assert CorrelationContext is not None
    assert configure_logging is not None
    assert get_logger is not None
    assert with_correlation is not None


class TestMetricsCollector:
    """Test the metrics collection system."""

    def test_singleton_instance(self):
        """MetricsCollector returns same instance."""
        from core.observability.metrics import MetricsCollector
        m1 = MetricsCollector.instance()
        m2 = MetricsCollector.instance()
        assert m1 is m2

    def test_outcome_tracking(self):
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector()

        mc.record_outcome("xero", "claimed")
        mc.record_outcome("xero", "succeeded")
        mc.record_outcome("sage", "claimed")
        mc.record_outcome("sage", "retrying")
        mc.record_outcome(None, "skipped")

        summary = mc.get_summary()
        assert summary["postings"]["totals"]["claimed"] == 2
        assert summary["postings"]["by_connection_type"]["xero"]["succeeded"] == 1
        assert summary["postings"]["by_connection_type"]["sage"]["retrying"] == 1
        assert summary["postings"]["by_connection_type"]["unrouted"]["skipped"] == 1

    def test_unknown_outcome_rejected(self):
        from core.observability.metrics import MetricsCollector
        with pytest.raises(ValueError):
            MetricsCollector().record_outcome("xero", "exploded")

    def test_sweep_tracking(self):
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector()

        mc.record_sweep(10, stale_recovered=1)
        mc.record_sweep(5)

        sweeps = mc.get_summary()["sweeps"]
        assert sweeps["runs"] == 2
        assert sweeps["items_scanned"] == 15
        assert sweeps["stale_recovered"] == 1
        assert sweeps["last_sweep_at"] is not None

    def test_external_call_percentiles(self):
        """Calculate p95 timing correctly."""
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector()

        for i in range(1, 101):
            mc.record_external_call("xero", i)

        stats = mc.get_summary()["external_calls"]["by_connection_type"]["xero"]
        assert 49 <= stats["average_ms"] <= 52
        assert 93 <= stats["p95_ms"] <= 97

    def test_summary_is_json_serializable(self):
        from core.observability.metrics import MetricsCollector
        mc = MetricsCollector()
        mc.record_sweep(1)
        mc.record_outcome("xero", "failed")
        json.dumps(mc.get_summary())


class TestCorrelatedLogging:
    """Test structured logging with correlation IDs."""

    def test_correlation_context_creation(self):
        from core.observability.logging import CorrelationContext

        ctx = CorrelationContext(
            tenant_id="t-1",
            queue_item_id="q-123",
            connection_type="xero",
            workflow_id="posting-sweep",
        )

        assert ctx.tenant_id == "t-1"
        assert ctx.to_dict() == {
            "tenant_id": "t-1",
            "queue_item_id": "q-123",
            "connection_type": "xero",
            "workflow_id": "posting-sweep",
        }

    def test_context_nesting(self):
        from core.observability.logging import get_correlation_context, with_correlation

        assert get_correlation_context().tenant_id is None

        with with_correlation(tenant_id="t-1", sweep_id="s-1"):
            with with_correlation(queue_item_id="q-1"):
                inner = get_correlation_context()
                assert inner.tenant_id == "t-1"
                assert inner.sweep_id == "s-1"
                assert inner.queue_item_id == "q-1"
            assert get_correlation_context().queue_item_id is None

        assert get_correlation_context().tenant_id is None

    def test_structured_formatter_json_output(self):
        """StructuredFormatter outputs valid JSON with correlation and extra fields."""
        from core.observability.logging import StructuredFormatter, with_correlation

        formatter = StructuredFormatter()

        with with_correlation(tenant_id="t-1", queue_item_id="q-1"):
            record = logging.LogRecord(
                name="sync_dispatcher.dispatcher",
                level=logging.INFO,
                pathname="dispatcher.py",
                lineno=10,
                msg="Posted invoice",
                args=(),
                exc_info=None,
            )
            record.extra_fields = {"external_ref": "EXT-1"}

            data = json.loads(formatter.format(record))

        assert data["message"] == "Posted invoice"
        assert data["tenant_id"] == "t-1"
        assert data["queue_item_id"] == "q-1"
        assert data["external_ref"] == "EXT-1"
        assert data["level"] == "INFO"

    def test_human_readable_formatter(self):
        from core.observability.logging import HumanReadableFormatter, with_correlation

        with with_correlation(tenant_id="8f14e45f-ceea", connection_type="sage"):
            record = logging.LogRecord("api", logging.WARNING, "x.py", 1, "Slow provider", (), None)
            line = HumanReadableFormatter().format(record)

        assert "[WARNING]" in line
        assert "8f14e45f/sage" in line
        assert line.endswith("Slow provider")

    def test_correlated_logger_extra_fields(self, caplog):
        from core.observability.logging import get_logger

        logger = get_logger("posting_queue.test")
        with caplog.at_level(logging.INFO, logger="posting_queue.test"):
            logger.info("Queued invoice", extra_fields={"doc_id": "INV-1"})

        record = caplog.records[-1]
        assert record.getMessage() == "Queued invoice"
        assert record.extra_fields == {"doc_id": "INV-1"}


class TestSettings:

    def test_defaults(self, monkeypatch):
        from core.config import Settings
        for name in ("POSTING_MAX_ATTEMPTS", "POSTING_RETRY_BACKOFF_SECONDS", "EXTERNAL_CALL_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()
        assert settings.max_attempts == 3
        assert settings.retry_backoff_seconds == 300
        assert settings.external_call_timeout_seconds == 30.0

    def test_from_env(self, monkeypatch, tmp_path):
        from core.config import Settings
        monkeypatch.setenv("POSTING_DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("POSTING_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("EXTERNAL_CALL_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("LOG_JSON", "true")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env()
        assert settings.db_path == tmp_path / "x.db"
        assert settings.max_attempts == 5
        assert settings.external_call_timeout_seconds == 2.5
        assert settings.log_json is True
        assert settings.log_level == "DEBUG"

    def test_get_settings_is_cached_until_reset(self, monkeypatch):
        from core.config import get_settings, reset_settings
        monkeypatch.setenv("POSTING_MAX_ATTEMPTS", "4")
        reset_settings()
        try:
            first = get_settings()
            monkeypatch.setenv("POSTING_MAX_ATTEMPTS", "6")
            assert get_settings() is first
            assert get_settings().max_attempts == 4

            reset_settings()
            assert get_settings().max_attempts == 6
        finally:
            reset_settings()

    @pytest.mark.parametrize("name,value", [
        ("POSTING_MAX_ATTEMPTS", "three"),
        ("POSTING_MAX_ATTEMPTS", "0"),
        ("EXTERNAL_CALL_TIMEOUT_SECONDS", "-1"),
        ("POSTING_SWEEP_BATCH_SIZE", "0"),
    ])
    def test_invalid_values(self, monkeypatch, name, value):
        from core.config import Settings
        from core.errors import ConfigurationError
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigurationError):
            Settings.from_env()

    def test_build_services_requires_key(self, tmp_path):
        from core.config import Settings
        from core.errors import ConfigurationError
        from sync_dispatcher.factory import build_services

        with pytest.raises(ConfigurationError):
            build_services(Settings(db_path=tmp_path / "x.db"))


class TestEvents:

    def test_subscribers_receive_invalidations(self):
        from core.events import INTEGRATIONS_KEY, EventBus

        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)

        bus.invalidate(INTEGRATIONS_KEY, "t-1", "c-1")
        unsubscribe()
        bus.invalidate(INTEGRATIONS_KEY, "t-1")

        assert len(received) == 1
        assert received[0].entity == "integrations"
        assert received[0].tenant_id == "t-1"
        assert received[0].entity_id == "c-1"

    def test_failing_subscriber_does_not_block_others(self):
        from core.events import POSTING_QUEUE_KEY, EventBus

        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("cache offline")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        bus.invalidate(POSTING_QUEUE_KEY, "t-1", "q-1")

        assert [e.entity for e in received] == ["posting-queue"]


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
