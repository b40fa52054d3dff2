"""
Metrics Collection for the Posting Service

Collects and exposes metrics for:
- Dispatcher sweeps (runs, items scanned, last sweep time)
- Posting outcomes (claimed, succeeded, retrying, failed, skipped) per connection type
- External call latency (average, p95) per connection type

Metrics are kept in memory; the /health endpoint and logs expose them.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

OUTCOMES = ("claimed", "claim_lost", "succeeded", "retrying", "failed", "skipped")


@dataclass
class SweepMetrics:
    """Metrics for dispatcher sweeps."""
    runs: int = 0
    items_scanned: int = 0
    stale_recovered: int = 0
    last_sweep_at: Optional[datetime] = None


@dataclass
class PostingMetrics:
    """Posting outcome counters."""
    totals: Dict[str, int] = field(default_factory=lambda: {o: 0 for o in OUTCOMES})

    # By connection type
    by_connection_type: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: {o: 0 for o in OUTCOMES})
    )


@dataclass
class TimingMetrics:
    """External call latency samples."""
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_connection_type: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, connection_type: Optional[str] = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if connection_type:
            self.by_connection_type[connection_type].append(duration_ms)
            if len(self.by_connection_type[connection_type]) > self.max_samples:
                self.by_connection_type[connection_type] = self.by_connection_type[connection_type][-self.max_samples:]

    def get_average(self, connection_type: Optional[str] = None) -> float:
        samples = self.by_connection_type.get(connection_type, []) if connection_type else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, connection_type: Optional[str] = None) -> float:
        samples = self.by_connection_type.get(connection_type, []) if connection_type else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector for the posting service.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_outcome("xero", "succeeded")
        metrics.record_external_call("xero", duration_ms=412)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.sweeps = SweepMetrics()
        self.postings = PostingMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def reset(self) -> None:
        """Zero all counters."""
        with self._lock:
            self.sweeps = SweepMetrics()
            self.postings = PostingMetrics()
            self.timings = TimingMetrics()

    # =========================================================================
    # Recording
    # =========================================================================

    def record_sweep(self, items_scanned: int, stale_recovered: int = 0):
        """Record a completed dispatcher sweep."""
        with self._lock:
            self.sweeps.runs += 1
            self.sweeps.items_scanned += items_scanned
            self.sweeps.stale_recovered += stale_recovered
            self.sweeps.last_sweep_at = datetime.now(timezone.utc)

    def record_outcome(self, connection_type: Optional[str], outcome: str):
        """Record a per-item outcome (one of OUTCOMES)."""
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown posting outcome: {outcome}")
        with self._lock:
            self.postings.totals[outcome] += 1
            self.postings.by_connection_type[connection_type or "unrouted"][outcome] += 1

    def record_external_call(self, connection_type: str, duration_ms: float):
        """Record the latency of one provider call."""
        with self._lock:
            self.timings.add_sample(duration_ms, connection_type)

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "sweeps": {
                    "runs": self.sweeps.runs,
                    "items_scanned": self.sweeps.items_scanned,
                    "stale_recovered": self.sweeps.stale_recovered,
                    "last_sweep_at": self.sweeps.last_sweep_at.isoformat() if self.sweeps.last_sweep_at else None,
                },
                "postings": {
                    "totals": dict(self.postings.totals),
                    "by_connection_type": {k: dict(v) for k, v in self.postings.by_connection_type.items()},
                },
                "external_calls": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_connection_type": {
                        connection_type: {
                            "average_ms": self.timings.get_average(connection_type),
                            "p95_ms": self.timings.get_p95(connection_type),
                        }
                        for connection_type in self.timings.by_connection_type.keys()
                    },
                },
            }


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()
