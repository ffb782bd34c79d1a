"""Prometheus metrics for tierstore.

Provides metrics collection and exposure:
- Per-layer backend errors that were downgraded to misses
- Read-repair backfills
- Cache evictions (count and bytes)
- Job outcomes by task

Usage:
    from tierstore.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.layer_errors_total.labels(layer="local:/srv", operation="get").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import REGISTRY, Counter
from prometheus_client import generate_latest as _generate_latest

from tierstore.config import settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        """No-op."""
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    layer_errors_total: Any = field(default_factory=NoOpMetric)
    read_repairs_total: Any = field(default_factory=NoOpMetric)
    evictions_total: Any = field(default_factory=NoOpMetric)
    evicted_bytes_total: Any = field(default_factory=NoOpMetric)
    jobs_total: Any = field(default_factory=NoOpMetric)

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.layer_errors_total = Counter(
            "tierstore_layer_errors_total",
            "Backend errors isolated to a single layer",
            ["layer", "operation"],
        )

        self.read_repairs_total = Counter(
            "tierstore_read_repairs_total",
            "Content backfilled into immediate layers on read",
            ["layer"],
        )

        self.evictions_total = Counter(
            "tierstore_evictions_total",
            "Entries evicted from cache layers",
            ["layer"],
        )

        self.evicted_bytes_total = Counter(
            "tierstore_evicted_bytes_total",
            "Bytes evicted from cache layers",
            ["layer"],
        )

        self.jobs_total = Counter(
            "tierstore_jobs_total",
            "Background jobs processed",
            ["task", "outcome"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"
        return _generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def record_layer_error(layer: str, operation: str) -> None:
    get_metrics().layer_errors_total.labels(layer=layer, operation=operation).inc()


def record_read_repair(layer: str) -> None:
    get_metrics().read_repairs_total.labels(layer=layer).inc()


def record_eviction(layer: str, size: int) -> None:
    metrics = get_metrics()
    metrics.evictions_total.labels(layer=layer).inc()
    metrics.evicted_bytes_total.labels(layer=layer).inc(size)


def record_job(task: str, outcome: str) -> None:
    """Record a job outcome.

    Args:
        task: Task name
        outcome: One of "completed", "retried", "failed", "discarded"
    """
    get_metrics().jobs_total.labels(task=task, outcome=outcome).inc()
