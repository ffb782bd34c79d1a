"""Observability for tierstore: structured logging and Prometheus metrics."""

from tierstore.observability.logging import LogContext, configure_logging
from tierstore.observability.metrics import get_metrics

__all__ = ["LogContext", "configure_logging", "get_metrics"]
