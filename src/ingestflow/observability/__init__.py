"""Observability layer - logging and metrics."""

from ingestflow.observability.logging import setup_logging
from ingestflow.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
