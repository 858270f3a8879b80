"""Observability layer - logging and metrics."""

from ecowatch.observability.logging import setup_logging
from ecowatch.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
