"""Observability layer - logging and metrics."""

from alert_engine.observability.logging import setup_logging
from alert_engine.observability.metrics import AlertMetrics, get_metrics

__all__ = ["setup_logging", "AlertMetrics", "get_metrics"]
