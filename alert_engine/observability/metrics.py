"""
Prometheus metrics for the alert engine.

Defines and exposes metrics for:
- Rule evaluations and skips (disabled, cooldown)
- Triggered alerts by severity
- Notification deliveries by channel type and status
- Detected anomalies by type

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    start_http_server,
)

from alert_engine.config.settings import get_settings

logger = logging.getLogger(__name__)


class AlertMetrics:
    """
    Prometheus metrics collector for the alert engine.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_evaluation(triggered=True)
        metrics.record_notification("webhook", success=False)
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Registry to register with (defaults to the global one)
        """
        self._registry = registry or REGISTRY

        self.evaluations = Counter(
            "alert_engine_evaluations_total",
            "Total rule evaluations",
            ["outcome"],  # triggered, not_triggered
            registry=self._registry,
        )

        self.rules_skipped = Counter(
            "alert_engine_rules_skipped_total",
            "Rules skipped during an evaluation pass",
            ["reason"],  # disabled, cooldown
            registry=self._registry,
        )

        self.alerts_triggered = Counter(
            "alert_engine_alerts_triggered_total",
            "Total alerts triggered",
            ["severity"],
            registry=self._registry,
        )

        self.notifications = Counter(
            "alert_engine_notifications_total",
            "Notification delivery attempts",
            ["channel_type", "status"],  # status: success, failure
            registry=self._registry,
        )

        self.anomalies_detected = Counter(
            "alert_engine_anomalies_detected_total",
            "Total anomalies detected",
            ["type"],
            registry=self._registry,
        )

        self._server_started = False

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        if self._server_started:
            logger.warning("Metrics server already started")
            return

        settings = get_settings()
        if not settings.metrics_enabled:
            logger.info("Metrics disabled, not starting server")
            return
        port = port or settings.metrics_port

        start_http_server(port, registry=self._registry)
        self._server_started = True
        logger.info("Metrics server started on port %d", port)

    def record_evaluation(self, triggered: bool) -> None:
        """Record a single rule evaluation."""
        outcome = "triggered" if triggered else "not_triggered"
        self.evaluations.labels(outcome=outcome).inc()

    def record_skip(self, reason: str) -> None:
        """Record a rule skipped during evaluation."""
        self.rules_skipped.labels(reason=reason).inc()

    def record_alert(self, severity: str) -> None:
        """Record a triggered alert."""
        self.alerts_triggered.labels(severity=severity).inc()

    def record_notification(self, channel_type: str, success: bool) -> None:
        """
        Record a notification delivery outcome.

        Args:
            channel_type: Channel type tag (webhook, slack, email, console)
            success: Whether the channel reported success
        """
        status = "success" if success else "failure"
        self.notifications.labels(channel_type=channel_type, status=status).inc()

    def record_anomaly(self, anomaly_type: str) -> None:
        """Record a detected anomaly."""
        self.anomalies_detected.labels(type=anomaly_type).inc()


# Global metrics instance
_metrics: AlertMetrics | None = None


def get_metrics() -> AlertMetrics:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = AlertMetrics()
    return _metrics
