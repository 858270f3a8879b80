"""
Prometheus metrics for the alerting pipeline.

Defines and exposes metrics for:
- Alert records created per metric type
- Notification outcomes per channel and status
- Provider call latency

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import Counter, Histogram, start_http_server

from ecowatch.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for provider latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the alert engine.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_alerts_created("AQI", 3)
        metrics.record_notification("email", "sent", latency=0.4)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""
        self.alerts_created = Counter(
            "ecowatch_alerts_created_total",
            "Total number of alert records persisted",
            ["alert_type"],
        )

        self.notifications = Counter(
            "ecowatch_notifications_total",
            "Notification delivery outcomes",
            ["channel", "status"],  # status: sent, failed, timeout, rate_limited, unavailable
        )

        self.notification_latency = Histogram(
            "ecowatch_notification_latency_seconds",
            "Provider call latency",
            ["channel"],
            buckets=LATENCY_BUCKETS,
        )

        self.readings_evaluated = Counter(
            "ecowatch_readings_evaluated_total",
            "Readings passed through alert evaluation",
            ["outcome"],  # outcome: no_alerts, alerted, error
        )

        self._server_started = False

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        if self._server_started:
            return

        port = port or get_settings().metrics_port
        start_http_server(port)
        self._server_started = True
        logger.info("Metrics server started on port %d", port)

    def record_alerts_created(self, alert_type: str, count: int = 1) -> None:
        """Record persisted alert records for one metric type."""
        self.alerts_created.labels(alert_type=alert_type).inc(count)

    def record_notification(
        self,
        channel: str,
        status: str,
        latency: float | None = None,
    ) -> None:
        """
        Record a single delivery outcome.

        Args:
            channel: Channel name (email, sms)
            status: SendResult status
            latency: Provider call duration in seconds, if a call was made
        """
        self.notifications.labels(channel=channel, status=status).inc()
        if latency is not None:
            self.notification_latency.labels(channel=channel).observe(latency)

    def record_reading(self, outcome: str) -> None:
        """Record the outcome of evaluating one reading."""
        self.readings_evaluated.labels(outcome=outcome).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
