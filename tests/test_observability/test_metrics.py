"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from ecowatch.observability.metrics import get_metrics


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestMetricsCollector:
    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_alerts_created(self):
        metrics = get_metrics()
        before = _sample("ecowatch_alerts_created_total", alert_type="HUMIDITY")

        metrics.record_alerts_created("HUMIDITY", 3)

        after = _sample("ecowatch_alerts_created_total", alert_type="HUMIDITY")
        assert after - before == 3

    def test_record_notification_with_latency(self):
        metrics = get_metrics()
        before = _sample("ecowatch_notifications_total", channel="sms", status="timeout")
        before_count = _sample(
            "ecowatch_notification_latency_seconds_count", channel="sms",
        )

        metrics.record_notification("sms", "timeout", latency=10.0)

        assert _sample(
            "ecowatch_notifications_total", channel="sms", status="timeout",
        ) - before == 1
        assert _sample(
            "ecowatch_notification_latency_seconds_count", channel="sms",
        ) - before_count == 1

    def test_record_notification_without_latency(self):
        metrics = get_metrics()
        before_count = _sample(
            "ecowatch_notification_latency_seconds_count", channel="email",
        )

        metrics.record_notification("email", "rate_limited")

        assert _sample(
            "ecowatch_notification_latency_seconds_count", channel="email",
        ) == before_count

    def test_record_reading(self):
        metrics = get_metrics()
        before = _sample("ecowatch_readings_evaluated_total", outcome="error")
        metrics.record_reading("error")
        assert _sample("ecowatch_readings_evaluated_total", outcome="error") - before == 1
