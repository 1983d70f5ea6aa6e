"""Tests for the Prometheus metrics collector."""

from prometheus_client import REGISTRY

from src.observability.metrics import get_metrics


def _sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsCollector:
    """Counters move by the expected amounts on the global registry."""

    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_run(self):
        metrics = get_metrics()
        labels = {"trigger": "test_trigger", "status": "success"}
        before_runs = _sample("alert_scheduler_runs_total", labels)
        before_processed = _sample(
            "alert_scheduler_alerts_processed_total", {"trigger": "test_trigger"}
        )

        metrics.record_run("test_trigger", "success", processed=3, latency=0.2)

        assert _sample("alert_scheduler_runs_total", labels) == before_runs + 1
        assert _sample(
            "alert_scheduler_alerts_processed_total", {"trigger": "test_trigger"}
        ) == before_processed + 3

    def test_record_push_result(self):
        metrics = get_metrics()
        success = _sample("alert_scheduler_push_deliveries_total", {"status": "success"})
        failure = _sample("alert_scheduler_push_deliveries_total", {"status": "failure"})

        metrics.record_push_result(success_count=4, failure_count=1)

        assert _sample(
            "alert_scheduler_push_deliveries_total", {"status": "success"}
        ) == success + 4
        assert _sample(
            "alert_scheduler_push_deliveries_total", {"status": "failure"}
        ) == failure + 1

    def test_partial_materialization_by_step(self):
        metrics = get_metrics()
        labels = {"step": "organization_feed"}
        before = _sample("alert_scheduler_partial_materializations_total", labels)

        metrics.record_partial_materialization("organization_feed")

        assert _sample("alert_scheduler_partial_materializations_total", labels) == before + 1

    def test_claims_lost(self):
        metrics = get_metrics()
        before = _sample("alert_scheduler_claims_lost_total")

        metrics.record_claim_lost()
        metrics.record_claim_lost()

        assert _sample("alert_scheduler_claims_lost_total") == before + 2
