"""
Prometheus metrics for the scheduled alert pipeline.

Counts runs per trigger adapter, claim outcomes, partial
materializations and push delivery results. Exposed over HTTP for
Prometheus scraping via ``start_server``.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for run latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for scheduled alert processing.

    Usage:
        metrics = get_metrics()
        metrics.record_run("periodic_runner", "success", processed=2, latency=0.4)
        metrics.record_claim_lost()
    """

    def __init__(self):
        self.runs = Counter(
            "alert_scheduler_runs_total",
            "Pipeline runs by trigger adapter and outcome",
            ["trigger", "status"],  # status: success, partial, failed, timeout
        )

        self.alerts_processed = Counter(
            "alert_scheduler_alerts_processed_total",
            "Scheduled alerts claimed and materialized",
            ["trigger"],
        )

        self.claims_lost = Counter(
            "alert_scheduler_claims_lost_total",
            "Claims rejected because another runner got there first",
        )

        self.partial_materializations = Counter(
            "alert_scheduler_partial_materializations_total",
            "Materializations where a secondary write failed",
            ["step"],  # organization_feed, back_reference
        )

        self.org_scan_failures = Counter(
            "alert_scheduler_org_scan_failures_total",
            "Organization collections that could not be read during a scan",
        )

        self.push_deliveries = Counter(
            "alert_scheduler_push_deliveries_total",
            "Push notification deliveries by outcome",
            ["status"],  # success, failure
        )

        self.fanout_errors = Counter(
            "alert_scheduler_fanout_errors_total",
            "Fanout attempts that raised before the gateway reported",
        )

        self.run_latency = Histogram(
            "alert_scheduler_run_latency_seconds",
            "Wall time of a full scan/claim/fanout run",
            ["trigger"],
            buckets=LATENCY_BUCKETS,
        )

    def record_run(
        self,
        trigger: str,
        status: str,
        processed: int = 0,
        latency: float | None = None,
    ) -> None:
        """Record the outcome of one pipeline run."""
        self.runs.labels(trigger=trigger, status=status).inc()
        if processed:
            self.alerts_processed.labels(trigger=trigger).inc(processed)
        if latency is not None:
            self.run_latency.labels(trigger=trigger).observe(latency)

    def record_claim_lost(self) -> None:
        self.claims_lost.inc()

    def record_partial_materialization(self, step: str) -> None:
        self.partial_materializations.labels(step=step).inc()

    def record_org_scan_failure(self) -> None:
        self.org_scan_failures.inc()

    def record_push_result(self, success_count: int, failure_count: int) -> None:
        """Record gateway-reported delivery counts for one multicast."""
        if success_count:
            self.push_deliveries.labels(status="success").inc(success_count)
        if failure_count:
            self.push_deliveries.labels(status="failure").inc(failure_count)

    def record_fanout_error(self) -> None:
        self.fanout_errors.inc()

    def start_server(self, port: int | None = None) -> None:
        """
        Start HTTP server for Prometheus scraping.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
