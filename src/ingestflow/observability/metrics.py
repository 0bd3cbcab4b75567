"""
Prometheus metrics for monitoring fetches, credentials and job fan-out.

Defines and exposes metrics for:
- Fetch attempts and latency per handler
- Item eligibility and skip reasons
- Job creation, execution and failures
- Token refresh outcomes
- Queue reclaim and dead letter activity

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from ingestflow.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the ingestflow pipeline.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_fetch("reddit", "eligible", latency=0.42)
        metrics.record_item_skipped("reddit", "min_upvotes")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Fetch handlers
        self.fetches = Counter(
            "ingestflow_fetches_total",
            "Total fetch handler invocations",
            ["handler", "outcome"],  # outcome: eligible, empty, error
        )

        self.fetch_latency = Histogram(
            "ingestflow_fetch_latency_seconds",
            "Time spent inside a single fetch invocation",
            ["handler"],
            buckets=LATENCY_BUCKETS,
        )

        self.items_skipped = Counter(
            "ingestflow_items_skipped_total",
            "Upstream items rejected by an eligibility filter",
            ["handler", "reason"],
        )

        self.pages_fetched = Counter(
            "ingestflow_pages_fetched_total",
            "Upstream listing pages requested",
            ["handler"],
        )

        # Credentials
        self.token_refreshes = Counter(
            "ingestflow_token_refreshes_total",
            "OAuth token refresh attempts",
            ["integration", "outcome"],  # outcome: success, failure
        )

        # Jobs
        self.jobs_created = Counter(
            "ingestflow_jobs_created_total",
            "Jobs persisted and handed to the executor",
            ["handler"],
        )

        self.job_creation_errors = Counter(
            "ingestflow_job_creation_errors_total",
            "Per-item failures while creating jobs",
            ["error_type"],
        )

        self.jobs_finished = Counter(
            "ingestflow_jobs_finished_total",
            "Jobs that reached a terminal state",
            ["status"],
        )

        self.scheduler_runs = Counter(
            "ingestflow_scheduler_runs_total",
            "Scheduler triggers handled",
            ["scope"],  # project, unit
        )

        self.queue_depth = Gauge(
            "ingestflow_queue_depth",
            "Number of messages in the job stream",
            ["stream"],
        )

        # Queue reclaim metrics
        self.pending_reclaimed = Counter(
            "ingestflow_queue_pending_reclaimed_total",
            "Total pending messages reclaimed via XAUTOCLAIM",
            ["queue"],
        )

        self.dlq_max_retries = Counter(
            "ingestflow_queue_dlq_max_retries_total",
            "Total messages moved to DLQ due to max retries exceeded",
            ["queue"],
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_fetch(
        self,
        handler: str,
        outcome: str,
        latency: float | None = None,
    ) -> None:
        """
        Record a fetch invocation.

        Args:
            handler: Fetch handler name
            outcome: eligible, empty or error
            latency: Optional elapsed seconds
        """
        self.fetches.labels(handler=handler, outcome=outcome).inc()
        if latency is not None:
            self.fetch_latency.labels(handler=handler).observe(latency)

    def record_item_skipped(self, handler: str, reason: str) -> None:
        """Record an item rejected by a filter."""
        self.items_skipped.labels(handler=handler, reason=reason).inc()

    def record_page(self, handler: str) -> None:
        """Record an upstream page request."""
        self.pages_fetched.labels(handler=handler).inc()

    def record_token_refresh(self, integration: str, success: bool) -> None:
        """Record a token refresh outcome."""
        outcome = "success" if success else "failure"
        self.token_refreshes.labels(integration=integration, outcome=outcome).inc()

    def record_job_created(self, handler: str) -> None:
        """Record a job handed to the executor."""
        self.jobs_created.labels(handler=handler).inc()

    def record_job_creation_error(self, error_type: str) -> None:
        """Record a per-item job creation failure."""
        self.job_creation_errors.labels(error_type=error_type).inc()

    def record_job_finished(self, status: str) -> None:
        """Record a job reaching a terminal state."""
        self.jobs_finished.labels(status=status).inc()

    def record_scheduler_run(self, scope: str) -> None:
        """Record a scheduler trigger."""
        self.scheduler_runs.labels(scope=scope).inc()

    def set_queue_depth(self, stream: str, depth: int) -> None:
        """Set job stream depth."""
        self.queue_depth.labels(stream=stream).set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
