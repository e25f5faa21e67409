"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    start_http_server,
)

from lambda_queue.constants import (
    METRIC_INVOCATION_DURATION,
    METRIC_INVOCATIONS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_PULLED,
    METRIC_RATE_LIMIT_RETRIES,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the queue worker.

    Collects metrics for:
    - Lambda invocations by outcome and their duration
    - Rate-limit retries
    - Jobs pulled and completed per queue
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.invocations = Counter(
            METRIC_INVOCATIONS,
            "Total number of Lambda invocation call chains",
            ["invocation_type", "outcome"],
            registry=self._registry,
        )

        self.invocation_duration = Histogram(
            METRIC_INVOCATION_DURATION,
            "Lambda invocation duration in seconds, including backoff",
            ["invocation_type"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
            registry=self._registry,
        )

        self.rate_limit_retries = Counter(
            METRIC_RATE_LIMIT_RETRIES,
            "Total number of retries caused by rate-limit responses",
            registry=self._registry,
        )

        self.jobs_pulled = Counter(
            METRIC_JOBS_PULLED,
            "Total number of jobs pulled from a queue",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs handled",
            ["queue", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job handling duration in seconds",
            ["queue", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self._registry,
        )

    def record_invocation(
        self,
        invocation_type: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record a finished invocation call chain."""
        self.invocations.labels(invocation_type=invocation_type, outcome=outcome).inc()
        self.invocation_duration.labels(invocation_type=invocation_type).observe(
            duration_seconds
        )

    def record_rate_limit_retry(self) -> None:
        """Record a retry after a rate-limit response."""
        self.rate_limit_retries.inc()

    def record_job_pulled(self, queue: str) -> None:
        """Record a job fetched from a queue."""
        self.jobs_pulled.labels(queue=queue).inc()

    def record_job_completed(
        self,
        queue: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a job handled by the worker pool."""
        self.jobs_completed.labels(queue=queue, status=status).inc()
        self.job_duration.labels(queue=queue, status=status).observe(duration_seconds)


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: When given, expose the default registry over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
