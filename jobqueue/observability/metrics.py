"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from jobqueue.constants import (
    METRIC_JOB_DURATION,
    METRIC_JOB_EVENTS,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_SUBMITTED,
    METRIC_QUEUE_DEPTH,
    METRIC_WORKER_ERRORS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Queue depth per type and state
    - Job submissions, claims and completions
    - Job execution duration
    - Lifecycle events and worker errors
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # Queue depth gauge (by type and state)
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs per type and state",
            ["job_type", "state"],
            registry=self._registry,
        )

        # Jobs submitted counter
        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs submitted",
            ["job_type", "priority"],
            registry=self._registry,
        )

        # Jobs claimed counter
        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed by workers",
            ["job_type"],
            registry=self._registry,
        )

        # Jobs completed counter
        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs finished",
            ["job_type", "status"],
            registry=self._registry,
        )

        # Job duration histogram
        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["job_type", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        # Lifecycle events counter
        self.job_events = Counter(
            METRIC_JOB_EVENTS,
            "Total number of lifecycle events emitted",
            ["event"],
            registry=self._registry,
        )

        # Worker errors counter
        self.worker_errors = Counter(
            METRIC_WORKER_ERRORS,
            "Total number of errors absorbed by worker loops",
            ["job_type"],
            registry=self._registry,
        )

    def record_job_submitted(self, job_type: str, priority: int) -> None:
        """Record a job submission."""
        self.jobs_submitted.labels(job_type=job_type, priority=str(priority)).inc()

    def record_job_claimed(self, job_type: str) -> None:
        """Record a job claimed by a worker."""
        self.jobs_claimed.labels(job_type=job_type).inc()

    def record_job_completed(
        self,
        job_type: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a finished job execution."""
        self.jobs_completed.labels(job_type=job_type, status=status).inc()
        self.job_duration.labels(job_type=job_type, status=status).observe(
            duration_seconds
        )

    def record_job_event(self, event: str) -> None:
        """Record an emitted lifecycle event."""
        self.job_events.labels(event=event).inc()

    def record_worker_error(self, job_type: str) -> None:
        """Record an error absorbed by a worker loop."""
        self.worker_errors.labels(job_type=job_type).inc()

    def update_queue_depth(self, job_type: str, state: str, depth: int) -> None:
        """Update queue depth for a job type and state."""
        self.queue_depth.labels(job_type=job_type, state=state).set(depth)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
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


def serve_metrics(port: int) -> None:
    """
    Expose metrics over HTTP for processes without an API server.

    Args:
        port: Port to listen on.
    """
    start_http_server(port)
