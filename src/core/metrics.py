"""
Prometheus Metrics for Observability

Tracks stage latency, provider API calls, polling and pipeline outcomes.
Exposes /api/v1/metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Stage Latency - submit through terminal poll
pipeline_stage_latency_seconds = Histogram(
    "pipeline_stage_latency_seconds",
    "Time spent in each pipeline stage",
    labelnames=["stage", "status"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 240.0, 300.0, 600.0]
)

# Provider API Calls
provider_api_calls_total = Counter(
    "provider_api_calls_total",
    "Total number of inference provider API calls",
    labelnames=["operation", "status", "http_status"]
)

# Polls needed per stage
provider_poll_attempts = Histogram(
    "provider_poll_attempts",
    "Number of status polls issued per stage",
    labelnames=["stage"],
    buckets=[1, 2, 5, 10, 20, 40, 60, 75]
)

# Runs Counter
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total number of pipeline runs",
    labelnames=["status", "failure_stage", "kind"]
)

# Active Runs
pipeline_active_runs = Gauge(
    "pipeline_active_runs",
    "Number of pipeline runs currently executing"
)

# Blob uploads
storage_uploads_total = Counter(
    "storage_uploads_total",
    "Total number of blob storage uploads",
    labelnames=["backend", "status"]
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0]
)

# Application Info
app_info = Info(
    "child_pipeline_app",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_stage_latency(stage: str):
    """
    Context manager to track stage latency.

    Yields a mutable outcome; callers set outcome["status"] to the stage's
    error kind when it ends in a StageError. Exceptions record "error".

    Usage:
        with track_stage_latency("synthesis") as outcome:
            result = await runner.run(...)
            if not result.ok:
                outcome["status"] = result.kind.value
    """
    start = time.time()
    outcome = {"status": "success"}
    try:
        yield outcome
    except BaseException:
        outcome["status"] = "error"
        raise
    finally:
        duration = time.time() - start
        pipeline_stage_latency_seconds.labels(stage=stage, status=outcome["status"]).observe(duration)


def record_provider_call(operation: str, status: str, http_status: int = 0):
    """Record an inference provider API call."""
    provider_api_calls_total.labels(
        operation=operation,
        status=status,
        http_status=str(http_status)
    ).inc()


def record_poll_attempts(stage: str, attempts: int):
    """Record how many polls a stage needed."""
    provider_poll_attempts.labels(stage=stage).observe(attempts)


def track_active_run():
    """Context manager counting a run as active until it exits, however it exits."""
    return pipeline_active_runs.track_inprogress()


def record_run_completion(status: str, failure_stage: str = "none", kind: str = "none"):
    """Record run completion."""
    pipeline_runs_total.labels(status=status, failure_stage=failure_stage, kind=kind).inc()


def record_upload(backend: str, status: str):
    storage_uploads_total.labels(backend=backend, status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
