"""
Worker metrics.

Tracks per-operation latency, published files and job outcomes.
A batch worker has no scrape endpoint; use `push_metrics()` to hand the
registry to a Pushgateway when one is configured.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    REGISTRY,
    push_to_gateway,
)

# =============================================================================
# Collectors
# =============================================================================

# Operation Latency - Per transform
operation_latency_seconds = Histogram(
    "imageworker_operation_latency_seconds",
    "Time spent in each pipeline operation",
    labelnames=["op", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

operations_total = Counter(
    "imageworker_operations_total",
    "Total number of pipeline operations executed",
    labelnames=["op", "status"]
)

published_files_total = Counter(
    "imageworker_published_files_total",
    "Total number of files handed to the publisher",
    labelnames=["status"]
)

jobs_total = Counter(
    "imageworker_jobs_total",
    "Total number of worker runs",
    labelnames=["status"]
)


# =============================================================================
# Recording helpers
# =============================================================================

@contextmanager
def track_operation_latency(op: str):
    """
    Context manager to track operation latency.

    Usage:
        with track_operation_latency("thumbnail"):
            # do work
    """
    start = time.time()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.time() - start
        operation_latency_seconds.labels(op=op, status=status).observe(duration)
        operations_total.labels(op=op, status=status).inc()


def record_publish(status: str):
    """Record a publish attempt."""
    published_files_total.labels(status=status).inc()


def record_job_completion(status: str):
    """Count a finished run by outcome: completed, completed_with_errors or failed."""
    jobs_total.labels(status=status).inc()


def push_metrics(gateway: str, job: str = "imageworker"):
    """Push the default registry to a Prometheus Pushgateway."""
    push_to_gateway(gateway, job=job, registry=REGISTRY)
