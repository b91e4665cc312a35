"""
Run metrics: samples, streaming aggregates and the per-run registry.

Provides:
- MetricsRegistry: thread-safe record()/check()/snapshot()
- MetricsSnapshot: immutable aggregates with tag-filtered sub-metrics
- Built-in metric names (http_reqs, http_req_duration, checks, ...)

Usage:
    from loadwright.metrics import MetricsRegistry

    registry = MetricsRegistry()
    registry.record("http_req_duration", 87.0, {"scenario": "smoke"})
    snap = registry.snapshot()
    print(snap.values("http_req_duration", {"scenario": "smoke"})["p(95)"])
"""

from loadwright.metrics.sample import (
    BUILTIN_METRICS,
    CHECKS,
    DROPPED_ITERATIONS,
    HTTP_REQ_DURATION,
    HTTP_REQ_FAILED,
    HTTP_REQS,
    ITERATION_DURATION,
    ITERATION_ERRORS,
    ITERATIONS,
    SETUP_ERRORS,
    VUS,
    VUS_MAX,
    MetricKind,
    Sample,
)
from loadwright.metrics.collector import MetricHandle, MetricsRegistry, MetricsSnapshot

__all__ = [
    "BUILTIN_METRICS",
    "CHECKS",
    "DROPPED_ITERATIONS",
    "HTTP_REQ_DURATION",
    "HTTP_REQ_FAILED",
    "HTTP_REQS",
    "ITERATION_DURATION",
    "ITERATION_ERRORS",
    "ITERATIONS",
    "SETUP_ERRORS",
    "VUS",
    "VUS_MAX",
    "MetricKind",
    "Sample",
    "MetricHandle",
    "MetricsRegistry",
    "MetricsSnapshot",
]
