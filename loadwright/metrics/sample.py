"""
Metric samples, kinds and the built-in metric names.

A sample is a single observation; the registry folds it into an aggregate
immediately and does not keep it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

TagKey = Tuple[Tuple[str, str], ...]


class MetricKind(str, Enum):
    """How samples of a metric are aggregated."""

    COUNTER = "counter"
    GAUGE = "gauge"
    RATE = "rate"
    TREND = "trend"


# Built-in metric names. Thresholds and reports refer to these strings.
HTTP_REQS = "http_reqs"
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"
CHECKS = "checks"
ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
ITERATION_ERRORS = "iteration_errors"
DROPPED_ITERATIONS = "dropped_iterations"
SETUP_ERRORS = "setup_errors"
VUS = "vus"
VUS_MAX = "vus_max"

BUILTIN_METRICS: Dict[str, MetricKind] = {
    HTTP_REQS: MetricKind.COUNTER,
    HTTP_REQ_DURATION: MetricKind.TREND,
    HTTP_REQ_FAILED: MetricKind.RATE,
    CHECKS: MetricKind.RATE,
    ITERATIONS: MetricKind.COUNTER,
    ITERATION_DURATION: MetricKind.TREND,
    ITERATION_ERRORS: MetricKind.COUNTER,
    DROPPED_ITERATIONS: MetricKind.COUNTER,
    SETUP_ERRORS: MetricKind.COUNTER,
    VUS: MetricKind.GAUGE,
    VUS_MAX: MetricKind.GAUGE,
}


def tag_key(tags: Optional[Mapping[str, object]]) -> TagKey:
    """Canonical, hashable form of a tag mapping. None values are dropped."""
    if not tags:
        return ()
    return tuple(sorted((str(k), str(v)) for k, v in tags.items() if v is not None))


def matches(key: TagKey, wanted: TagKey) -> bool:
    """True if every (tag, value) pair of ``wanted`` is present in ``key``."""
    if not wanted:
        return True
    have = dict(key)
    return all(have.get(k) == v for k, v in wanted)


@dataclass(frozen=True)
class Sample:
    """
    One observation of a metric.

    Attributes:
        metric: Metric name.
        value: Numeric value (booleans count as 1/0).
        tags: Canonical tag tuple.
        time: Wall-clock timestamp of the observation.
    """

    metric: str
    value: float
    tags: TagKey = ()
    time: float = field(default_factory=time.time)
