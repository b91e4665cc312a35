"""
MetricsRegistry: thread-safe collection of metric samples for one run.

Every sample is folded into the aggregate for its (metric, tag set) pair as
soon as it is recorded, so memory grows with the number of distinct tag
sets, not with the number of samples. Sub-metrics such as
``http_req_duration{scenario:steady_read}`` are answered at snapshot time by
merging every tag set that matches the filter.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from loadwright.exceptions import MetricKindError
from loadwright.metrics.aggregates import Aggregate, new_aggregate
from loadwright.metrics.sample import (
    BUILTIN_METRICS,
    CHECKS,
    MetricKind,
    Sample,
    TagKey,
    matches,
    tag_key,
)

logger = logging.getLogger(__name__)


class MetricHandle:
    """A declared metric; ``add()`` records a sample under its name.

    Example:
        read_duration = registry.trend("read_duration")
        read_duration.add(12.5, {"scenario": "steady_read"})
    """

    def __init__(self, registry: "MetricsRegistry", name: str, kind: MetricKind) -> None:
        self._registry = registry
        self.name = name
        self.kind = kind

    def add(self, value: float, tags: Optional[Mapping[str, Any]] = None) -> None:
        self._registry.record(self.name, value, tags)

    def __repr__(self) -> str:
        return f"MetricHandle({self.name!r}, {self.kind.value})"


class MetricsRegistry:
    """
    Collects samples emitted during a run.

    Thread-safe, in-memory. Workers call record() and check() concurrently;
    the lock only guards the aggregate update, never request issuance.

    Metrics not declared beforehand are treated as trends.

    Example:
        registry = MetricsRegistry()
        registry.record("http_req_duration", 123.0, {"scenario": "smoke"})
        registry.check("health 200", True, {"scenario": "smoke"})
        snap = registry.snapshot()
        print(snap.values("http_req_duration")["p(95)"])
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._kinds: Dict[str, MetricKind] = dict(BUILTIN_METRICS)
        self._series: Dict[Tuple[str, TagKey], Aggregate] = {}
        self.started_at = clock()

    def declare(self, name: str, kind: MetricKind) -> MetricHandle:
        """Declare a metric (idempotent for the same kind)."""
        with self._lock:
            declared = self._kinds.get(name)
            if declared is not None and declared != kind:
                raise MetricKindError(name, declared.value, kind.value)
            self._kinds[name] = kind
        return MetricHandle(self, name, kind)

    def counter(self, name: str) -> MetricHandle:
        return self.declare(name, MetricKind.COUNTER)

    def gauge(self, name: str) -> MetricHandle:
        return self.declare(name, MetricKind.GAUGE)

    def rate(self, name: str) -> MetricHandle:
        return self.declare(name, MetricKind.RATE)

    def trend(self, name: str) -> MetricHandle:
        return self.declare(name, MetricKind.TREND)

    def record(
        self,
        name: str,
        value: float,
        tags: Optional[Mapping[str, Any]] = None,
        *,
        timestamp: Optional[float] = None,
    ) -> None:
        """Record one sample."""
        self.add_sample(
            Sample(
                metric=name,
                value=float(value),
                tags=tag_key(tags),
                time=self._clock() if timestamp is None else timestamp,
            )
        )

    def add_sample(self, sample: Sample) -> None:
        if not math.isfinite(sample.value):
            logger.debug("Ignoring non-finite sample for %s: %r", sample.metric, sample.value)
            return
        key = (sample.metric, sample.tags)
        with self._lock:
            aggregate = self._series.get(key)
            if aggregate is None:
                kind = self._kinds.setdefault(sample.metric, MetricKind.TREND)
                aggregate = new_aggregate(kind)
                self._series[key] = aggregate
            aggregate.add(sample.value, sample.time)

    def check(
        self, label: str, ok: bool, tags: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """Record a check result into the ``checks`` rate. Returns ``ok``."""
        check_tags = dict(tags or {})
        check_tags["check"] = label
        self.record(CHECKS, 1.0 if ok else 0.0, check_tags)
        return bool(ok)

    def snapshot(self, finished_at: Optional[float] = None) -> "MetricsSnapshot":
        """Copy every aggregate into an immutable snapshot."""
        end = self._clock() if finished_at is None else finished_at
        with self._lock:
            series = {key: agg.copy() for key, agg in self._series.items()}
            kinds = dict(self._kinds)
        return MetricsSnapshot(
            kinds=kinds,
            series=series,
            duration=max(0.0, end - self.started_at),
        )


class MetricsSnapshot:
    """
    Point-in-time view of every aggregate in a registry.

    Never mutated after construction; queries merge copies.

    Attributes:
        duration: Seconds between registry creation and the snapshot.
    """

    def __init__(
        self,
        *,
        kinds: Dict[str, MetricKind],
        series: Dict[Tuple[str, TagKey], Aggregate],
        duration: float,
    ) -> None:
        self._kinds = kinds
        self._series = series
        self.duration = duration

    def names(self) -> List[str]:
        """Names of metrics that received at least one sample, sorted."""
        return sorted({name for name, _ in self._series})

    def kind(self, name: str) -> Optional[MetricKind]:
        return self._kinds.get(name)

    def get(
        self, name: str, tags: Optional[Mapping[str, Any]] = None
    ) -> Optional[Aggregate]:
        """Merged aggregate for ``name`` over tag sets matching ``tags``.

        Returns None when no matching sample exists.
        """
        wanted = tag_key(tags)
        merged: Optional[Aggregate] = None
        # Sorting keeps the merge order fixed; the result is order-free anyway.
        for (metric, key), aggregate in sorted(self._series.items()):
            if metric != name or not matches(key, wanted):
                continue
            if merged is None:
                merged = aggregate.copy()
            else:
                merged.merge(aggregate)
        return merged

    def values(
        self, name: str, tags: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, float]:
        aggregate = self.get(name, tags)
        if aggregate is None:
            return {}
        return aggregate.values(self.duration)

    def tag_values(self, tag: str, name: Optional[str] = None) -> List[str]:
        """Distinct values of ``tag`` seen on any (or one) metric, sorted."""
        found = set()
        for metric, key in self._series:
            if name is not None and metric != name:
                continue
            for k, v in key:
                if k == tag:
                    found.add(v)
        return sorted(found)

    def checks(self, tags: Optional[Mapping[str, Any]] = None) -> List[Tuple[str, int, int]]:
        """(label, passes, fails) per check label, in label order."""
        out = []
        for label in self.tag_values("check", CHECKS):
            filt = dict(tags or {})
            filt["check"] = label
            aggregate = self.get(CHECKS, filt)
            if aggregate is None:
                continue
            out.append((label, aggregate.passes, aggregate.fails))
        return out
