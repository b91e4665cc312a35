"""
Streaming aggregates, one class per metric kind.

Every aggregate is updated in a single pass and can be merged with another
aggregate of the same kind. Both operations are commutative, so the final
numbers do not depend on the order in which samples arrived:

- sums are kept as exact partial sums (Shewchuk) and rounded once on read;
- trend percentiles come from a log-bucketed histogram. They are
  approximate: the relative error is bounded by half the bucket growth
  factor (about 1%). min and max are exact.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Union

from loadwright.metrics.sample import MetricKind

BUCKET_GROWTH = 1.02
_LOG_GROWTH = math.log(BUCKET_GROWTH)


class _ExactSum:
    """Order-independent float accumulator."""

    __slots__ = ("_partials",)

    def __init__(self) -> None:
        self._partials: List[float] = []

    def add(self, x: float) -> None:
        i = 0
        for y in self._partials:
            if abs(x) < abs(y):
                x, y = y, x
            hi = x + y
            lo = y - (hi - x)
            if lo:
                self._partials[i] = lo
                i += 1
            x = hi
        self._partials[i:] = [x]

    def merge(self, other: "_ExactSum") -> None:
        for partial in other._partials:
            self.add(partial)

    def copy(self) -> "_ExactSum":
        clone = _ExactSum()
        clone._partials = list(self._partials)
        return clone

    @property
    def value(self) -> float:
        return math.fsum(self._partials)


class _LogHistogram:
    """Sparse histogram with geometrically growing buckets.

    Bucket ``i`` holds values in ``[G**i, G**(i+1))`` for positive values;
    negative values are mirrored into a second map and zeros counted apart.
    """

    __slots__ = ("_pos", "_neg", "_zeros", "count")

    def __init__(self) -> None:
        self._pos: Dict[int, int] = {}
        self._neg: Dict[int, int] = {}
        self._zeros = 0
        self.count = 0

    @staticmethod
    def _index(value: float) -> int:
        return math.floor(math.log(value) / _LOG_GROWTH)

    def observe(self, value: float) -> None:
        self.count += 1
        if value > 0:
            idx = self._index(value)
            self._pos[idx] = self._pos.get(idx, 0) + 1
        elif value < 0:
            idx = self._index(-value)
            self._neg[idx] = self._neg.get(idx, 0) + 1
        else:
            self._zeros += 1

    def merge(self, other: "_LogHistogram") -> None:
        for idx, n in other._pos.items():
            self._pos[idx] = self._pos.get(idx, 0) + n
        for idx, n in other._neg.items():
            self._neg[idx] = self._neg.get(idx, 0) + n
        self._zeros += other._zeros
        self.count += other.count

    def copy(self) -> "_LogHistogram":
        clone = _LogHistogram()
        clone._pos = dict(self._pos)
        clone._neg = dict(self._neg)
        clone._zeros = self._zeros
        clone.count = self.count
        return clone

    def _ordered_buckets(self):
        # (lower, upper, count) from the most negative to the most positive.
        for idx in sorted(self._neg, reverse=True):
            yield -(BUCKET_GROWTH ** (idx + 1)), -(BUCKET_GROWTH**idx), self._neg[idx]
        if self._zeros:
            yield 0.0, 0.0, self._zeros
        for idx in sorted(self._pos):
            yield BUCKET_GROWTH**idx, BUCKET_GROWTH ** (idx + 1), self._pos[idx]

    def percentile(self, p: float) -> Optional[float]:
        if self.count == 0:
            return None
        target = self.count * (p / 100.0)
        cumulative = 0
        last_upper = 0.0
        for lower, upper, n in self._ordered_buckets():
            if cumulative + n >= target:
                ratio = (target - cumulative) / n
                return lower + ratio * (upper - lower)
            cumulative += n
            last_upper = upper
        return last_upper


class CounterAggregate:
    kind = MetricKind.COUNTER

    def __init__(self) -> None:
        self._sum = _ExactSum()
        self.samples = 0

    def add(self, value: float, time: float = 0.0) -> None:
        self._sum.add(value)
        self.samples += 1

    def merge(self, other: "CounterAggregate") -> None:
        self._sum.merge(other._sum)
        self.samples += other.samples

    def copy(self) -> "CounterAggregate":
        clone = CounterAggregate()
        clone._sum = self._sum.copy()
        clone.samples = self.samples
        return clone

    @property
    def total(self) -> float:
        return self._sum.value

    def values(self, duration: float = 0.0) -> Dict[str, float]:
        total = self.total
        return {
            "count": total,
            "rate": total / duration if duration > 0 else 0.0,
        }


class GaugeAggregate:
    kind = MetricKind.GAUGE

    def __init__(self) -> None:
        self.last: Optional[float] = None
        self._last_time = -math.inf
        self.min = math.inf
        self.max = -math.inf
        self.samples = 0

    def _is_newer(self, value: float, time: float) -> bool:
        # Latest timestamp wins; ties go to the larger value.
        if self.last is None:
            return True
        return (time, value) > (self._last_time, self.last)

    def add(self, value: float, time: float = 0.0) -> None:
        if self._is_newer(value, time):
            self.last = value
            self._last_time = time
        self.min = min(self.min, value)
        self.max = max(self.max, value)
        self.samples += 1

    def merge(self, other: "GaugeAggregate") -> None:
        if other.last is None:
            return
        if self._is_newer(other.last, other._last_time):
            self.last = other.last
            self._last_time = other._last_time
        self.min = min(self.min, other.min)
        self.max = max(self.max, other.max)
        self.samples += other.samples

    def copy(self) -> "GaugeAggregate":
        clone = GaugeAggregate()
        clone.last = self.last
        clone._last_time = self._last_time
        clone.min = self.min
        clone.max = self.max
        clone.samples = self.samples
        return clone

    def values(self, duration: float = 0.0) -> Dict[str, float]:
        if self.samples == 0:
            return {}
        return {"value": self.last, "min": self.min, "max": self.max}


class RateAggregate:
    kind = MetricKind.RATE

    def __init__(self) -> None:
        self.passes = 0
        self.samples = 0

    def add(self, value: float, time: float = 0.0) -> None:
        if value:
            self.passes += 1
        self.samples += 1

    def merge(self, other: "RateAggregate") -> None:
        self.passes += other.passes
        self.samples += other.samples

    def copy(self) -> "RateAggregate":
        clone = RateAggregate()
        clone.passes = self.passes
        clone.samples = self.samples
        return clone

    @property
    def fails(self) -> int:
        return self.samples - self.passes

    @property
    def rate(self) -> Optional[float]:
        if self.samples == 0:
            return None
        return self.passes / self.samples

    def values(self, duration: float = 0.0) -> Dict[str, float]:
        if self.samples == 0:
            return {}
        return {"rate": self.rate, "passes": self.passes, "fails": self.fails}


class TrendAggregate:
    kind = MetricKind.TREND

    REPORTED_PERCENTILES = (90, 95, 99)

    def __init__(self) -> None:
        self._hist = _LogHistogram()
        self._sum = _ExactSum()
        self.min = math.inf
        self.max = -math.inf

    @property
    def samples(self) -> int:
        return self._hist.count

    def add(self, value: float, time: float = 0.0) -> None:
        self._hist.observe(value)
        self._sum.add(value)
        self.min = min(self.min, value)
        self.max = max(self.max, value)

    def merge(self, other: "TrendAggregate") -> None:
        self._hist.merge(other._hist)
        self._sum.merge(other._sum)
        self.min = min(self.min, other.min)
        self.max = max(self.max, other.max)

    def copy(self) -> "TrendAggregate":
        clone = TrendAggregate()
        clone._hist = self._hist.copy()
        clone._sum = self._sum.copy()
        clone.min = self.min
        clone.max = self.max
        return clone

    def percentile(self, p: float) -> Optional[float]:
        """Approximate p-th percentile (0-100), clamped to the exact min/max."""
        estimate = self._hist.percentile(p)
        if estimate is None:
            return None
        return min(max(estimate, self.min), self.max)

    @property
    def avg(self) -> Optional[float]:
        if self.samples == 0:
            return None
        return self._sum.value / self.samples

    def values(self, duration: float = 0.0) -> Dict[str, float]:
        if self.samples == 0:
            return {}
        out = {
            "count": self.samples,
            "avg": self.avg,
            "min": self.min,
            "med": self.percentile(50),
            "max": self.max,
        }
        for p in self.REPORTED_PERCENTILES:
            out[f"p({p})"] = self.percentile(p)
        return out


Aggregate = Union[CounterAggregate, GaugeAggregate, RateAggregate, TrendAggregate]

AGGREGATE_TYPES = {
    MetricKind.COUNTER: CounterAggregate,
    MetricKind.GAUGE: GaugeAggregate,
    MetricKind.RATE: RateAggregate,
    MetricKind.TREND: TrendAggregate,
}


def new_aggregate(kind: MetricKind) -> Aggregate:
    return AGGREGATE_TYPES[kind]()
