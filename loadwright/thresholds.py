"""
Threshold parsing and evaluation.

A threshold pairs a metric key with a condition, k6 style:

    {
        "http_req_failed": ["rate<0.01"],
        "http_req_duration{scenario:steady_read}": ["p(95)<400"],
    }

Evaluation is a pure function of a metrics snapshot.
"""

from __future__ import annotations

import operator
import re
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict

from loadwright.exceptions import ConfigError
from loadwright.metrics.collector import MetricsSnapshot
from loadwright.metrics.sample import MetricKind

_KEY_RE = re.compile(r"^\s*(?P<metric>[A-Za-z_][\w.\-]*)\s*(?:\{(?P<tags>[^{}]*)\})?\s*$")
_CONDITION_RE = re.compile(
    r"^\s*(?P<agg>rate|count|avg|min|max|med|value|p\(\s*(?P<p>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op><=|>=|<|>)\s*"
    r"(?P<target>[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$"
)

_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class Threshold(BaseModel):
    """
    One parsed pass/fail condition.

    Attributes:
        metric: Metric name.
        tags: Tag filter restricting the metric to matching samples.
        aggregation: rate, count, avg, min, max, med, value or p(N).
        percentile: N for p(N) aggregations.
        op: Comparison operator.
        target: Right-hand side of the comparison.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    metric: str
    tags: Tuple[Tuple[str, str], ...] = ()
    aggregation: str
    percentile: Optional[float] = None
    op: str
    target: float

    @property
    def key(self) -> str:
        if not self.tags:
            return self.metric
        inner = ",".join(f"{k}:{v}" for k, v in self.tags)
        return f"{self.metric}{{{inner}}}"

    @property
    def condition(self) -> str:
        return f"{self.aggregation}{self.op}{self.target:g}"

    def __str__(self) -> str:
        return f"{self.key} {self.condition}"


class ThresholdVerdict(BaseModel):
    """Outcome of one threshold. ``observed`` is None when there was no data."""

    model_config = ConfigDict(frozen=True)

    threshold: Threshold
    observed: Optional[float] = None
    passed: bool

    @property
    def label(self) -> str:
        return str(self.threshold)


ThresholdSpec = Union[Mapping[str, Sequence[str]], Iterable[Threshold]]


def parse_key(key: str) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
    """Split ``metric{tag:value,...}`` into the metric name and tag filter."""
    match = _KEY_RE.match(key)
    if not match:
        raise ConfigError(
            f"Invalid threshold metric key: {key!r}", code="invalid_threshold"
        )
    tags: List[Tuple[str, str]] = []
    raw_tags = match.group("tags")
    if raw_tags is not None:
        for part in raw_tags.split(","):
            name, sep, value = part.partition(":")
            if not sep or not name.strip() or not value.strip():
                raise ConfigError(
                    f"Invalid tag filter {part!r} in threshold key {key!r}",
                    code="invalid_threshold",
                )
            tags.append((name.strip(), value.strip()))
    return match.group("metric"), tuple(sorted(tags))


def parse_threshold(key: str, expression: str) -> Threshold:
    """Parse one ``key`` / ``expression`` pair, e.g. ("checks", "rate>0.95")."""
    metric, tags = parse_key(key)
    match = _CONDITION_RE.match(expression)
    if not match:
        raise ConfigError(
            f"Invalid threshold expression {expression!r} for {key!r}",
            code="invalid_threshold",
            details={"expression": expression},
        )
    percentile = float(match.group("p")) if match.group("p") is not None else None
    if percentile is not None and not 0 <= percentile <= 100:
        raise ConfigError(
            f"Percentile out of range in {expression!r}", code="invalid_threshold"
        )
    aggregation = match.group("agg").replace(" ", "")
    if percentile is not None:
        aggregation = f"p({percentile:g})"
    return Threshold(
        metric=metric,
        tags=tags,
        aggregation=aggregation,
        percentile=percentile,
        op=match.group("op"),
        target=float(match.group("target")),
    )


def parse_thresholds(spec: Optional[ThresholdSpec]) -> Tuple[Threshold, ...]:
    """Normalize a k6-style mapping (or already parsed thresholds)."""
    if not spec:
        return ()
    if isinstance(spec, Mapping):
        parsed = []
        for key, expressions in spec.items():
            if isinstance(expressions, str):
                expressions = [expressions]
            for expression in expressions:
                parsed.append(parse_threshold(key, expression))
        return tuple(parsed)
    return tuple(spec)


def observe(threshold: Threshold, snapshot: MetricsSnapshot) -> Optional[float]:
    """The aggregate value a threshold compares against, or None."""
    aggregate = snapshot.get(threshold.metric, dict(threshold.tags))
    if aggregate is None:
        return None
    if threshold.percentile is not None or threshold.aggregation == "med":
        if aggregate.kind != MetricKind.TREND:
            return None
        p = 50.0 if threshold.percentile is None else threshold.percentile
        return aggregate.percentile(p)
    return aggregate.values(snapshot.duration).get(threshold.aggregation)


def evaluate(
    thresholds: Iterable[Threshold], snapshot: MetricsSnapshot
) -> List[ThresholdVerdict]:
    """
    Judge every threshold against the snapshot.

    A threshold whose metric has no matching samples, or whose aggregation
    does not apply to the metric kind, fails.

    Returns:
        One verdict per threshold, in input order.
    """
    verdicts = []
    for threshold in thresholds:
        observed = observe(threshold, snapshot)
        passed = observed is not None and _OPERATORS[threshold.op](
            observed, threshold.target
        )
        verdicts.append(
            ThresholdVerdict(threshold=threshold, observed=observed, passed=passed)
        )
    return verdicts
