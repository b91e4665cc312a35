"""
Data models for scenarios and run results.

Scenario side:
- Stage: one linear ramp segment (duration, target)
- Scenario: executor, stages, thresholds and entry function
- ramping_vus / constant_vus / shared_iterations / ramping_arrival_rate builders

Result side:
- MetricSummary, CheckStat, ScenarioSummary
- RunSummary: the frozen summary built once at the end of a run

Durations accept seconds or k6 strings ("30s", "1m30s", "250ms").
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from loadwright.exceptions import ConfigError
from loadwright.metrics.collector import MetricsSnapshot
from loadwright.metrics.sample import CHECKS, MetricKind
from loadwright.thresholds import Threshold, ThresholdSpec, ThresholdVerdict, parse_thresholds

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

DurationLike = Union[int, float, str]


def parse_duration(value: DurationLike) -> float:
    """
    Convert a duration to seconds.

    Numbers are taken as seconds; strings use k6 notation ("30s", "1m30s",
    "250ms", "2h").
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("empty duration")
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            pos = match.end()
        if pos != len(text):
            try:
                seconds = float(text)
            except ValueError:
                raise ValueError(f"invalid duration: {value!r}") from None
    if seconds < 0:
        raise ValueError(f"duration must be non-negative: {value!r}")
    return seconds


def format_duration(seconds: float) -> str:
    """Inverse of parse_duration for display: 270 -> '4m30s'."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if minutes:
        out += f"{minutes}m"
    if secs or not out:
        out += f"{secs:g}s"
    return out


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutorKind(str, Enum):
    """Scheduling model of a scenario."""

    RAMPING_VUS = "ramping-vus"
    RAMPING_ARRIVAL_RATE = "ramping-arrival-rate"


class Stage(BaseModel):
    """
    A linear ramp segment.

    Attributes:
        duration: Seconds spent moving from the previous target to this one.
        target: VU count (ramping-vus) or iterations per time unit
            (ramping-arrival-rate) reached at the end of the stage.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    duration: float = Field(..., ge=0)
    target: float = Field(..., ge=0)

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> float:
        return parse_duration(value)


class Scenario(BaseModel):
    """
    A named workload: executor, stages, thresholds and entry function.

    Frozen; build it with ``Scenario.create`` (or the ``ramping_vus`` /
    ``ramping_arrival_rate`` / ``constant_vus`` / ``shared_iterations``
    helpers) to get ``ConfigError`` instead of a pydantic ValidationError.

    Attributes:
        name: Scenario name, used as the ``scenario`` tag on every sample.
        executor: Scheduling model.
        fn: Entry function, called with an IterationContext per iteration.
        stages: Ramp timeline.
        thresholds: Pass/fail conditions evaluated at run end.
        setup: Optional function run once before iterations; its return
            value is exposed to iterations as ``ctx.data``.
        start_vus: VUs at t=0 (ramping-vus).
        graceful_ramp_down: Seconds a retired VU may spend finishing its
            iteration (ramping-vus).
        iterations: Stop after this many iterations have started.
        start_rate: Iterations per time unit at t=0 (ramping-arrival-rate).
        time_unit: Seconds the rate refers to (ramping-arrival-rate).
        pre_allocated_vus: Workers created up front (ramping-arrival-rate).
        max_vus: Hard ceiling on workers (ramping-arrival-rate).
        graceful_stop: Seconds in-flight iterations may run after the end.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    executor: ExecutorKind
    fn: Callable[..., Any]
    stages: Tuple[Stage, ...] = ()
    thresholds: Tuple[Threshold, ...] = ()
    setup: Optional[Callable[..., Any]] = None

    start_vus: int = Field(default=1, ge=0)
    graceful_ramp_down: float = Field(default=30.0, ge=0)
    iterations: Optional[int] = Field(default=None, ge=1)

    start_rate: float = Field(default=0.0, ge=0)
    time_unit: float = Field(default=1.0, gt=0)
    pre_allocated_vus: int = Field(default=1, ge=0)
    max_vus: Optional[int] = Field(default=None, ge=1)

    graceful_stop: float = Field(default=30.0, ge=0)

    @field_validator("graceful_ramp_down", "graceful_stop", "time_unit", mode="before")
    @classmethod
    def _parse_durations(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("thresholds", mode="before")
    @classmethod
    def _parse_thresholds(cls, value: Any) -> Tuple[Threshold, ...]:
        try:
            return parse_thresholds(value)
        except ConfigError as exc:
            raise ValueError(exc.message) from exc

    @model_validator(mode="after")
    def _check_executor_options(self) -> "Scenario":
        if self.executor == ExecutorKind.RAMPING_ARRIVAL_RATE:
            if not self.stages:
                raise ValueError("ramping-arrival-rate needs at least one stage")
            if self.max_vus is not None and self.max_vus < self.pre_allocated_vus:
                raise ValueError("max_vus must be >= pre_allocated_vus")
            if max(self.pre_allocated_vus, self.max_vus or 0) == 0:
                raise ValueError("ramping-arrival-rate needs at least one VU")
        elif not self.stages:
            raise ValueError("ramping-vus needs at least one stage")
        return self

    @classmethod
    def create(cls, **kwargs: Any) -> "Scenario":
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            name = kwargs.get("name", "?")
            raise ConfigError(
                f"Invalid scenario {name!r}: {exc.errors()[0].get('msg', exc)}",
                code="invalid_scenario",
                details={"scenario": name, "errors": exc.errors(include_url=False)},
            ) from exc

    @property
    def duration(self) -> float:
        """Total stage time in seconds."""
        return sum(stage.duration for stage in self.stages)

    @property
    def vus_max(self) -> int:
        """Upper bound on concurrently running VUs."""
        if self.executor == ExecutorKind.RAMPING_ARRIVAL_RATE:
            return self.max_vus or self.pre_allocated_vus
        return int(max([self.start_vus] + [round(s.target) for s in self.stages]))


def _stages(stages: Sequence[Union[Stage, Dict[str, Any], Tuple[DurationLike, float]]]) -> List[Any]:
    out: List[Any] = []
    for stage in stages:
        if isinstance(stage, tuple):
            duration, target = stage
            out.append({"duration": duration, "target": target})
        else:
            out.append(stage)
    return out


def ramping_vus(
    name: str,
    fn: Callable[..., Any],
    stages: Sequence[Any],
    *,
    thresholds: Optional[ThresholdSpec] = None,
    start_vus: int = 1,
    graceful_ramp_down: DurationLike = 30,
    **options: Any,
) -> Scenario:
    """Scenario whose VU count follows ``stages`` (k6 ramping-vus)."""
    return Scenario.create(
        name=name,
        executor=ExecutorKind.RAMPING_VUS,
        fn=fn,
        stages=_stages(stages),
        thresholds=thresholds or (),
        start_vus=start_vus,
        graceful_ramp_down=graceful_ramp_down,
        **options,
    )


def constant_vus(
    name: str, fn: Callable[..., Any], vus: int, duration: DurationLike, **options: Any
) -> Scenario:
    """``vus`` VUs looping for ``duration`` (k6 ``{vus, duration}``)."""
    return ramping_vus(name, fn, [(duration, vus)], start_vus=vus, **options)


def shared_iterations(
    name: str,
    fn: Callable[..., Any],
    *,
    vus: int = 1,
    iterations: int = 1,
    max_duration: DurationLike = "10m",
    **options: Any,
) -> Scenario:
    """``iterations`` iterations spread over ``vus`` VUs (k6 ``{vus, iterations}``)."""
    return ramping_vus(
        name, fn, [(max_duration, vus)], start_vus=vus, iterations=iterations, **options
    )


def ramping_arrival_rate(
    name: str,
    fn: Callable[..., Any],
    stages: Sequence[Any],
    *,
    start_rate: float = 0,
    time_unit: DurationLike = 1,
    pre_allocated_vus: int,
    max_vus: Optional[int] = None,
    thresholds: Optional[ThresholdSpec] = None,
    **options: Any,
) -> Scenario:
    """Scenario whose iteration start rate follows ``stages``."""
    return Scenario.create(
        name=name,
        executor=ExecutorKind.RAMPING_ARRIVAL_RATE,
        fn=fn,
        stages=_stages(stages),
        thresholds=thresholds or (),
        start_rate=start_rate,
        time_unit=time_unit,
        pre_allocated_vus=pre_allocated_vus,
        max_vus=max_vus,
        **options,
    )


class MetricSummary(BaseModel):
    """Aggregated values of one metric (``values`` keys depend on ``kind``)."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: MetricKind
    values: Dict[str, float] = Field(default_factory=dict)


class CheckStat(BaseModel):
    """Pass/fail counts of one check label."""

    model_config = ConfigDict(frozen=True)

    label: str
    passes: int = Field(..., ge=0)
    fails: int = Field(..., ge=0)

    @property
    def rate(self) -> float:
        total = self.passes + self.fails
        return self.passes / total if total else 0.0

    @property
    def passed(self) -> bool:
        return self.fails == 0


class ScenarioSummary(BaseModel):
    """Per-scenario view of the run (samples tagged with the scenario)."""

    model_config = ConfigDict(frozen=True)

    name: str
    executor: ExecutorKind
    vus_max: int
    duration_seconds: float
    metrics: Dict[str, MetricSummary] = Field(default_factory=dict)
    checks: Tuple[CheckStat, ...] = ()


class RunSummary(BaseModel):
    """
    Final, read-only result of one run.

    Built once by ``RunSummary.from_snapshot`` at run end.

    Attributes:
        started_at: When the run started.
        finished_at: When the run finished.
        duration_seconds: Wall-clock run time.
        metrics: Aggregates over all samples, by metric name.
        checks: Check pass/fail counts over all scenarios.
        scenarios: Per-scenario aggregates and checks.
        thresholds: Verdicts, in declaration order.
        interrupted: True if the run was stopped early.
    """

    model_config = ConfigDict(frozen=True)

    started_at: datetime
    finished_at: datetime
    duration_seconds: float = Field(..., ge=0)
    metrics: Dict[str, MetricSummary] = Field(default_factory=dict)
    checks: Tuple[CheckStat, ...] = ()
    scenarios: Tuple[ScenarioSummary, ...] = ()
    thresholds: Tuple[ThresholdVerdict, ...] = ()
    interrupted: bool = False

    @property
    def passed(self) -> bool:
        """True when every threshold passed."""
        return all(v.passed for v in self.thresholds)

    @property
    def checks_rate(self) -> Optional[float]:
        metric = self.metrics.get(CHECKS)
        if metric is None:
            return None
        return metric.values.get("rate")

    def verdict(self, label: str) -> Optional[ThresholdVerdict]:
        """Find a verdict by ``"metric{tags} condition"`` label."""
        for verdict in self.thresholds:
            if verdict.label == label:
                return verdict
        return None

    @classmethod
    def from_snapshot(
        cls,
        *,
        snapshot: MetricsSnapshot,
        scenarios: Sequence[Scenario],
        verdicts: Sequence[ThresholdVerdict],
        started_at: datetime,
        finished_at: datetime,
        interrupted: bool = False,
    ) -> "RunSummary":
        scenario_summaries = []
        for scenario in scenarios:
            filt = {"scenario": scenario.name}
            scenario_summaries.append(
                ScenarioSummary(
                    name=scenario.name,
                    executor=scenario.executor,
                    vus_max=scenario.vus_max,
                    duration_seconds=scenario.duration,
                    metrics=_metric_summaries(snapshot, filt),
                    checks=tuple(
                        CheckStat(label=label, passes=p, fails=f)
                        for label, p, f in snapshot.checks(filt)
                    ),
                )
            )
        return cls(
            started_at=started_at,
            finished_at=finished_at,
            duration_seconds=max(0.0, (finished_at - started_at).total_seconds()),
            metrics=_metric_summaries(snapshot, None),
            checks=tuple(
                CheckStat(label=label, passes=p, fails=f)
                for label, p, f in snapshot.checks()
            ),
            scenarios=tuple(scenario_summaries),
            thresholds=tuple(verdicts),
            interrupted=interrupted,
        )


def _metric_summaries(
    snapshot: MetricsSnapshot, tags: Optional[Dict[str, str]]
) -> Dict[str, MetricSummary]:
    out = {}
    for name in snapshot.names():
        values = snapshot.values(name, tags)
        if not values:
            continue
        out[name] = MetricSummary(name=name, kind=snapshot.kind(name), values=values)
    return out
