"""
Piecewise-linear ramp math shared by both executors.

All functions are pure: given the stages and an elapsed time they return the
instantaneous target (VUs or rate) or, for arrival rates, how many iterations
should have started so far.
"""

from __future__ import annotations

import math
from typing import Iterator, Sequence, Tuple

from loadwright.models import Stage


def _segments(stages: Sequence[Stage], start: float) -> Iterator[Tuple[float, float, float, float]]:
    # (segment start time, duration, from value, to value)
    t = 0.0
    value = start
    for stage in stages:
        yield t, stage.duration, value, stage.target
        t += stage.duration
        value = stage.target


def total_duration(stages: Sequence[Stage]) -> float:
    return sum(stage.duration for stage in stages)


def target_at(stages: Sequence[Stage], start: float, elapsed: float) -> float:
    """Linearly interpolated target at ``elapsed`` seconds.

    Before the first stage the target is ``start``; after the last stage it
    stays at the last stage's target.
    """
    value = start
    for seg_start, duration, v0, v1 in _segments(stages, start):
        seg_end = seg_start + duration
        if elapsed < seg_end:
            if elapsed <= seg_start:
                return v0
            return v0 + (v1 - v0) * (elapsed - seg_start) / duration
        value = v1
    return value


def vus_at(stages: Sequence[Stage], start_vus: int, elapsed: float) -> int:
    """Active VU count at ``elapsed``; equals each stage target at its end."""
    return int(math.floor(target_at(stages, start_vus, elapsed) + 0.5))


def arrivals_by(
    stages: Sequence[Stage], start_rate: float, time_unit: float, elapsed: float
) -> float:
    """Iterations that should have started by ``elapsed`` (the integral of
    the rate curve). Rates are per ``time_unit`` seconds."""
    total = 0.0
    for seg_start, duration, r0, r1 in _segments(stages, start_rate):
        if elapsed <= seg_start:
            break
        span = min(elapsed, seg_start + duration) - seg_start
        if duration > 0:
            # Area of the trapezoid under the ramp from seg_start to seg_start+span.
            r_span = r0 + (r1 - r0) * span / duration
            total += (r0 + r_span) / 2.0 * span
    return total / time_unit


def stage_index(stages: Sequence[Stage], elapsed: float) -> int:
    """Index of the stage running at ``elapsed`` (len(stages) when done)."""
    t = 0.0
    for i, stage in enumerate(stages):
        t += stage.duration
        if elapsed < t:
            return i
    return len(stages)
