"""
Load test: steady read traffic ramping to 50 VUs.

Stages: 1 -> 10 VUs (30s), -> 25 (1m), -> 50 (2m), -> 0 (30s).
Target: <1% failed requests, p95 < 400ms for this scenario, >95% checks.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from loadwright.config import RunConfig
from loadwright.models import DurationLike, Scenario, ramping_vus
from loadwright.runner.context import IterationContext
from loadwright.scenarios.helpers import appointments_range_path, pick_existing_patient_id
from loadwright.scenarios.smoke import PATIENT_STATUSES

NAME = "steady_read"
READ_DURATION = "read_duration"

STAGES = (
    ("30s", 10),
    ("1m", 25),
    ("2m", 50),
    ("30s", 0),
)
THRESHOLDS = {
    "http_req_failed": ["rate<0.01"],
    f"http_req_duration{{scenario:{NAME}}}": ["p(95)<400"],
    "checks": ["rate>0.95"],
}


def make_iteration(think_time: float = 0.5):
    def iteration(ctx: IterationContext) -> None:
        responses = ctx.http.batch([
            ("GET", ctx.url("/healthz")),
            ("GET", ctx.url("/business-hours")),
            ("GET", ctx.url("/appointments/today")),
            ("GET", ctx.url(appointments_range_path(days=1))),
        ])

        ok = all(r.status == 200 for r in responses)
        ctx.check(ok, {"batch 200s": lambda v: v})

        read_duration = ctx.trend(READ_DURATION)
        for r in responses:
            read_duration.add(r.timings.duration, ctx.tags)

        pid = pick_existing_patient_id(ctx)
        if pid is not None:
            p = ctx.http.get(ctx.url(f"/patients/{pid}"), expected_statuses=PATIENT_STATUSES)
            ctx.check(p, {"patient 200|404": lambda r: r.status in (200, 404)})

        ctx.sleep(think_time)

    return iteration


def build(
    config: Optional[RunConfig] = None,
    *,
    stages: Sequence[Any] = STAGES,
    graceful_ramp_down: DurationLike = "15s",
    think_time: float = 0.5,
) -> Scenario:
    return ramping_vus(
        NAME,
        make_iteration(think_time),
        stages,
        graceful_ramp_down=graceful_ramp_down,
        thresholds=THRESHOLDS,
    )
