"""
Stress test: arrival-rate spike up to 200 iterations/s.

Thresholds are deliberately looser than the load test (5% failed requests,
p95 < 1s, 90% checks): this scenario is expected to push the target past
comfortable capacity.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from loadwright.config import RunConfig
from loadwright.models import Scenario, ramping_arrival_rate
from loadwright.runner.context import IterationContext
from loadwright.scenarios.helpers import appointments_range_path

NAME = "spike"

STAGES = (
    ("30s", 50),
    ("1m", 100),
    ("1m", 150),
    ("1m", 200),
    ("30s", 0),
)
THRESHOLDS = {
    "http_req_failed": ["rate<0.05"],
    "http_req_duration": ["p(95)<1000"],
    "checks": ["rate>0.90"],
}


def make_iteration(think_time: float = 0.2):
    def iteration(ctx: IterationContext) -> None:
        r1 = ctx.http.get(ctx.url("/healthz"))
        r2 = ctx.http.get(ctx.url("/business-hours"))
        r3 = ctx.http.get(ctx.url(appointments_range_path(days=1)))

        ctx.check(r1, {"health 200": lambda r: r.status == 200})
        ctx.check(r2, {"bh 200": lambda r: r.status == 200})
        ctx.check(r3, {"appts 200": lambda r: r.status == 200})

        ctx.sleep(think_time)

    return iteration


def build(
    config: Optional[RunConfig] = None,
    *,
    stages: Sequence[Any] = STAGES,
    start_rate: float = 10,
    pre_allocated_vus: int = 50,
    max_vus: int = 200,
    think_time: float = 0.2,
) -> Scenario:
    return ramping_arrival_rate(
        NAME,
        make_iteration(think_time),
        stages,
        start_rate=start_rate,
        time_unit="1s",
        pre_allocated_vus=pre_allocated_vus,
        max_vus=max_vus,
        thresholds=THRESHOLDS,
    )
