"""
Smoke test: one VU walking the main read endpoints.

Target: every endpoint answers, fewer than 1% failed requests.
"""

from __future__ import annotations

from typing import Optional

from loadwright.config import RunConfig
from loadwright.models import DurationLike, Scenario, constant_vus, shared_iterations
from loadwright.runner.context import IterationContext
from loadwright.scenarios.helpers import (
    appointments_range_path,
    get_headers,
    login_or_register,
    pick_existing_patient_id,
    token_of,
)

NAME = "smoke"
THRESHOLDS = {
    "http_req_failed": ["rate<0.01"],
}
PATIENT_STATUSES = frozenset({200, 404})


def make_iteration(think_time: float = 1.0):
    def iteration(ctx: IterationContext) -> None:
        headers = get_headers(token_of(ctx))

        health = ctx.http.get(ctx.url("/healthz"), headers=headers)
        ctx.check(health, {"health 200": lambda r: r.status == 200})

        bh = ctx.http.get(ctx.url("/business-hours"), headers=headers)
        ctx.check(bh, {"business-hours 200": lambda r: r.status == 200})

        today = ctx.http.get(ctx.url("/appointments/today"), headers=headers)
        ctx.check(today, {"today 200": lambda r: r.status == 200})

        rng = ctx.http.get(ctx.url(appointments_range_path(days=3)), headers=headers)
        ctx.check(rng, {"range 200": lambda r: r.status == 200})

        pid = pick_existing_patient_id(ctx, headers)
        if pid is not None:
            p = ctx.http.get(
                ctx.url(f"/patients/{pid}"),
                headers=headers,
                expected_statuses=PATIENT_STATUSES,
            )
            ctx.check(p, {"patient 200|404": lambda r: r.status in (200, 404)})

        ctx.sleep(think_time)

    return iteration


def build(
    config: Optional[RunConfig] = None,
    *,
    vus: int = 1,
    duration: DurationLike = "30s",
    iterations: Optional[int] = None,
    think_time: float = 1.0,
) -> Scenario:
    """1 VU for 30s by default; ``iterations`` switches to a fixed count."""
    fn = make_iteration(think_time)
    if iterations is not None:
        return shared_iterations(
            NAME, fn, vus=vus, iterations=iterations,
            setup=login_or_register, thresholds=THRESHOLDS,
        )
    return constant_vus(
        NAME, fn, vus, duration, setup=login_or_register, thresholds=THRESHOLDS
    )
