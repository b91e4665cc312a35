"""
Security probes: a single pass of hostile-but-harmless requests.

1) CORS preflight from a foreign origin
2) SQL injection in the patient search
3) XSS payload in the patient search
4) Patient lookup without a token
5) Protected endpoint with an invalid token

The pass must actually complete: a hung target that never lets the single
iteration finish fails the ``iterations`` threshold.
"""

from __future__ import annotations

from typing import Optional

from loadwright.config import RunConfig
from loadwright.models import DurationLike, Scenario, shared_iterations
from loadwright.runner.context import IterationContext
from loadwright.scenarios.helpers import get_headers, pick_existing_patient_id, search_path

NAME = "security_probes"
THRESHOLDS = {
    f"iterations{{scenario:{NAME}}}": ["count>=1"],
}

CORS_HEADERS = {
    "Origin": "https://malicious.example",
    "Access-Control-Request-Method": "GET",
    "Access-Control-Request-Headers": "Authorization, Content-Type",
}
SQLI_PAYLOAD = "a' OR '1'='1"
XSS_PAYLOAD = "<script>alert(1)</script>"


def probes(ctx: IterationContext) -> None:
    cors = ctx.http.options(ctx.url(search_path("a")), headers=CORS_HEADERS)
    ctx.check(cors, {"cors status 204|200|4xx": lambda r: r.status in (200, 204, 400, 403)})

    sqli = ctx.http.get(ctx.url(search_path(SQLI_PAYLOAD)))
    ctx.check(sqli, {"sqli not 500": lambda r: 0 < r.status < 500})

    xss = ctx.http.get(ctx.url(search_path(XSS_PAYLOAD)))
    ctx.check(xss, {"xss not 500": lambda r: 0 < r.status < 500})

    pid = pick_existing_patient_id(ctx)
    if pid is not None:
        p = ctx.http.get(ctx.url(f"/patients/{pid}"))
        ctx.check(p, {"patients/:id 2xx|404|401": lambda r: r.status in (200, 401, 403, 404)})

    invalid = ctx.http.get(
        ctx.url("/appointments/today"), headers=get_headers("invalid.token.here")
    )
    ctx.check(invalid, {"invalid token not 2xx": lambda r: r.status >= 400})


def build(
    config: Optional[RunConfig] = None,
    *,
    max_duration: DurationLike = "10m",
    graceful_stop: DurationLike = "30s",
) -> Scenario:
    return shared_iterations(
        NAME, probes, vus=1, iterations=1,
        max_duration=max_duration, graceful_stop=graceful_stop,
        thresholds=THRESHOLDS,
    )
