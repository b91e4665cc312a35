"""
loadwright - k6-style load tests for the scheduling API, in Python.

Run a bundled scenario:
    from loadwright import RunConfig, ScenarioRunner, render, write_summary
    from loadwright.scenarios import smoke

    config = RunConfig.from_env()
    summary = ScenarioRunner(config).run(smoke.build(config))
    write_summary(render(summary), config.out_dir)
    print(summary.passed)

Write your own:
    from loadwright import ramping_vus

    def iteration(ctx):
        r = ctx.http.get(ctx.url("/healthz"))
        ctx.check(r, {"health 200": lambda r: r.status == 200})

    scenario = ramping_vus(
        "health", iteration, [("30s", 10), ("30s", 0)],
        thresholds={"http_req_failed": ["rate<0.01"]},
    )

Command line:
    loadwright run smoke --base-url http://localhost:4000
"""

# =============================================================================
# Core API
# =============================================================================
from loadwright.config import RunConfig  # noqa: F401
from loadwright.runner import IterationContext, ScenarioRunner  # noqa: F401
from loadwright.models import (  # noqa: F401
    CheckStat,
    ExecutorKind,
    MetricSummary,
    RunSummary,
    Scenario,
    ScenarioSummary,
    Stage,
    constant_vus,
    ramping_arrival_rate,
    ramping_vus,
    shared_iterations,
)
from loadwright.report import render, render_html, render_text, write_summary  # noqa: F401

# =============================================================================
# Building blocks
# =============================================================================
from loadwright.http import HttpClient, JsonResult, Request, Response  # noqa: F401
from loadwright.metrics import MetricKind, MetricsRegistry, MetricsSnapshot  # noqa: F401
from loadwright.thresholds import Threshold, ThresholdVerdict, evaluate, parse_threshold  # noqa: F401
from loadwright.exceptions import ConfigError, LoadwrightError, MetricKindError  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "RunConfig",
    "IterationContext",
    "ScenarioRunner",
    "CheckStat",
    "ExecutorKind",
    "MetricSummary",
    "RunSummary",
    "Scenario",
    "ScenarioSummary",
    "Stage",
    "constant_vus",
    "ramping_arrival_rate",
    "ramping_vus",
    "shared_iterations",
    "render",
    "render_html",
    "render_text",
    "write_summary",
    "HttpClient",
    "JsonResult",
    "Request",
    "Response",
    "MetricKind",
    "MetricsRegistry",
    "MetricsSnapshot",
    "Threshold",
    "ThresholdVerdict",
    "evaluate",
    "parse_threshold",
    "ConfigError",
    "LoadwrightError",
    "MetricKindError",
]
