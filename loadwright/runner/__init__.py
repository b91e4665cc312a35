"""
Scenario runner: ramping-VU and ramping-arrival-rate scheduling.

Usage:
    from loadwright.runner import ScenarioRunner

    summary = ScenarioRunner(config).run(scenario)
"""

from loadwright.runner.context import IterationContext
from loadwright.runner.executors import (
    Executor,
    RampingArrivalRateExecutor,
    RampingVUExecutor,
    executor_for,
)
from loadwright.runner.runner import ScenarioRunner
from loadwright.runner.schedule import arrivals_by, target_at, total_duration, vus_at

__all__ = [
    "IterationContext",
    "Executor",
    "RampingArrivalRateExecutor",
    "RampingVUExecutor",
    "executor_for",
    "ScenarioRunner",
    "arrivals_by",
    "target_at",
    "total_duration",
    "vus_at",
]
