"""
ScenarioRunner: runs scenarios and builds the run summary.

Usage:
    from loadwright.config import RunConfig
    from loadwright.runner import ScenarioRunner
    from loadwright.scenarios import smoke

    config = RunConfig.from_env()
    runner = ScenarioRunner(config)
    summary = runner.run(smoke.build(config))
    print(summary.passed)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from loadwright.config import RunConfig
from loadwright.exceptions import ConfigError
from loadwright.http import HttpClient
from loadwright.metrics.collector import MetricsRegistry
from loadwright.metrics.sample import SETUP_ERRORS
from loadwright.models import ExecutorKind, RunSummary, Scenario, utc_now
from loadwright.runner.context import IterationContext
from loadwright.runner.executors import DEFAULT_TICK, Executor, executor_for
from loadwright.thresholds import Threshold, evaluate

logger = logging.getLogger(__name__)


class ScenarioRunner:
    """
    Executes scenarios against the configured target.

    The configuration is fixed at construction. Each ``run``/``run_many``
    call is one execution with its own metrics registry and produces exactly
    one frozen RunSummary.

    Args:
        config: Run configuration (base URL, credentials, timeouts).
        transport: Optional httpx transport, e.g. ``httpx.MockTransport`` in
            tests.
        tick: Controller loop period for ramping-vus scenarios. Arrival-rate
            scenarios keep their own finer tick.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        tick: float = DEFAULT_TICK,
        registry_factory: Callable[[], MetricsRegistry] = MetricsRegistry,
    ) -> None:
        self.config = config
        self._transport = transport
        self._tick = tick
        self._registry_factory = registry_factory
        self._stop_event = threading.Event()
        self.executors: Dict[str, Executor] = {}

    def stop(self) -> None:
        """Ask running scenarios to wind down gracefully."""
        logger.info("Stop requested")
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self, scenario: Scenario) -> RunSummary:
        return self.run_many([scenario])

    def run_many(self, scenarios: Sequence[Scenario]) -> RunSummary:
        """Run scenarios concurrently and return the run summary."""
        if not scenarios:
            raise ConfigError("No scenarios to run", code="no_scenarios")
        names = [s.name for s in scenarios]
        if len(set(names)) != len(names):
            raise ConfigError(
                f"Duplicate scenario names: {names}", code="duplicate_scenario"
            )

        self._stop_event.clear()
        self.executors = {}
        registry = self._registry_factory()
        started_at = utc_now()
        logger.info(
            "Run starting: %d scenario(s) against %s",
            len(scenarios), self.config.base_url,
        )

        if len(scenarios) == 1:
            self._run_scenario(scenarios[0], registry)
        else:
            threads = [
                threading.Thread(
                    target=self._run_scenario,
                    args=(scenario, registry),
                    name=f"scenario-{scenario.name}",
                )
                for scenario in scenarios
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        finished_at = utc_now()
        snapshot = registry.snapshot()
        verdicts = evaluate(_collect_thresholds(scenarios), snapshot)
        summary = RunSummary.from_snapshot(
            snapshot=snapshot,
            scenarios=scenarios,
            verdicts=verdicts,
            started_at=started_at,
            finished_at=finished_at,
            interrupted=self._stop_event.is_set(),
        )
        logger.info(
            "Run finished in %.1fs: %d/%d thresholds passed",
            summary.duration_seconds,
            sum(1 for v in verdicts if v.passed),
            len(verdicts),
        )
        return summary

    def _run_scenario(self, scenario: Scenario, registry: MetricsRegistry) -> None:
        http = HttpClient(
            registry,
            scenario=scenario.name,
            timeout=self.config.http_timeout,
            transport=self._transport,
        )
        try:
            data = self._setup(scenario, registry, http)

            def make_context(vu: int, iteration: int) -> IterationContext:
                return IterationContext(
                    scenario=scenario.name,
                    vu=vu,
                    iteration=iteration,
                    http=http,
                    registry=registry,
                    config=self.config,
                    data=data,
                )

            options: Dict[str, Any] = {}
            if scenario.executor == ExecutorKind.RAMPING_VUS:
                options["tick"] = self._tick
            executor = executor_for(
                scenario,
                registry=registry,
                make_context=make_context,
                stop_event=self._stop_event,
                **options,
            )
            self.executors[scenario.name] = executor
            logger.info(
                "Scenario %s starting (%s, %d stage(s), up to %d VUs)",
                scenario.name, scenario.executor.value, len(scenario.stages), scenario.vus_max,
            )
            t0 = time.monotonic()
            executor.run()
            logger.info(
                "Scenario %s done in %.1fs: %d iteration(s), %d failed, %d dropped",
                scenario.name, time.monotonic() - t0,
                executor.completed, executor.failed, executor.dropped,
            )
            if executor.completed == 0:
                logger.warning(
                    "Scenario %s completed no iterations (%d interrupted)",
                    scenario.name, executor.interrupted,
                )
        finally:
            # Abandoned iterations still holding the client get status-0
            # responses once it is closed.
            http.close()

    def _setup(self, scenario: Scenario, registry: MetricsRegistry, http: HttpClient) -> Any:
        if scenario.setup is None:
            return None
        ctx = IterationContext(
            scenario=scenario.name,
            vu=0,
            iteration=-1,
            http=http,
            registry=registry,
            config=self.config,
        )
        try:
            return scenario.setup(ctx)
        except Exception:
            logger.exception("Setup of scenario %s failed", scenario.name)
            registry.record(SETUP_ERRORS, 1, {"scenario": scenario.name})
            return None


def _collect_thresholds(scenarios: Sequence[Scenario]) -> List[Threshold]:
    seen = set()
    out = []
    for scenario in scenarios:
        for threshold in scenario.thresholds:
            if threshold in seen:
                continue
            seen.add(threshold)
            out.append(threshold)
    return out
