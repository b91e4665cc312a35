"""Tests for executors and the scenario runner (short, scaled-down timelines)."""

import threading
import time

import pytest

from loadwright.exceptions import ConfigError
from loadwright.metrics import (
    DROPPED_ITERATIONS,
    ITERATION_DURATION,
    ITERATION_ERRORS,
    ITERATIONS,
    SETUP_ERRORS,
    VUS_MAX,
)
from loadwright.models import (
    constant_vus,
    ramping_arrival_rate,
    ramping_vus,
    shared_iterations,
)
from loadwright.runner import ScenarioRunner


def metric(summary, name, key="count"):
    m = summary.metrics.get(name)
    return None if m is None else m.values.get(key)


class TestIterations:
    def test_failing_iteration_is_isolated(self, config):
        def fn(ctx):
            if ctx.iteration == 0:
                raise RuntimeError("boom")

        runner = ScenarioRunner(config, tick=0.01)
        summary = runner.run(shared_iterations("flaky", fn, vus=1, iterations=3))

        assert metric(summary, ITERATIONS) == 3
        assert metric(summary, ITERATION_ERRORS) == 1
        assert metric(summary, ITERATION_DURATION) == 3
        assert runner.executors["flaky"].failed == 1

    def test_iteration_cap_is_exact(self, config):
        def fn(ctx):
            time.sleep(0.005)

        runner = ScenarioRunner(config, tick=0.01)
        summary = runner.run(shared_iterations("capped", fn, vus=3, iterations=5))

        assert metric(summary, ITERATIONS) == 5
        assert metric(summary, VUS_MAX, "value") == 3

    def test_setup_data_reaches_iterations(self, config):
        seen = []

        def fn(ctx):
            seen.append(ctx.data)

        runner = ScenarioRunner(config, tick=0.01)
        runner.run(shared_iterations(
            "with_setup", fn, iterations=2, setup=lambda ctx: {"token": "abc"}
        ))
        assert seen == [{"token": "abc"}, {"token": "abc"}]

    def test_setup_failure_is_recorded(self, config):
        seen = []

        def setup(ctx):
            raise RuntimeError("login down")

        runner = ScenarioRunner(config, tick=0.01)
        summary = runner.run(shared_iterations(
            "bad_setup", lambda ctx: seen.append(ctx.data), iterations=1, setup=setup
        ))
        assert metric(summary, SETUP_ERRORS) == 1
        assert seen == [None]


class TestIterationCap:
    def test_in_flight_iteration_runs_until_max_duration(self, config):
        def fn(ctx):
            time.sleep(0.4)

        scenario = shared_iterations(
            "slow_once", fn, iterations=1, max_duration="5s", graceful_stop=0.1
        )
        runner = ScenarioRunner(config, tick=0.01)
        t0 = time.monotonic()
        summary = runner.run(scenario)

        assert runner.executors["slow_once"].interrupted == 0
        assert metric(summary, ITERATIONS) == 1
        assert time.monotonic() - t0 < 3

    def test_iteration_past_max_duration_and_grace_is_interrupted(self, config):
        gate = threading.Event()

        def fn(ctx):
            gate.wait(2)

        scenario = shared_iterations(
            "hung", fn, iterations=1, max_duration=0.2, graceful_stop=0.1
        )
        runner = ScenarioRunner(config, tick=0.01)
        try:
            summary = runner.run(scenario)
        finally:
            gate.set()

        assert runner.executors["hung"].interrupted == 1
        assert runner.executors["hung"].completed == 0
        assert metric(summary, ITERATIONS) is None


class TestGracefulRampDown:
    # Target drops from 1 to 0 at t=0.2 while the iteration is still running.
    STAGES = [(0.2, 1), (0, 0), (0.6, 0)]

    def test_retired_vu_finishes_within_grace(self, config):
        def fn(ctx):
            time.sleep(0.3)

        scenario = ramping_vus("retire", fn, self.STAGES, start_vus=1, graceful_ramp_down=1)
        runner = ScenarioRunner(config, tick=0.01)
        summary = runner.run(scenario)

        assert runner.executors["retire"].interrupted == 0
        assert metric(summary, ITERATIONS) == 1

    def test_retired_vu_past_grace_is_interrupted(self, config):
        gate = threading.Event()

        def fn(ctx):
            gate.wait(2)

        scenario = ramping_vus(
            "retire_late", fn, self.STAGES, start_vus=1, graceful_ramp_down=0.05
        )
        runner = ScenarioRunner(config, tick=0.01)
        try:
            runner.run(scenario)
        finally:
            gate.set()

        assert runner.executors["retire_late"].interrupted == 1


class TestRampingVUs:
    def test_peak_follows_stages(self, config):
        def fn(ctx):
            time.sleep(0.01)

        scenario = ramping_vus(
            "ramp", fn, [(0.2, 3), (0.3, 3)], start_vus=0, graceful_ramp_down=1
        )
        runner = ScenarioRunner(config, tick=0.01)
        summary = runner.run(scenario)

        assert runner.executors["ramp"].peak_vus == 3
        assert runner.executors["ramp"].interrupted == 0
        assert metric(summary, ITERATIONS) > 0

    def test_stop_interrupts_run(self, config):
        def fn(ctx):
            time.sleep(0.02)

        runner = ScenarioRunner(config, tick=0.01)
        timer = threading.Timer(0.3, runner.stop)
        timer.start()
        t0 = time.monotonic()
        summary = runner.run(constant_vus("long", fn, 2, "30s"))
        timer.cancel()

        assert summary.interrupted is True
        assert time.monotonic() - t0 < 10


class TestArrivalRate:
    def test_saturation_drops_iterations(self, config):
        gate = threading.Event()

        def fn(ctx):
            gate.wait(0.3)

        scenario = ramping_arrival_rate(
            "spike", fn, [(0.5, 40)],
            start_rate=40, pre_allocated_vus=1, max_vus=2, graceful_stop=2,
        )
        runner = ScenarioRunner(config)
        summary = runner.run(scenario)
        executor = runner.executors["spike"]

        assert executor.dropped > 0
        assert executor.peak_vus <= 2
        assert executor.completed + executor.dropped == 20
        assert metric(summary, DROPPED_ITERATIONS) == executor.dropped

    def test_rate_is_followed(self, config):
        scenario = ramping_arrival_rate(
            "steady", lambda ctx: None, [(0.5, 20)],
            start_rate=20, pre_allocated_vus=2, max_vus=4,
        )
        summary = ScenarioRunner(config).run(scenario)
        assert metric(summary, ITERATIONS) == 10
        assert metric(summary, DROPPED_ITERATIONS) is None


class TestRunMany:
    def test_concurrent_scenarios_get_their_own_view(self, config):
        a = shared_iterations(
            "a", lambda ctx: ctx.check(1, {"one": lambda v: v == 1}), iterations=2,
            thresholds={"checks{scenario:a}": ["rate>=1"]},
        )
        b = shared_iterations(
            "b", lambda ctx: ctx.check(1, {"one": lambda v: v == 2}), iterations=3,
            thresholds={"checks{scenario:b}": ["rate>=1"]},
        )
        summary = ScenarioRunner(config, tick=0.01).run_many([a, b])

        assert [s.name for s in summary.scenarios] == ["a", "b"]
        assert summary.scenarios[0].checks[0].passes == 2
        assert summary.scenarios[1].checks[0].fails == 3
        assert [v.passed for v in summary.thresholds] == [True, False]
        assert summary.passed is False
        assert metric(summary, ITERATIONS) == 5

    def test_duplicate_names_rejected(self, config):
        sc = shared_iterations("same", lambda ctx: None)
        with pytest.raises(ConfigError):
            ScenarioRunner(config).run_many([sc, sc])

    def test_empty_rejected(self, config):
        with pytest.raises(ConfigError):
            ScenarioRunner(config).run_many([])
