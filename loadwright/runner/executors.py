"""
Executors: turn a scenario's stage timeline into running iterations.

Architecture:
    controller loop (one per scenario, ticks every ``tick`` seconds)
        -> ramping-vus: start/retire VU threads to follow the VU target
        -> ramping-arrival-rate: hand due iterations to a bounded worker pool

Stops are graceful: a retired VU finishes its current iteration, and at the
end of a scenario in-flight iterations get ``graceful_stop`` seconds. Python
threads cannot be killed, so an iteration still running after its grace
period is abandoned (logged as interrupted) and its late samples land after
the snapshot.
"""

from __future__ import annotations

import itertools
import logging
import math
import queue
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from loadwright.metrics.collector import MetricsRegistry
from loadwright.metrics.sample import (
    DROPPED_ITERATIONS,
    ITERATION_DURATION,
    ITERATION_ERRORS,
    ITERATIONS,
    VUS,
    VUS_MAX,
)
from loadwright.models import ExecutorKind, Scenario
from loadwright.runner.context import IterationContext
from loadwright.runner.schedule import arrivals_by, stage_index, total_duration, vus_at

logger = logging.getLogger(__name__)

ContextFactory = Callable[[int, int], IterationContext]

DEFAULT_TICK = 0.05
ARRIVAL_TICK = 0.01
_STOP = object()


class Executor:
    """Base class: iteration bookkeeping shared by both scheduling models."""

    def __init__(
        self,
        scenario: Scenario,
        *,
        registry: MetricsRegistry,
        make_context: ContextFactory,
        stop_event: threading.Event,
        tick: float = DEFAULT_TICK,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scenario = scenario
        self._registry = registry
        self._make_context = make_context
        self._stop_event = stop_event
        self._tick = tick
        self._clock = clock
        self._tags = {"scenario": scenario.name}
        self._counter = itertools.count()
        self._lock = threading.Lock()
        self._started = 0
        self.completed = 0
        self.failed = 0
        self.dropped = 0
        self.interrupted = 0

    def run(self) -> None:
        raise NotImplementedError

    @property
    def started(self) -> int:
        with self._lock:
            return self._started

    def _claim_iteration(self) -> Optional[int]:
        """Reserve the next iteration number, or None once the cap is hit."""
        with self._lock:
            cap = self.scenario.iterations
            if cap is not None and self._started >= cap:
                return None
            self._started += 1
        return next(self._counter)

    def _exhausted(self) -> bool:
        cap = self.scenario.iterations
        return cap is not None and self.started >= cap

    def run_iteration(self, vu: int, iteration: int) -> None:
        """Run one iteration; exceptions are recorded, never propagated."""
        started_at = time.time()
        t0 = time.perf_counter()
        failed = False
        try:
            self.scenario.fn(self._make_context(vu, iteration))
        except Exception:
            failed = True
            logger.exception(
                "Iteration %d of scenario %s (vu %d) failed",
                iteration, self.scenario.name, vu,
            )
            self._registry.record(ITERATION_ERRORS, 1, self._tags, timestamp=started_at)
        finally:
            duration = (time.perf_counter() - t0) * 1000
            self._registry.record(ITERATIONS, 1, self._tags, timestamp=started_at)
            self._registry.record(ITERATION_DURATION, duration, self._tags, timestamp=started_at)
            with self._lock:
                self.completed += 1
                if failed:
                    self.failed += 1

    def _gauge(self, name: str, value: float) -> None:
        self._registry.record(name, value, self._tags)

    def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True if a stop was requested."""
        return self._stop_event.wait(seconds)


class _VU:
    """One looping virtual user."""

    def __init__(self, vu_id: int, executor: "RampingVUExecutor") -> None:
        self.id = vu_id
        self.retire = threading.Event()
        self.deadline: Optional[float] = None
        self._executor = executor
        self.thread = threading.Thread(
            target=self._loop,
            name=f"{executor.scenario.name}-vu-{vu_id}",
            daemon=True,
        )

    def _loop(self) -> None:
        executor = self._executor
        while not self.retire.is_set() and not executor._stop_event.is_set():
            iteration = executor._claim_iteration()
            if iteration is None:
                return
            executor.run_iteration(self.id, iteration)


class RampingVUExecutor(Executor):
    """
    Keeps ``vus_at(elapsed)`` VUs looping on the scenario function.

    Scaling up starts new VU threads; scaling down retires the most recently
    started VUs, which stop after their current iteration.
    """

    def __init__(self, scenario: Scenario, **kwargs: Any) -> None:
        super().__init__(scenario, **kwargs)
        self._active: List[_VU] = []
        self._retiring: List[_VU] = []
        self._vu_ids = itertools.count(1)
        self.peak_vus = 0

    @property
    def active_vus(self) -> int:
        return len(self._active)

    def run(self) -> None:
        scenario = self.scenario
        stages = scenario.stages
        duration = total_duration(stages)
        self._gauge(VUS_MAX, scenario.vus_max)

        start = self._clock()
        last_stage = -1
        last_target = -1
        while True:
            elapsed = self._clock() - start
            if elapsed >= duration or self._stop_event.is_set():
                break
            if self._exhausted():
                # All iterations claimed: in-flight ones may run until the
                # timeline ends; graceful_stop only applies after that.
                if not self._any_alive():
                    break
            else:
                stage = stage_index(stages, elapsed)
                if stage != last_stage:
                    logger.info("Scenario %s: stage %d/%d", scenario.name, stage + 1, len(stages))
                    last_stage = stage
                target = vus_at(stages, scenario.start_vus, elapsed)
                if target != last_target:
                    self._scale_to(target)
                    last_target = target
            self._reap(self._clock())
            if self._wait(self._tick):
                break
        self._shutdown()

    def _scale_to(self, target: int) -> None:
        while len(self._active) < target:
            vu = _VU(next(self._vu_ids), self)
            self._active.append(vu)
            vu.thread.start()
        now = self._clock()
        while len(self._active) > target:
            vu = self._active.pop()
            vu.retire.set()
            vu.deadline = now + self.scenario.graceful_ramp_down
            self._retiring.append(vu)
        self.peak_vus = max(self.peak_vus, len(self._active))
        self._gauge(VUS, len(self._active))

    def _any_alive(self) -> bool:
        return any(vu.thread.is_alive() for vu in self._active + self._retiring)

    def _reap(self, now: float) -> None:
        still = []
        for vu in self._retiring:
            if not vu.thread.is_alive():
                continue
            if vu.deadline is not None and now >= vu.deadline:
                self.interrupted += 1
                logger.warning(
                    "Scenario %s: vu %d did not finish within graceful ramp-down",
                    self.scenario.name, vu.id,
                )
                continue
            still.append(vu)
        self._retiring = still

    def _shutdown(self) -> None:
        for vu in self._active:
            vu.retire.set()
        waiting = self._active + self._retiring
        self._active = []
        self._retiring = []
        self._gauge(VUS, 0)
        deadline = self._clock() + self.scenario.graceful_stop
        for vu in waiting:
            vu.thread.join(max(0.0, deadline - self._clock()))
            if vu.thread.is_alive():
                self.interrupted += 1
        if self.interrupted:
            logger.warning(
                "Scenario %s: %d iteration(s) interrupted after the graceful period",
                self.scenario.name, self.interrupted,
            )


class _WorkerPool:
    """
    Bounded pool for arrival-rate iterations.

    ``submit()`` never blocks: it uses an idle worker, grows the pool up to
    ``max_size``, or refuses the item.
    """

    def __init__(self, size: int, max_size: int, target: Callable[[int, Any], None], name: str) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._threads: List[threading.Thread] = []
        self._busy = 0
        self._size = size
        self._max_size = max_size
        self._target = target
        self._name = name

    def start(self) -> None:
        with self._lock:
            for _ in range(self._size):
                self._spawn()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._threads)

    @property
    def busy(self) -> int:
        with self._lock:
            return self._busy

    def submit(self, item: Any) -> bool:
        with self._lock:
            if self._busy >= len(self._threads):
                if len(self._threads) >= self._max_size:
                    return False
                self._spawn()
            self._busy += 1
        self._queue.put(item)
        return True

    def shutdown(self, grace: float) -> int:
        """Stop workers after queued items finish; returns workers still busy."""
        with self._lock:
            threads = list(self._threads)
        for _ in threads:
            self._queue.put(_STOP)
        deadline = time.monotonic() + grace
        for thread in threads:
            thread.join(max(0.0, deadline - time.monotonic()))
        return sum(1 for t in threads if t.is_alive())

    def _spawn(self) -> None:
        worker_id = len(self._threads) + 1
        thread = threading.Thread(
            target=self._work,
            args=(worker_id,),
            name=f"{self._name}-vu-{worker_id}",
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def _work(self, worker_id: int) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._target(worker_id, item)
            finally:
                with self._lock:
                    self._busy -= 1


class RampingArrivalRateExecutor(Executor):
    """
    Starts iterations at the interpolated rate, independent of how many are
    in flight.

    When all ``max_vus`` workers are busy the arrival is dropped and counted
    in ``dropped_iterations``; the schedule itself never waits for workers.
    """

    def __init__(self, scenario: Scenario, **kwargs: Any) -> None:
        kwargs.setdefault("tick", ARRIVAL_TICK)
        super().__init__(scenario, **kwargs)
        max_vus = scenario.max_vus or scenario.pre_allocated_vus
        self._pool = _WorkerPool(
            scenario.pre_allocated_vus, max_vus, self._execute, scenario.name
        )
        self.peak_vus = 0

    def _execute(self, worker_id: int, iteration: int) -> None:
        self.run_iteration(worker_id, iteration)

    def run(self) -> None:
        scenario = self.scenario
        stages = scenario.stages
        duration = total_duration(stages)
        self._gauge(VUS_MAX, scenario.vus_max)
        self._pool.start()

        start = self._clock()
        due_started = 0
        last_stage = -1
        last_warned = -math.inf
        while True:
            elapsed = min(self._clock() - start, duration)
            stage = stage_index(stages, elapsed)
            if stage != last_stage and stage < len(stages):
                logger.info("Scenario %s: stage %d/%d", scenario.name, stage + 1, len(stages))
                last_stage = stage
            due = int(math.floor(
                arrivals_by(stages, scenario.start_rate, scenario.time_unit, elapsed) + 1e-9
            ))
            while due_started < due and not self._stop_event.is_set():
                due_started += 1
                iteration = self._claim_iteration()
                if iteration is None:
                    break
                if not self._pool.submit(iteration):
                    self._drop()
                    now = self._clock()
                    if now - last_warned >= 1.0:
                        logger.warning(
                            "Scenario %s: insufficient VUs (max %d), dropping iterations",
                            scenario.name, self._pool.size,
                        )
                        last_warned = now
            self.peak_vus = max(self.peak_vus, self._pool.size)
            self._gauge(VUS, self._pool.busy)
            if elapsed >= duration or self._stop_event.is_set() or self._exhausted():
                break
            if self._wait(self._tick):
                break

        self.interrupted = self._pool.shutdown(scenario.graceful_stop)
        self._gauge(VUS, 0)
        if self.interrupted:
            logger.warning(
                "Scenario %s: %d iteration(s) interrupted after the graceful period",
                scenario.name, self.interrupted,
            )

    def _drop(self) -> None:
        with self._lock:
            self.dropped += 1
        self._registry.record(DROPPED_ITERATIONS, 1, self._tags)


EXECUTORS: Dict[ExecutorKind, type] = {
    ExecutorKind.RAMPING_VUS: RampingVUExecutor,
    ExecutorKind.RAMPING_ARRIVAL_RATE: RampingArrivalRateExecutor,
}


def executor_for(scenario: Scenario, **kwargs: Any) -> Executor:
    return EXECUTORS[scenario.executor](scenario, **kwargs)
