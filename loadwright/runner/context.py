"""Per-iteration context handed to scenario functions."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from loadwright.config import RunConfig
from loadwright.http import HttpClient
from loadwright.metrics.collector import MetricHandle, MetricsRegistry

logger = logging.getLogger(__name__)

CheckFn = Callable[[Any], Any]


@dataclass
class IterationContext:
    """
    Everything one iteration may touch.

    Attributes:
        scenario: Scenario name.
        vu: Id of the VU (worker) running the iteration; 0 during setup.
        iteration: Iteration number within the scenario; -1 during setup.
        http: HTTP client bound to the scenario.
        registry: Run metrics registry.
        config: Immutable run configuration.
        data: Return value of the scenario's setup function.
    """

    scenario: str
    vu: int
    iteration: int
    http: HttpClient
    registry: MetricsRegistry
    config: RunConfig
    data: Any = None

    @property
    def tags(self) -> Dict[str, str]:
        return {"scenario": self.scenario}

    def url(self, path: str) -> str:
        return self.config.url(path)

    def check(
        self,
        value: Any,
        checks: Mapping[str, CheckFn],
        tags: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """
        Evaluate named predicates against ``value`` and record each outcome.

        A predicate that raises counts as a failed check.

        Returns:
            True if every predicate passed.
        """
        check_tags = self.tags
        if tags:
            check_tags.update(tags)
        all_ok = True
        for label, predicate in checks.items():
            try:
                ok = bool(predicate(value))
            except Exception as exc:
                logger.debug("Check %r raised %s", label, exc)
                ok = False
            self.registry.check(label, ok, check_tags)
            all_ok = all_ok and ok
        return all_ok

    def trend(self, name: str) -> MetricHandle:
        return self.registry.trend(name)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
