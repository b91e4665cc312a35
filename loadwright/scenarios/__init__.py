"""
Scenario scripts for the appointments/patients scheduling API.

Each module exposes ``build(config) -> Scenario``; ``SCENARIOS`` maps the
CLI names to those builders.
"""

from typing import Callable, Dict, Optional

from loadwright.config import RunConfig
from loadwright.models import Scenario
from loadwright.scenarios import load, security_probes, smoke, stress

ScenarioBuilder = Callable[[Optional[RunConfig]], Scenario]

SCENARIOS: Dict[str, ScenarioBuilder] = {
    "smoke": smoke.build,
    "load": load.build,
    "stress": stress.build,
    "security-probes": security_probes.build,
}

__all__ = ["SCENARIOS", "load", "security_probes", "smoke", "stress"]
