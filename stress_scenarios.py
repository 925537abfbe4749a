"""
Scenarios and weighted dispatch
===============================
A scenario is a named, weighted async workflow. Every VU iteration picks one
scenario through the WeightedDispatcher and runs it with a ScenarioContext.

    async def browse(ctx):
        resp = await ctx.client.get("/api/products")
        ctx.check(resp, {"status is 200": lambda r: r.status == 200})

    Scenario("browse", weight=0.4, fn=browse)
"""

import asyncio
import bisect
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from stress_errors import ConfigurationError
from stress_metrics import CHECKS, MetricsRegistry

logger = logging.getLogger(__name__)

ScenarioFn = Callable[["ScenarioContext"], Awaitable[Any]]


def validate_think_time(think_time: Tuple[float, float], owner: str) -> Tuple[float, float]:
    try:
        low, high = (float(v) for v in think_time)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{owner}: think time must be a (min, max) pair, got {think_time!r}")
    if low < 0 or high < low:
        raise ConfigurationError(f"{owner}: invalid think time range ({low}, {high})")
    return low, high


@dataclass(frozen=True)
class Scenario:
    """Named unit of work with its selection weight."""
    name: str
    weight: float
    fn: ScenarioFn
    think_time: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Scenario name must not be empty")
        if not callable(self.fn):
            raise ConfigurationError(f"Scenario '{self.name}': fn is not callable")
        try:
            weight = float(self.weight)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Scenario '{self.name}': weight must be a number")
        if not weight > 0:
            raise ConfigurationError(f"Scenario '{self.name}': weight must be positive ({self.weight})")
        object.__setattr__(self, "weight", weight)
        if self.think_time is not None:
            object.__setattr__(
                self, "think_time", validate_think_time(self.think_time, f"Scenario '{self.name}'")
            )


class WeightedDispatcher:
    """
    Picks scenarios with probability proportional to their weights.

    The cumulative table is built once; each draw is a binary search.
    """

    def __init__(self, scenarios: Sequence[Scenario], rng: Optional[random.Random] = None):
        if not scenarios:
            raise ConfigurationError("At least one scenario is required")

        names = [s.name for s in scenarios]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate scenario names: {', '.join(duplicates)}")

        self.scenarios: Tuple[Scenario, ...] = tuple(scenarios)
        self.rng = rng or random.Random()

        self._cumulative: List[float] = []
        total = 0.0
        for scenario in self.scenarios:
            if not scenario.weight > 0:
                raise ConfigurationError(f"Scenario '{scenario.name}': weight must be positive")
            total += scenario.weight
            self._cumulative.append(total)
        self.total_weight = total

    def probabilities(self) -> Dict[str, float]:
        return {s.name: s.weight / self.total_weight for s in self.scenarios}

    def select(self, rng: Optional[random.Random] = None) -> Scenario:
        draw = (rng or self.rng).random() * self.total_weight
        index = bisect.bisect_left(self._cumulative, draw)
        # Floating point drift can push the draw past the last boundary
        if index >= len(self.scenarios):
            index = len(self.scenarios) - 1
        return self.scenarios[index]


@dataclass
class ScenarioContext:
    """Everything a scenario needs for one iteration of one VU."""
    vu_id: int
    iteration: int
    client: Any
    metrics: MetricsRegistry
    rng: random.Random
    base_url: str = ""
    retiring: asyncio.Event = field(default_factory=asyncio.Event)

    def check(self, response: Any, checks: Dict[str, Callable[[Any], Any]]) -> bool:
        """
        Run named predicates against a response and record each outcome into
        the `checks` rate. A predicate that raises counts as a failed check.
        """
        all_passed = True
        for name, predicate in checks.items():
            try:
                ok = bool(predicate(response))
            except Exception as e:
                logger.debug("check '%s' raised %s", name, type(e).__name__)
                ok = False
            self.metrics.record_bool(CHECKS, ok)
            if not ok:
                all_passed = False
        return all_passed

    async def sleep(self, seconds: float):
        """Pause inside a scenario. Returns early when the VU is retiring."""
        if seconds <= 0 or self.retiring.is_set():
            return
        try:
            await asyncio.wait_for(self.retiring.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def pause(self, min_seconds: float, max_seconds: float):
        """Random pause between workflow steps, drawn from the VU's rng."""
        await self.sleep(self.rng.uniform(min_seconds, max_seconds))
