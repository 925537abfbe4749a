"""
Stage scheduling
================
Ramping virtual-user targets over a sequence of timed stages.

    stages = [Stage(60, 10), Stage(300, 10), Stage(60, 0)]

ramps from 0 to 10 VUs over the first minute, holds for five minutes and
ramps back down to 0 over the last minute.
"""

import math
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from stress_errors import ConfigurationError

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Union[int, float, str]) -> float:
    """
    Parse a duration into seconds.

    Numbers are taken as seconds. Strings follow the k6 notation:
    "500ms", "30s", "2m", "1h", "1m30s". A bare numeric string is seconds.
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ConfigurationError(f"Invalid duration: {value!r}")

    text = value.strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ConfigurationError(f"Invalid duration: '{value}'")
    return total


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


@dataclass(frozen=True)
class Stage:
    """Ramp to `target` VUs over `duration` seconds."""
    duration: float
    target: int

    @classmethod
    def from_dict(cls, raw: dict) -> "Stage":
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Stage must be a mapping with duration and target, got {raw!r}")
        try:
            return cls(duration=parse_duration(raw["duration"]), target=raw["target"])
        except KeyError as e:
            raise ConfigurationError(f"Stage is missing field {e}: {raw!r}")


class StageScheduler:
    """
    Computes the desired number of concurrent VUs at any elapsed time.

    Within a stage the target is linearly interpolated from the previous
    stage's target (or `start_target` for the first stage) to this stage's
    target, rounded half up. Once the plan is over the target is 0.
    """

    def __init__(self, stages: Sequence[Stage], start_target: int = 0):
        if not stages:
            raise ConfigurationError("At least one stage is required")
        if start_target < 0:
            raise ConfigurationError("start_target cannot be negative")

        self.stages: Tuple[Stage, ...] = tuple(stages)
        self.start_target = start_target

        # (stage_start, stage_end, from_target, to_target)
        self._windows: List[Tuple[float, float, int, int]] = []
        elapsed = 0.0
        previous = start_target
        for i, stage in enumerate(self.stages):
            if not isinstance(stage.target, int) or isinstance(stage.target, bool):
                raise ConfigurationError(f"Stage {i}: target must be an integer, got {stage.target!r}")
            if stage.target < 0:
                raise ConfigurationError(f"Stage {i}: target cannot be negative ({stage.target})")
            if not stage.duration > 0 or math.isinf(stage.duration):
                raise ConfigurationError(
                    f"Stage {i}: duration must be a positive number of seconds ({stage.duration})"
                )
            self._windows.append((elapsed, elapsed + stage.duration, previous, stage.target))
            elapsed += stage.duration
            previous = stage.target

        self.total_duration = elapsed

    @property
    def max_target(self) -> int:
        return max([self.start_target] + [s.target for s in self.stages])

    def is_finished(self, elapsed: float) -> bool:
        return elapsed >= self.total_duration

    def stage_at(self, elapsed: float) -> Optional[int]:
        """Index of the stage whose window contains `elapsed`, None when finished."""
        if elapsed < 0:
            return 0
        for i, (start, end, _, _) in enumerate(self._windows):
            if elapsed < end:
                return i
        return None

    def target_concurrency(self, elapsed: float) -> int:
        index = self.stage_at(elapsed)
        if index is None:
            return 0

        start, end, t0, t1 = self._windows[index]
        progress = (max(elapsed, 0.0) - start) / (end - start)
        return _round_half_up(t0 + (t1 - t0) * progress)
