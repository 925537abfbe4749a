"""
Stress Test Metrics
===================
Trends, counters and rates shared by every virtual user of a run.

A single MetricsRegistry is created per run and handed to every worker and
scenario. Recording is safe from any number of asyncio tasks or threads, and
snapshot() returns an immutable copy that thresholds and reports read from.
"""

import math
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from stress_errors import MetricTypeError

# =============================================================================
# BUILT-IN METRIC NAMES
# =============================================================================

HTTP_REQS = "http_reqs"
HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"
SUCCESSFUL_REQUESTS = "successful_requests"
FAILED_REQUESTS = "failed_requests"
HTTP_REQ_TIMEOUTS = "http_req_timeouts"
HTTP_REQ_CONNECTION_ERRORS = "http_req_connection_errors"
ITERATIONS = "iterations"
ITERATION_DURATION = "iteration_duration"
ITERATION_ERRORS = "iteration_errors"
CHECKS = "checks"

TREND = "trend"
COUNTER = "counter"
RATE = "rate"


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Percentile by linear interpolation between the two nearest ranks.

    `sorted_values` must already be sorted ascending. Returns 0 for an empty
    sequence.
    """
    if not 0 <= p <= 100:
        raise ValueError(f"percentile must be within [0, 100], got {p}")
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if n == 1:
        return float(sorted_values[0])

    rank = p / 100 * (n - 1)
    low = math.floor(rank)
    high = min(low + 1, n - 1)
    lower = sorted_values[low]
    upper = sorted_values[high]
    return lower + (rank - low) * (upper - lower)


# =============================================================================
# SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class TrendSnapshot:
    """Point-in-time copy of a trend. Values are stored sorted."""
    name: str
    values: Tuple[float, ...] = ()
    kind: str = TREND

    @property
    def count(self) -> int:
        return len(self.values)

    @property
    def min(self) -> float:
        return self.values[0] if self.values else 0.0

    @property
    def max(self) -> float:
        return self.values[-1] if self.values else 0.0

    @property
    def avg(self) -> float:
        return math.fsum(self.values) / len(self.values) if self.values else 0.0

    @property
    def med(self) -> float:
        return self.percentile(50)

    def percentile(self, p: float) -> float:
        return percentile(self.values, p)

    @property
    def p90(self) -> float:
        return self.percentile(90)

    @property
    def p95(self) -> float:
        return self.percentile(95)

    @property
    def p99(self) -> float:
        return self.percentile(99)

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": round(self.avg, 2),
            "min": round(self.min, 2),
            "med": round(self.med, 2),
            "max": round(self.max, 2),
            "p90": round(self.p90, 2),
            "p95": round(self.p95, 2),
            "p99": round(self.p99, 2),
        }


@dataclass(frozen=True)
class CounterSnapshot:
    name: str
    total: int = 0
    kind: str = COUNTER

    @property
    def count(self) -> int:
        return self.total

    def to_dict(self) -> Dict[str, int]:
        return {"count": self.total}


@dataclass(frozen=True)
class RateSnapshot:
    name: str
    events: int = 0
    trials: int = 0
    kind: str = RATE

    @property
    def count(self) -> int:
        return self.trials

    @property
    def rate(self) -> float:
        """Fraction of trials that were events. 0 when nothing was recorded."""
        return self.events / self.trials if self.trials > 0 else 0.0

    def to_dict(self) -> Dict[str, Union[int, float]]:
        return {
            "rate": round(self.rate, 4),
            "events": self.events,
            "trials": self.trials,
        }


MetricSnapshot = Union[TrendSnapshot, CounterSnapshot, RateSnapshot]


class MetricsSnapshot:
    """Immutable view of every metric in a registry at one point in time."""

    def __init__(self, metrics: Dict[str, MetricSnapshot]):
        self._metrics = dict(metrics)

    def get(self, name: str) -> Optional[MetricSnapshot]:
        return self._metrics.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._metrics

    def __getitem__(self, name: str) -> MetricSnapshot:
        return self._metrics[name]

    def __len__(self) -> int:
        return len(self._metrics)

    def names(self) -> List[str]:
        return sorted(self._metrics)

    def items(self) -> Iterable[Tuple[str, MetricSnapshot]]:
        return ((name, self._metrics[name]) for name in self.names())

    def to_dict(self) -> Dict[str, Dict]:
        return {
            name: {"type": metric.kind, **metric.to_dict()}
            for name, metric in self.items()
        }


# =============================================================================
# LIVE METRICS
# =============================================================================

class Trend:
    """
    Distribution of observed values (latencies in milliseconds, usually).
    Samples are append-only; statistics are computed from the full set.
    """
    kind = TREND

    def __init__(self, name: str):
        self.name = name
        self._values: List[float] = []
        self._lock = threading.Lock()

    def add(self, value: float):
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"cannot record non-finite value {value} into trend '{self.name}'")
        with self._lock:
            self._values.append(value)

    def __len__(self) -> int:
        return len(self._values)

    def snapshot(self) -> TrendSnapshot:
        with self._lock:
            values = list(self._values)
        values.sort()
        return TrendSnapshot(name=self.name, values=tuple(values))


class Counter:
    """Running non-negative total."""
    kind = COUNTER

    def __init__(self, name: str):
        self.name = name
        self._total = 0
        self._lock = threading.Lock()

    def add(self, n: int = 1):
        if n < 0:
            raise ValueError(f"counter '{self.name}' cannot be decremented (got {n})")
        with self._lock:
            self._total += n

    @property
    def total(self) -> int:
        return self._total

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(name=self.name, total=self._total)


class Rate:
    """Share of boolean trials that were true."""
    kind = RATE

    def __init__(self, name: str):
        self.name = name
        self._events = 0
        self._trials = 0
        self._lock = threading.Lock()

    def add(self, outcome: bool):
        with self._lock:
            self._trials += 1
            if outcome:
                self._events += 1

    @property
    def rate(self) -> float:
        with self._lock:
            return self._events / self._trials if self._trials > 0 else 0.0

    def snapshot(self) -> RateSnapshot:
        with self._lock:
            return RateSnapshot(name=self.name, events=self._events, trials=self._trials)


Metric = Union[Trend, Counter, Rate]
_METRIC_TYPES = {TREND: Trend, COUNTER: Counter, RATE: Rate}


class MetricsRegistry:
    """
    Named metrics for one run.

    The registry lock only protects the name table; each metric carries its
    own lock so recorders of different metrics never contend.
    """

    def __init__(self):
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, name: str, kind: str) -> Metric:
        metric = self._metrics.get(name)
        if metric is None:
            with self._lock:
                metric = self._metrics.get(name)
                if metric is None:
                    metric = _METRIC_TYPES[kind](name)
                    self._metrics[name] = metric
        if metric.kind != kind:
            raise MetricTypeError(
                f"metric '{name}' is a {metric.kind}, cannot use it as a {kind}"
            )
        return metric

    def trend(self, name: str) -> Trend:
        return self._get_or_create(name, TREND)

    def counter(self, name: str) -> Counter:
        return self._get_or_create(name, COUNTER)

    def rate(self, name: str) -> Rate:
        return self._get_or_create(name, RATE)

    def record_duration(self, name: str, value: float):
        self.trend(name).add(value)

    def increment(self, name: str, n: int = 1):
        self.counter(name).add(n)

    def record_bool(self, name: str, outcome: bool):
        self.rate(name).add(bool(outcome))

    def __contains__(self, name: str) -> bool:
        return name in self._metrics

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            metrics = list(self._metrics.values())
        return MetricsSnapshot({metric.name: metric.snapshot() for metric in metrics})
