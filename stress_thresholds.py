"""
Threshold evaluation
====================
Pass/fail conditions over aggregated metrics, written the k6 way:

    http_req_duration: p(95)<500
    http_req_failed:   rate<0.1

Thresholds are checked once against the final MetricsSnapshot. They never
touch live metrics and never stop a run.
"""

import operator
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from stress_errors import ConfigurationError
from stress_metrics import COUNTER, RATE, TREND, MetricsSnapshot

COMPARATORS: Dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

# Which aggregates make sense for each metric kind
AGGREGATES_BY_KIND = {
    TREND: {"avg", "min", "max", "med", "count"},
    COUNTER: {"count"},
    RATE: {"rate", "count"},
}

_AGGREGATE_RE = re.compile(r"^(avg|min|max|med|count|rate|p\(\s*(\d+(?:\.\d+)?)\s*\))$")
_EXPRESSION_RE = re.compile(
    r"^\s*(?P<aggregate>[a-z]+(?:\(\s*[\d.]+\s*\))?)\s*"
    r"(?P<comparator><=|>=|==|!=|<|>)\s*"
    r"(?P<limit>[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)\s*$"
)


def _normalize_aggregate(aggregate: str) -> str:
    aggregate = aggregate.strip().lower()
    match = _AGGREGATE_RE.match(aggregate)
    if not match:
        raise ConfigurationError(f"Unknown threshold aggregate: '{aggregate}'")
    if match.group(2) is not None:
        p = float(match.group(2))
        if not 0 <= p <= 100:
            raise ConfigurationError(f"Percentile out of range in '{aggregate}'")
        return f"p({match.group(2)})"
    return aggregate


@dataclass(frozen=True)
class Threshold:
    """One condition, e.g. Threshold("http_req_duration", "p(95)", "<", 500)."""
    metric: str
    aggregate: str
    comparator: str
    limit: float

    def __post_init__(self):
        if not self.metric or not isinstance(self.metric, str):
            raise ConfigurationError(f"Threshold metric name must be a non-empty string, got {self.metric!r}")
        if not isinstance(self.comparator, str) or self.comparator not in COMPARATORS:
            raise ConfigurationError(
                f"Unknown comparator '{self.comparator}' for metric '{self.metric}'"
            )
        if not isinstance(self.aggregate, str):
            raise ConfigurationError(f"Threshold aggregate for '{self.metric}' must be a string")
        object.__setattr__(self, "aggregate", _normalize_aggregate(self.aggregate))
        try:
            object.__setattr__(self, "limit", float(self.limit))
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Threshold limit for '{self.metric}' must be a number, got {self.limit!r}"
            )

    @classmethod
    def parse(cls, metric: str, expression: str) -> "Threshold":
        """Build a threshold from a k6-style expression such as 'p(95)<500'."""
        if not isinstance(expression, str):
            raise ConfigurationError(
                f"Threshold expression for '{metric}' must be a string, got {expression!r}"
            )
        match = _EXPRESSION_RE.match(expression)
        if not match:
            raise ConfigurationError(
                f"Malformed threshold expression for '{metric}': '{expression}'"
            )
        return cls(
            metric=metric,
            aggregate=match.group("aggregate"),
            comparator=match.group("comparator"),
            limit=float(match.group("limit")),
        )

    @property
    def percentile(self) -> Optional[float]:
        if self.aggregate.startswith("p("):
            return float(self.aggregate[2:-1])
        return None

    @property
    def expression(self) -> str:
        return f"{self.aggregate}{self.comparator}{self.limit:g}"

    def __str__(self) -> str:
        return f"{self.metric}: {self.expression}"


@dataclass(frozen=True)
class ThresholdResult:
    threshold: Threshold
    observed: Optional[float]
    passed: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.threshold.metric,
            "expression": self.threshold.expression,
            "observed": round(self.observed, 4) if self.observed is not None else None,
            "passed": self.passed,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class EvaluationResult:
    overall_pass: bool
    results: List[ThresholdResult] = field(default_factory=list)

    @property
    def failed(self) -> List[ThresholdResult]:
        return [r for r in self.results if not r.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_pass": self.overall_pass,
            "results": [r.to_dict() for r in self.results],
        }


def parse_thresholds(raw: Any) -> List[Threshold]:
    """
    Accepts either the k6 mapping form

        {"http_req_duration": ["p(95)<500"], "http_req_failed": ["rate<0.1"]}

    or a list of dicts with `metric` plus either `expression` or
    `aggregate`/`comparator`/`limit`.
    """
    if raw is None:
        return []

    thresholds: List[Threshold] = []
    if isinstance(raw, dict):
        for metric, expressions in raw.items():
            if isinstance(expressions, str):
                expressions = [expressions]
            if not isinstance(expressions, (list, tuple)):
                raise ConfigurationError(
                    f"Thresholds for '{metric}' must be an expression or a list, got {expressions!r}"
                )
            for expression in expressions:
                thresholds.append(Threshold.parse(metric, expression))
        return thresholds

    if isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, Threshold):
                thresholds.append(entry)
                continue
            if not isinstance(entry, dict) or "metric" not in entry:
                raise ConfigurationError(f"Threshold entry must name a metric: {entry!r}")
            if "expression" in entry:
                thresholds.append(Threshold.parse(entry["metric"], entry["expression"]))
                continue
            try:
                thresholds.append(Threshold(
                    metric=entry["metric"],
                    aggregate=entry["aggregate"],
                    comparator=entry["comparator"],
                    limit=entry["limit"],
                ))
            except KeyError as e:
                raise ConfigurationError(
                    f"Threshold for '{entry['metric']}' is missing field {e}"
                )
        return thresholds

    raise ConfigurationError(f"Thresholds must be a mapping or a list, got {type(raw).__name__}")


def _observe(metric, threshold: Threshold) -> float:
    if threshold.percentile is not None:
        return metric.percentile(threshold.percentile)
    return float(getattr(metric, threshold.aggregate))


def evaluate_threshold(snapshot: MetricsSnapshot, threshold: Threshold) -> ThresholdResult:
    metric = snapshot.get(threshold.metric)
    if metric is None or metric.count == 0:
        return ThresholdResult(threshold, observed=None, passed=False, reason="no data")

    allowed = AGGREGATES_BY_KIND[metric.kind]
    if threshold.aggregate not in allowed and not (
        metric.kind == TREND and threshold.percentile is not None
    ):
        return ThresholdResult(
            threshold,
            observed=None,
            passed=False,
            reason=f"'{threshold.aggregate}' is not available for {metric.kind} metrics",
        )

    observed = _observe(metric, threshold)
    passed = COMPARATORS[threshold.comparator](observed, threshold.limit)
    return ThresholdResult(threshold, observed=observed, passed=passed)


def evaluate(snapshot: MetricsSnapshot, thresholds: List[Threshold]) -> EvaluationResult:
    """Check every threshold against the snapshot. A run with no thresholds passes."""
    results = [evaluate_threshold(snapshot, t) for t in thresholds]
    return EvaluationResult(
        overall_pass=all(r.passed for r in results),
        results=results,
    )
