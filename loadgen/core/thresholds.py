"""Pass/fail thresholds over the aggregated run metrics.

Thresholds use the k6 expression form: a metric name with an optional tag
filter, and an ``<aggregation><comparator><limit>`` expression::

    parse_threshold("http_req_duration", "p(95)<500")
    parse_threshold("http_req_duration{operation:create}", "avg<=800")
    parse_threshold("http_req_failed", "rate<0.05")
    parse_threshold("checks_failed{check:GET /api/users status is 200}", "rate<0.01")

Supported metrics:

    http_req_duration   trend  avg|min|max|med|count|p(N)   tags: operation, domain
    http_req_failed     rate   rate|count
    checks_failed       rate   rate|count                   tags: check
    checks              rate   rate
    errors              rate   rate|count                   tags: scenario
    http_reqs           count  count
    iterations          count  count

``evaluate`` is a pure function of a frozen ``MetricsSnapshot``.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

from loadgen.core.metrics import MetricsSnapshot, RateSeries, TrendSeries
from loadgen.exceptions import ValidationError

_COMPARATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_EXPR_RE = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|count|rate|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<cmp><=|>=|==|!=|<|>)\s*(?P<limit>-?\d+(?:\.\d+)?)\s*$"
)
_METRIC_RE = re.compile(r"^\s*(?P<name>[a-z_]+)\s*(?:\{(?P<tag>[^{}]*)\})?\s*$")

_TREND_AGGS = frozenset({"avg", "min", "max", "med", "count"})

_METRICS: dict[str, tuple[frozenset[str], frozenset[str]]] = {
    # name: (aggregations besides p(N), allowed tag keys)
    "http_req_duration": (_TREND_AGGS, frozenset({"operation", "domain"})),
    "http_req_failed": (frozenset({"rate", "count"}), frozenset()),
    "checks_failed": (frozenset({"rate", "count"}), frozenset({"check"})),
    "checks": (frozenset({"rate"}), frozenset()),
    "errors": (frozenset({"rate", "count"}), frozenset({"scenario"})),
    "http_reqs": (frozenset({"count"}), frozenset()),
    "iterations": (frozenset({"count"}), frozenset()),
}


@dataclass(frozen=True)
class ThresholdSpec:
    metric: str
    aggregation: str
    comparator: str
    limit: float
    tag: tuple[str, str] | None = None
    percentile: float | None = None

    @property
    def metric_label(self) -> str:
        if self.tag is None:
            return self.metric
        return f"{self.metric}{{{self.tag[0]}:{self.tag[1]}}}"

    @property
    def expression(self) -> str:
        return f"{self.aggregation}{self.comparator}{self.limit:g}"

    def __str__(self) -> str:
        return f"{self.metric_label} {self.expression}"


@dataclass(frozen=True)
class ThresholdResult:
    spec: ThresholdSpec
    actual: float | None
    passed: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.spec.metric_label,
            "expression": self.spec.expression,
            "limit": self.spec.limit,
            "actual": self.actual,
            "passed": self.passed,
        }


def parse_threshold(metric: str, expression: str) -> ThresholdSpec:
    metric_match = _METRIC_RE.match(metric)
    if not metric_match:
        raise ValidationError("INVALID_THRESHOLD", f"Invalid metric name: {metric!r}", {"metric": metric})

    name = metric_match.group("name")
    if name not in _METRICS:
        raise ValidationError(
            "INVALID_THRESHOLD",
            f"Unknown metric: {name!r}",
            {"metric": name, "supported": sorted(_METRICS)},
        )
    aggregations, tag_keys = _METRICS[name]

    tag: tuple[str, str] | None = None
    raw_tag = metric_match.group("tag")
    if raw_tag is not None:
        key, sep, value = raw_tag.partition(":")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            raise ValidationError("INVALID_THRESHOLD", f"Tag filter must be key:value, got {raw_tag!r}")
        if key not in tag_keys:
            raise ValidationError(
                "INVALID_THRESHOLD",
                f"Metric {name!r} cannot be filtered by tag {key!r}",
                {"metric": name, "tag": key},
            )
        tag = (key, value)

    expr_match = _EXPR_RE.match(expression)
    if not expr_match:
        raise ValidationError(
            "INVALID_THRESHOLD",
            f"Invalid threshold expression: {expression!r}",
            {"metric": name, "expression": expression},
        )

    aggregation = expr_match.group("agg").replace(" ", "")
    percentile: float | None = None
    if expr_match.group("pct") is not None:
        if name != "http_req_duration":
            raise ValidationError("INVALID_THRESHOLD", f"Percentiles only apply to trends, not {name!r}")
        percentile = float(expr_match.group("pct"))
        if percentile > 100:
            raise ValidationError("INVALID_THRESHOLD", f"Percentile out of range: {percentile:g}")
    elif aggregation not in aggregations:
        raise ValidationError(
            "INVALID_THRESHOLD",
            f"Aggregation {aggregation!r} is not valid for {name!r}",
            {"metric": name, "aggregation": aggregation},
        )

    return ThresholdSpec(
        metric=name,
        aggregation=aggregation,
        comparator=expr_match.group("cmp"),
        limit=float(expr_match.group("limit")),
        tag=tag,
        percentile=percentile,
    )


def parse_thresholds(raw: dict[str, Sequence[str] | str]) -> list[ThresholdSpec]:
    """Parse a k6-style ``{metric: [expressions]}`` mapping."""
    specs: list[ThresholdSpec] = []
    for metric, expressions in raw.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        for expression in expressions:
            specs.append(parse_threshold(metric, expression))
    return specs


def measure(snapshot: MetricsSnapshot, spec: ThresholdSpec) -> float | None:
    """Value of the metric/aggregation a threshold refers to, None if unmeasurable."""
    if spec.metric == "http_req_duration":
        return _trend_value(_trend_series(snapshot, spec.tag), spec)
    if spec.metric == "http_reqs":
        return float(snapshot.http_reqs)
    if spec.metric == "iterations":
        return float(snapshot.iterations)
    if spec.metric == "checks":
        return 1.0 - snapshot.checks_failed.rate if snapshot.checks_failed.total else 0.0

    series = _rate_series(snapshot, spec.metric, spec.tag)
    if spec.aggregation == "count":
        return float(series.hits)
    return series.rate


def evaluate(snapshot: MetricsSnapshot, specs: Iterable[ThresholdSpec]) -> list[ThresholdResult]:
    results: list[ThresholdResult] = []
    for spec in specs:
        actual = measure(snapshot, spec)
        passed = actual is not None and _COMPARATORS[spec.comparator](actual, spec.limit)
        results.append(ThresholdResult(spec=spec, actual=actual, passed=passed))
    return results


def verdict(results: Iterable[ThresholdResult]) -> bool:
    return all(result.passed for result in results)


def _trend_series(snapshot: MetricsSnapshot, tag: tuple[str, str] | None) -> TrendSeries | None:
    if tag is None:
        return snapshot.http_req_duration
    key, value = tag
    if key == "operation":
        return snapshot.duration_by_operation.get(value)
    return snapshot.duration_by_domain.get(value)


def _trend_value(series: TrendSeries | None, spec: ThresholdSpec) -> float | None:
    if series is None or series.count == 0:
        return None
    if spec.percentile is not None:
        return series.percentile(spec.percentile / 100.0)
    if spec.aggregation == "avg":
        return series.mean_ms
    if spec.aggregation == "min":
        return series.min_ms
    if spec.aggregation == "max":
        return series.max_ms
    if spec.aggregation == "med":
        return series.percentile(0.5)
    return float(series.count)


def _rate_series(snapshot: MetricsSnapshot, metric: str, tag: tuple[str, str] | None) -> RateSeries:
    empty = RateSeries(hits=0, total=0)
    if metric == "http_req_failed":
        return snapshot.http_req_failed
    if metric == "checks_failed":
        if tag is None:
            return snapshot.checks_failed
        return snapshot.checks_failed_by_name.get(tag[1], empty)
    if tag is None:
        return snapshot.iterations_failed
    return snapshot.iterations_by_scenario.get(tag[1], empty)
