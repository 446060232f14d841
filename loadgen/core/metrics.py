from __future__ import annotations

import math
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Collection

from loadgen.core.models import CheckResult, Domain, Operation, RequestOutcome
from loadgen.logger import Logger, session_logger


def _percentile(sorted_values: tuple[float, ...] | list[float], p: float) -> float | None:
    """Compute percentile using linear interpolation.

    Expects sorted_values sorted ascending.
    """

    if not sorted_values:
        return None

    if p <= 0:
        return float(sorted_values[0])
    if p >= 1:
        return float(sorted_values[-1])

    k = (len(sorted_values) - 1) * p
    f = int(math.floor(k))
    c = int(math.ceil(k))
    if f == c:
        return float(sorted_values[f])
    d0 = sorted_values[f] * (c - k)
    d1 = sorted_values[c] * (k - f)
    return float(d0 + d1)


class _ReservoirSampler:
    """Fixed-size reservoir sampler for latency values.

    This avoids unbounded memory growth during long runs.
    """

    def __init__(self, max_size: int, *, seed: int | None = None) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self._max_size = max_size
        self._rng = random.Random(seed)
        self._seen = 0
        self._values: list[float] = []

    def add(self, value: float) -> None:
        self._seen += 1
        if len(self._values) < self._max_size:
            self._values.append(value)
            return

        # Replace elements with decreasing probability.
        idx = self._rng.randrange(self._seen)
        if idx < self._max_size:
            self._values[idx] = value

    def values(self) -> list[float]:
        return list(self._values)


@dataclass
class _TrendAgg:
    sample: _ReservoirSampler
    count: int = 0
    sum_ms: float = 0.0
    min_ms: float | None = None
    max_ms: float | None = None

    def observe(self, duration_ms: float) -> None:
        self.count += 1
        self.sum_ms += duration_ms
        if self.min_ms is None or duration_ms < self.min_ms:
            self.min_ms = duration_ms
        if self.max_ms is None or duration_ms > self.max_ms:
            self.max_ms = duration_ms
        self.sample.add(duration_ms)

    def freeze(self) -> "TrendSeries":
        return TrendSeries(
            count=self.count,
            sum_ms=self.sum_ms,
            min_ms=self.min_ms,
            max_ms=self.max_ms,
            samples=tuple(sorted(self.sample.values())),
        )


@dataclass
class _RateAgg:
    hits: int = 0
    total: int = 0

    def observe(self, hit: bool) -> None:
        self.total += 1
        if hit:
            self.hits += 1

    def freeze(self) -> "RateSeries":
        return RateSeries(hits=self.hits, total=self.total)


# ---------------------------------------------------------------------------
# Frozen snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateSeries:
    """Fraction of observations that were hits (e.g. failed requests)."""

    hits: int
    total: int

    @property
    def rate(self) -> float:
        return (self.hits / self.total) if self.total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"hits": self.hits, "total": self.total, "rate": round(self.rate, 6)}


@dataclass(frozen=True)
class TrendSeries:
    """Latency distribution; ``samples`` is the sorted reservoir."""

    count: int
    sum_ms: float
    min_ms: float | None
    max_ms: float | None
    samples: tuple[float, ...]

    @property
    def mean_ms(self) -> float | None:
        return (self.sum_ms / self.count) if self.count else None

    def percentile(self, p: float) -> float | None:
        return _percentile(self.samples, p)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
            "mean_ms": self.mean_ms,
            "p50_ms": self.percentile(0.50),
            "p90_ms": self.percentile(0.90),
            "p95_ms": self.percentile(0.95),
            "p99_ms": self.percentile(0.99),
            "sample_size": len(self.samples),
        }


@dataclass(frozen=True)
class MetricsSnapshot:
    """Read-only view of the collector at one instant."""

    http_reqs: int
    http_req_failed: RateSeries
    http_req_duration: TrendSeries
    duration_by_operation: dict[str, TrendSeries]
    duration_by_domain: dict[str, TrendSeries]
    checks_failed: RateSeries
    checks_failed_by_name: dict[str, RateSeries]
    iterations: int
    iterations_skipped: int
    iterations_failed: RateSeries
    iterations_by_scenario: dict[str, RateSeries]
    error_types: dict[str, int] = field(default_factory=dict)

    @property
    def error_rate(self) -> float:
        """Overall failed-check ratio."""
        return self.checks_failed.rate

    def check_failure_rate(self, name: str) -> float:
        series = self.checks_failed_by_name.get(name)
        return series.rate if series is not None else 0.0

    def latency(self, operation: Operation | str | None = None) -> TrendSeries | None:
        if operation is None:
            return self.http_req_duration
        key = operation.value if isinstance(operation, Operation) else operation
        return self.duration_by_operation.get(key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "http_reqs": self.http_reqs,
            "http_req_failed": self.http_req_failed.to_dict(),
            "http_req_duration": self.http_req_duration.to_dict(),
            "http_req_duration_by_operation": {
                k: v.to_dict() for k, v in sorted(self.duration_by_operation.items())
            },
            "http_req_duration_by_domain": {
                k: v.to_dict() for k, v in sorted(self.duration_by_domain.items())
            },
            "checks_failed": self.checks_failed.to_dict(),
            "checks_failed_by_name": {
                k: v.to_dict() for k, v in sorted(self.checks_failed_by_name.items())
            },
            "iterations": self.iterations,
            "iterations_skipped": self.iterations_skipped,
            "errors": self.iterations_failed.to_dict(),
            "iterations_by_scenario": {
                k: v.to_dict() for k, v in sorted(self.iterations_by_scenario.items())
            },
            "error_types": dict(sorted(self.error_types.items())),
        }


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------

class MetricsCollector:
    """Process-wide accumulator fed by every virtual user.

    All mutation happens under one lock, so concurrent callers (tasks or
    threads) never lose updates. Aggregates are purely additive; callers are
    not ordered relative to each other.
    """

    def __init__(
        self,
        *,
        sample_size: int = 5000,
        logger: Logger | None = None,
    ) -> None:
        self._logger = logger or session_logger
        self._lock = threading.Lock()
        self._sample_size = sample_size

        self._http_reqs = 0
        self._http_req_failed = _RateAgg()
        self._duration = self._new_trend()
        self._duration_by_operation: dict[str, _TrendAgg] = {}
        self._duration_by_domain: dict[str, _TrendAgg] = {}
        self._error_types: dict[str, int] = {}

        self._checks_failed = _RateAgg()
        self._checks_failed_by_name: dict[str, _RateAgg] = {}

        self._iterations = 0
        self._iterations_skipped = 0
        self._iterations_failed = _RateAgg()
        self._iterations_by_scenario: dict[str, _RateAgg] = {}

    def _new_trend(self) -> _TrendAgg:
        return _TrendAgg(sample=_ReservoirSampler(self._sample_size))

    def record_check(self, result: CheckResult) -> None:
        with self._lock:
            self._checks_failed.observe(not result.passed)
            agg = self._checks_failed_by_name.get(result.name)
            if agg is None:
                agg = _RateAgg()
                self._checks_failed_by_name[result.name] = agg
            agg.observe(not result.passed)

        if not result.passed:
            self._logger.debug("loadgen.check_failed", check=result.name)

    def record_latency(
        self,
        operation: Operation | str,
        duration_ms: float,
        *,
        domain: Domain | str | None = None,
    ) -> None:
        if duration_ms < 0:
            duration_ms = 0.0

        op_key = operation.value if isinstance(operation, Operation) else operation
        domain_key = domain.value if isinstance(domain, Domain) else domain

        with self._lock:
            self._observe_latency(op_key, domain_key, duration_ms)

    def record_request(
        self,
        outcome: RequestOutcome,
        *,
        expected_statuses: Collection[int],
        domain: Domain | str | None = None,
    ) -> None:
        """Count one HTTP call and add its latency sample.

        The call counts as failed when the transport failed or the status is
        not one the scenario expects.
        """
        failed = outcome.transport_failed or outcome.status_code not in expected_statuses
        domain_key = domain.value if isinstance(domain, Domain) else domain
        latency = max(0.0, outcome.latency_ms)

        with self._lock:
            self._http_reqs += 1
            self._http_req_failed.observe(failed)
            if failed:
                error_type = outcome.error_type or f"unexpected_{outcome.status_code}"
                self._error_types[error_type] = self._error_types.get(error_type, 0) + 1
            self._observe_latency(outcome.operation.value, domain_key, latency)

    def record_iteration(self, scenario: str, passed: bool | None) -> None:
        """Count one scenario iteration.

        ``passed=None`` marks an iteration whose checked step was skipped; it
        counts towards ``iterations`` but not towards the failure rate.
        """
        with self._lock:
            self._iterations += 1
            if passed is None:
                self._iterations_skipped += 1
                return
            self._iterations_failed.observe(not passed)
            agg = self._iterations_by_scenario.get(scenario)
            if agg is None:
                agg = _RateAgg()
                self._iterations_by_scenario[scenario] = agg
            agg.observe(not passed)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                http_reqs=self._http_reqs,
                http_req_failed=self._http_req_failed.freeze(),
                http_req_duration=self._duration.freeze(),
                duration_by_operation={k: v.freeze() for k, v in self._duration_by_operation.items()},
                duration_by_domain={k: v.freeze() for k, v in self._duration_by_domain.items()},
                checks_failed=self._checks_failed.freeze(),
                checks_failed_by_name={k: v.freeze() for k, v in self._checks_failed_by_name.items()},
                iterations=self._iterations,
                iterations_skipped=self._iterations_skipped,
                iterations_failed=self._iterations_failed.freeze(),
                iterations_by_scenario={k: v.freeze() for k, v in self._iterations_by_scenario.items()},
                error_types=dict(self._error_types),
            )

    def _observe_latency(self, operation: str, domain: str | None, duration_ms: float) -> None:
        self._duration.observe(duration_ms)

        op_agg = self._duration_by_operation.get(operation)
        if op_agg is None:
            op_agg = self._new_trend()
            self._duration_by_operation[operation] = op_agg
        op_agg.observe(duration_ms)

        if domain is not None:
            domain_agg = self._duration_by_domain.get(domain)
            if domain_agg is None:
                domain_agg = self._new_trend()
                self._duration_by_domain[domain] = domain_agg
            domain_agg.observe(duration_ms)
