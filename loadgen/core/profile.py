from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loadgen.core.executor import DEFAULT_LATENCY_BUDGETS_MS
from loadgen.core.models import Domain, Operation, ScenarioDescriptor, Stage
from loadgen.core.thresholds import ThresholdSpec, parse_thresholds
from loadgen.core.timeparse import parse_duration_to_seconds
from loadgen.exceptions import ConfigurationError, ValidationError

DEFAULT_STAGES: tuple[Stage, ...] = (
    Stage(duration_seconds=30, target=10),
    Stage(duration_seconds=60, target=50),
    Stage(duration_seconds=30, target=100),
    Stage(duration_seconds=120, target=100),
    Stage(duration_seconds=30, target=0),
)

DEFAULT_WEIGHTS: tuple[tuple[Operation, float], ...] = (
    (Operation.READ_ALL, 40),
    (Operation.READ_ONE, 30),
    (Operation.CREATE, 15),
    (Operation.UPDATE, 10),
    (Operation.DELETE, 5),
)

DEFAULT_THRESHOLDS: dict[str, list[str]] = {
    "http_req_duration": ["p(95)<500"],
    "http_req_failed": ["rate<0.05"],
    "errors": ["rate<0.1"],
}

DEFAULT_DOMAIN_SPLIT = 0.3


def default_catalog(domain: Domain) -> tuple[ScenarioDescriptor, ...]:
    return tuple(
        ScenarioDescriptor(
            name=f"{domain.value}.{operation.value}",
            weight=weight,
            domain=domain,
            operation=operation,
        )
        for operation, weight in DEFAULT_WEIGHTS
    )


@dataclass(frozen=True)
class RunProfile:
    """The workload of a run: ramp profile, scenario mix and pass criteria."""

    stages: tuple[Stage, ...] = DEFAULT_STAGES
    users: tuple[ScenarioDescriptor, ...] = field(default_factory=lambda: default_catalog(Domain.USERS))
    orders: tuple[ScenarioDescriptor, ...] = field(default_factory=lambda: default_catalog(Domain.ORDERS))
    domain_split: float = DEFAULT_DOMAIN_SPLIT
    thresholds: tuple[ThresholdSpec, ...] = field(
        default_factory=lambda: tuple(parse_thresholds(DEFAULT_THRESHOLDS))
    )
    latency_budgets_ms: dict[Operation, float] = field(default_factory=lambda: dict(DEFAULT_LATENCY_BUDGETS_MS))
    known_id_ratio: float = 0.7
    think_time_min_seconds: float = 0.1
    think_time_max_seconds: float = 1.0

    def __post_init__(self) -> None:
        if not self.stages:
            raise ValueError("profile needs at least one stage")
        if not self.users or not self.orders:
            raise ValueError("both scenario catalogs must be non-empty")
        if not 0.0 <= self.domain_split <= 1.0:
            raise ValueError("domain_split must be within [0, 1]")
        if not 0.0 <= self.known_id_ratio <= 1.0:
            raise ValueError("known_id_ratio must be within [0, 1]")
        if self.think_time_min_seconds < 0 or self.think_time_max_seconds < self.think_time_min_seconds:
            raise ValueError("think time window must satisfy 0 <= min <= max")

    @property
    def total_duration_seconds(self) -> float:
        return sum(stage.duration_seconds for stage in self.stages)


def load_profile(path: str) -> RunProfile:
    """Load a run profile from JSON. Every key is optional.

    Expected shape:
      {
        "stages": [{"duration": "30s", "target": 10}, {"duration": "1m", "target": 50}],
        "scenarios": {
          "users":  [{"operation": "read-all", "weight": 40}, ...],
          "orders": {"read-all": 40, "read-one": 30, ...}
        },
        "domain_split": 0.3,
        "thresholds": {"http_req_duration": ["p(95)<500"], "errors": "rate<0.1"},
        "latency_budgets_ms": {"read-one": 300},
        "known_id_ratio": 0.7,
        "think_time": {"min": "100ms", "max": "1s"}
      }

    Catalog order in the file is the selection order.
    """

    profile_path = Path(path)
    try:
        data = json.loads(profile_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(
            "PROFILE_UNREADABLE",
            f"Cannot read profile {path}",
            {"path": path, "error": str(exc)},
        ) from exc

    if not isinstance(data, dict):
        raise ConfigurationError("INVALID_PROFILE", "profile must be a JSON object", {"path": path})

    try:
        return profile_from_dict(data)
    except ValidationError as exc:
        raise ConfigurationError(exc.code, exc.message, {"path": path, **exc.details}) from exc
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("INVALID_PROFILE", str(exc), {"path": path}) from exc


def profile_from_dict(data: dict[str, Any]) -> RunProfile:
    kwargs: dict[str, Any] = {}

    if "stages" in data:
        kwargs["stages"] = _parse_stages(data["stages"])

    scenarios = data.get("scenarios")
    if scenarios is not None:
        if not isinstance(scenarios, dict):
            raise ValueError("'scenarios' must be an object keyed by domain")
        unknown = set(scenarios) - {d.value for d in Domain}
        if unknown:
            raise ValueError(f"unknown scenario domains: {sorted(unknown)}")
        for domain in Domain:
            if domain.value in scenarios:
                kwargs[domain.value] = _parse_catalog(domain, scenarios[domain.value])

    if "domain_split" in data:
        kwargs["domain_split"] = _as_float(data["domain_split"], "domain_split")

    if "thresholds" in data:
        raw = data["thresholds"]
        if not isinstance(raw, dict):
            raise ValueError("'thresholds' must be an object of metric -> expressions")
        kwargs["thresholds"] = tuple(parse_thresholds(raw))

    if "latency_budgets_ms" in data:
        budgets = dict(DEFAULT_LATENCY_BUDGETS_MS)
        raw_budgets = data["latency_budgets_ms"]
        if not isinstance(raw_budgets, dict):
            raise ValueError("'latency_budgets_ms' must be an object of operation -> ms")
        for op_name, value in raw_budgets.items():
            budget = _as_float(value, f"latency_budgets_ms.{op_name}")
            if budget <= 0:
                raise ValueError(f"latency budget for {op_name!r} must be > 0")
            budgets[_parse_operation(op_name)] = budget
        kwargs["latency_budgets_ms"] = budgets

    if "known_id_ratio" in data:
        kwargs["known_id_ratio"] = _as_float(data["known_id_ratio"], "known_id_ratio")

    think = data.get("think_time")
    if think is not None:
        if not isinstance(think, dict):
            raise ValueError("'think_time' must be an object with min/max")
        if "min" in think:
            kwargs["think_time_min_seconds"] = parse_duration_to_seconds(think["min"])
        if "max" in think:
            kwargs["think_time_max_seconds"] = parse_duration_to_seconds(think["max"])

    return RunProfile(**kwargs)


def _parse_stages(raw: Any) -> tuple[Stage, ...]:
    if not isinstance(raw, list) or not raw:
        raise ValueError("'stages' must be a non-empty list")

    stages: list[Stage] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValueError(f"stage {index} must be an object")
        target = entry.get("target")
        if not isinstance(target, int) or isinstance(target, bool) or target < 0:
            raise ValueError(f"stage {index} has invalid target: {target!r}")
        if "duration" not in entry:
            raise ValueError(f"stage {index} is missing 'duration'")
        stages.append(Stage(duration_seconds=parse_duration_to_seconds(entry["duration"]), target=target))
    return tuple(stages)


def _parse_catalog(domain: Domain, raw: Any) -> tuple[ScenarioDescriptor, ...]:
    if isinstance(raw, dict):
        entries = [{"operation": op, "weight": weight} for op, weight in raw.items()]
    elif isinstance(raw, list):
        entries = raw
    else:
        raise ValueError(f"catalog for {domain.value!r} must be a list or an object")

    if not entries:
        raise ValueError(f"catalog for {domain.value!r} must be non-empty")

    descriptors: list[ScenarioDescriptor] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"{domain.value} scenario {index} must be an object")
        operation = _parse_operation(entry.get("operation"))
        weight = _as_float(entry.get("weight"), f"{domain.value} scenario {index} weight")
        name = entry.get("name") or f"{domain.value}.{operation.value}"
        descriptors.append(
            ScenarioDescriptor(name=str(name), weight=weight, domain=domain, operation=operation)
        )
    return tuple(descriptors)


def _parse_operation(raw: Any) -> Operation:
    try:
        return Operation(raw)
    except ValueError:
        raise ValueError(
            f"unknown operation {raw!r}; expected one of {[o.value for o in Operation]}"
        ) from None


def _as_float(raw: Any, label: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{label} must be a number, got {raw!r}")
    if not math.isfinite(raw):
        raise ValueError(f"{label} must be finite, got {raw!r}")
    return float(raw)
