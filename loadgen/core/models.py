from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loadgen.core.metrics import MetricsSnapshot
    from loadgen.core.thresholds import ThresholdResult


class Domain(str, Enum):
    """CRUD resource domain exposed by the service under test."""

    USERS = "users"
    ORDERS = "orders"


class Operation(str, Enum):
    """Business operation performed by a scenario."""

    READ_ALL = "read-all"
    READ_ONE = "read-one"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Stage:
    """A timed segment of the run with a target concurrency.

    The target is reached at the end of the stage; concurrency ramps linearly
    from the previous stage's target over ``duration_seconds``.
    """

    duration_seconds: float
    target: int

    def __post_init__(self) -> None:
        if not math.isfinite(self.duration_seconds):
            raise ValueError("stage duration must be finite")
        if self.duration_seconds < 0:
            raise ValueError("stage duration must be non-negative")
        if self.target < 0:
            raise ValueError("stage target must be non-negative")


@dataclass(frozen=True)
class ScenarioDescriptor:
    name: str
    weight: float
    domain: Domain
    operation: Operation

    def __post_init__(self) -> None:
        if not math.isfinite(self.weight) or not self.weight > 0:
            raise ValueError(f"scenario {self.name!r} weight must be a finite number > 0")

    @property
    def key(self) -> str:
        return f"{self.domain.value}.{self.operation.value}"


@dataclass(frozen=True)
class RequestOutcome:
    """Result of a single HTTP call.

    ``status_code`` is None when the transport failed; ``error_type`` then
    holds the canonical classification (see ``loadgen.core.client``).
    """

    operation: Operation
    method: str
    url: str
    status_code: int | None
    body: bytes
    latency_ms: float
    error_type: str | None = None
    error: str | None = None

    @property
    def transport_failed(self) -> bool:
        return self.status_code is None

    def json(self) -> Any:
        """Parse the body as JSON; raises ValueError on malformed or empty bodies."""
        if not self.body:
            raise ValueError("empty response body")
        return json.loads(self.body)


@dataclass(frozen=True)
class CheckResult:
    name: str
    passed: bool


@dataclass(frozen=True)
class RunConfig:
    """Runtime knobs that are not part of the scenario mix."""

    base_url: str
    timeout_seconds: float = 30.0
    tick_seconds: float = 0.1
    seed: int | None = None

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url must be non-empty")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.tick_seconds <= 0:
            raise ValueError("tick_seconds must be > 0")


@dataclass
class RunResult:
    started_at_monotonic: float
    ended_at_monotonic: float
    iterations: int
    max_vus: int
    metrics: "MetricsSnapshot"
    thresholds: list["ThresholdResult"] = field(default_factory=list)
    interrupted: bool = False

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.ended_at_monotonic - self.started_at_monotonic)

    @property
    def passed(self) -> bool:
        return all(result.passed for result in self.thresholds)

