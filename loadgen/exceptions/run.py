"""Run-level exceptions.

``HealthCheckError`` is the only fatal condition of a run: it is raised
before any virtual user starts and aborts the whole run.
"""

from __future__ import annotations

from loadgen.exceptions.base import LoadgenError


class HealthCheckError(LoadgenError):
    """Raised when the pre-run health probe does not succeed."""

    def __init__(self, message: str, *, status_code: int | None = None, error: str | None = None) -> None:
        details: dict[str, object] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if error is not None:
            details["error"] = error
        super().__init__("HEALTH_CHECK_FAILED", message, details)
        self.status_code = status_code


class ScenarioNotRegisteredError(LoadgenError):
    """Raised when no executor is registered for a (domain, operation) pair."""

    def __init__(self, domain: str, operation: str) -> None:
        super().__init__(
            "SCENARIO_NOT_REGISTERED",
            f"No executor registered for {domain}.{operation}",
            {"domain": domain, "operation": operation},
        )
