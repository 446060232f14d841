from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Sequence

from loadgen.core.models import CheckResult, RequestOutcome

Predicate = Callable[[RequestOutcome], bool]


@dataclass(frozen=True)
class Check:
    name: str
    predicate: Predicate


def evaluate_checks(outcome: RequestOutcome, checks: Iterable[Check]) -> list[CheckResult]:
    """Evaluate every predicate against one outcome.

    A predicate that raises counts as failed; it never aborts the remaining
    checks.
    """
    results: list[CheckResult] = []
    for check in checks:
        try:
            passed = bool(check.predicate(outcome))
        except Exception:
            passed = False
        results.append(CheckResult(name=check.name, passed=passed))
    return results


# ---------------------------------------------------------------------------
# Predicate builders
# ---------------------------------------------------------------------------

def status_in(*codes: int) -> Predicate:
    expected = frozenset(codes)

    def _predicate(outcome: RequestOutcome) -> bool:
        return outcome.status_code in expected

    return _predicate


def latency_below(budget_ms: float) -> Predicate:
    def _predicate(outcome: RequestOutcome) -> bool:
        return not outcome.transport_failed and outcome.latency_ms < budget_ms

    return _predicate


def valid_json(outcome: RequestOutcome) -> bool:
    try:
        outcome.json()
    except ValueError:
        return False
    return True


def has_fields(fields: Sequence[str]) -> Predicate:
    """Body is a JSON object carrying a truthy value for every field."""

    def _predicate(outcome: RequestOutcome) -> bool:
        body = _json_object(outcome)
        return body is not None and all(body.get(f) for f in fields)

    return _predicate


def echoes(submitted: dict[str, Any], fields: Sequence[str], *, id_field: str = "id") -> Predicate:
    """Body carries a new id and repeats the submitted identifying fields."""

    def _predicate(outcome: RequestOutcome) -> bool:
        body = _json_object(outcome)
        if body is None or not body.get(id_field):
            return False
        return all(body.get(f) == submitted.get(f) for f in fields)

    return _predicate


def _json_object(outcome: RequestOutcome) -> dict[str, Any] | None:
    try:
        body = outcome.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None
