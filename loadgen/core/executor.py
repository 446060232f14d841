from __future__ import annotations

from abc import ABC, abstractmethod
from random import Random
from typing import Any, ClassVar, Iterator, Mapping

from loadgen.core.checks import (
    Check,
    echoes,
    evaluate_checks,
    has_fields,
    latency_below,
    status_in,
    valid_json,
)
from loadgen.core.client import RequestExecutor
from loadgen.core.domains import DomainSpec
from loadgen.core.metrics import MetricsCollector
from loadgen.core.models import CheckResult, Domain, Operation, RequestOutcome, ScenarioDescriptor
from loadgen.core.policy import PROCESS_TOKENS, UniqueTokenGenerator
from loadgen.exceptions import ScenarioNotRegisteredError

DEFAULT_LATENCY_BUDGETS_MS: dict[Operation, float] = {
    Operation.READ_ALL: 500.0,
    Operation.READ_ONE: 300.0,
    Operation.CREATE: 800.0,
    Operation.UPDATE: 600.0,
    Operation.DELETE: 400.0,
}


class ScenarioExecutor(ABC):
    """Runs one (domain, operation) scenario and returns its check results.

    Recoverable failures (bad status, malformed body, transport errors) only
    ever show up as failed checks; ``execute`` does not raise for them.
    """

    operation: ClassVar[Operation]

    def __init__(
        self,
        domain: DomainSpec,
        *,
        budget_ms: float,
        rng: Random,
        tokens: UniqueTokenGenerator,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._domain = domain
        self._budget_ms = budget_ms
        self._rng = rng
        self._tokens = tokens
        self._metrics = metrics

    @property
    def domain(self) -> Domain:
        return self._domain.domain

    @abstractmethod
    async def execute(self, client: RequestExecutor) -> list[CheckResult]: ...

    async def _send(
        self,
        client: RequestExecutor,
        operation: Operation,
        method: str,
        path: str,
        *,
        expected: tuple[int, ...],
        json_body: Any = None,
    ) -> RequestOutcome:
        outcome = await client.request(operation, method, path, json_body=json_body)
        if self._metrics is not None:
            self._metrics.record_request(outcome, expected_statuses=expected, domain=self._domain.domain)
        return outcome

    def _latency_check(self, label: str) -> Check:
        return Check(f"{label} response time < {self._budget_ms:g}ms", latency_below(self._budget_ms))


class ReadAllExecutor(ScenarioExecutor):
    operation = Operation.READ_ALL

    async def execute(self, client: RequestExecutor) -> list[CheckResult]:
        path = self._domain.collection_path
        label = f"GET {path}"
        outcome = await self._send(client, self.operation, "GET", path, expected=(200,))
        return evaluate_checks(
            outcome,
            [
                Check(f"{label} status is 200", status_in(200)),
                self._latency_check(label),
                Check(f"{label} has valid JSON", valid_json),
            ],
        )


class ReadOneExecutor(ScenarioExecutor):
    operation = Operation.READ_ONE

    async def execute(self, client: RequestExecutor) -> list[CheckResult]:
        item_id = self._domain.id_policy.choose(self._rng, self._tokens)
        label = f"GET {self._domain.item_template}"
        outcome = await self._send(
            client,
            self.operation,
            "GET",
            self._domain.item_path(item_id),
            expected=(200, 404),
        )

        results = evaluate_checks(
            outcome,
            [
                Check(f"{label} status is 200 or 404", status_in(200, 404)),
                self._latency_check(label),
            ],
        )
        if outcome.status_code == 200:
            results += evaluate_checks(
                outcome,
                [
                    Check(
                        f"{label} has valid {self._domain.entity} JSON",
                        has_fields(self._domain.required_fields),
                    )
                ],
            )
        return results


class CreateExecutor(ScenarioExecutor):
    operation = Operation.CREATE

    async def execute(self, client: RequestExecutor) -> list[CheckResult]:
        path = self._domain.collection_path
        label = f"POST {path}"
        payload = self._domain.create_payload(self._rng, self._tokens)
        outcome = await self._send(client, self.operation, "POST", path, expected=(201,), json_body=payload)
        return evaluate_checks(
            outcome,
            [
                Check(f"{label} status is 201", status_in(201)),
                self._latency_check(label),
                Check(
                    f"{label} returns created {self._domain.entity}",
                    echoes(payload, self._domain.identifying_fields),
                ),
            ],
        )


class UpdateExecutor(ScenarioExecutor):
    operation = Operation.UPDATE

    async def execute(self, client: RequestExecutor) -> list[CheckResult]:
        # Seed records only; earlier deletes may have removed them, so 404 is accepted.
        item_id = self._domain.id_policy.choose_seed(self._rng)
        label = f"PUT {self._domain.item_template}"
        payload = self._domain.update_payload(self._rng, self._tokens)
        outcome = await self._send(
            client,
            self.operation,
            "PUT",
            self._domain.item_path(item_id),
            expected=(200, 404),
            json_body=payload,
        )
        return evaluate_checks(
            outcome,
            [
                Check(f"{label} status is 200 or 404", status_in(200, 404)),
                self._latency_check(label),
            ],
        )


class DeleteExecutor(ScenarioExecutor):
    """Creates a disposable record, then deletes it.

    Only the delete step is checked. When the create does not return 201
    with an id the delete is skipped and no results are produced.
    """

    operation = Operation.DELETE

    async def execute(self, client: RequestExecutor) -> list[CheckResult]:
        payload = self._domain.disposable_payload(self._rng, self._tokens)
        created = await self._send(
            client,
            Operation.CREATE,
            "POST",
            self._domain.collection_path,
            expected=(201,),
            json_body=payload,
        )
        if created.status_code != 201:
            return []

        try:
            body = created.json()
        except ValueError:
            return []
        item_id = body.get("id") if isinstance(body, dict) else None
        if not item_id:
            return []

        label = f"DELETE {self._domain.item_template}"
        outcome = await self._send(
            client,
            self.operation,
            "DELETE",
            self._domain.item_path(str(item_id)),
            expected=(200,),
        )
        return evaluate_checks(
            outcome,
            [
                Check(f"{label} status is 200", status_in(200)),
                self._latency_check(label),
            ],
        )


EXECUTOR_TYPES: dict[Operation, type[ScenarioExecutor]] = {
    cls.operation: cls
    for cls in (ReadAllExecutor, ReadOneExecutor, CreateExecutor, UpdateExecutor, DeleteExecutor)
}


class ScenarioRegistry:
    """Maps (domain, operation) to the executor that runs it."""

    def __init__(self) -> None:
        self._executors: dict[tuple[Domain, Operation], ScenarioExecutor] = {}

    def register(self, domain: Domain, operation: Operation, executor: ScenarioExecutor) -> None:
        self._executors[(domain, operation)] = executor

    def get(self, domain: Domain, operation: Operation) -> ScenarioExecutor:
        try:
            return self._executors[(domain, operation)]
        except KeyError:
            raise ScenarioNotRegisteredError(domain.value, operation.value) from None

    def __contains__(self, key: tuple[Domain, Operation]) -> bool:
        return key in self._executors

    def __iter__(self) -> Iterator[tuple[Domain, Operation]]:
        return iter(self._executors)

    def __len__(self) -> int:
        return len(self._executors)

    async def execute(self, descriptor: ScenarioDescriptor, client: RequestExecutor) -> list[CheckResult]:
        return await self.get(descriptor.domain, descriptor.operation).execute(client)


def build_default_registry(
    domains: Mapping[Domain, DomainSpec],
    *,
    rng: Random,
    tokens: UniqueTokenGenerator | None = None,
    metrics: MetricsCollector | None = None,
    budgets_ms: Mapping[Operation, float] | None = None,
) -> ScenarioRegistry:
    """Register all five operations for every domain."""
    tokens = tokens or PROCESS_TOKENS
    budgets = dict(DEFAULT_LATENCY_BUDGETS_MS)
    if budgets_ms:
        budgets.update(budgets_ms)

    registry = ScenarioRegistry()
    for domain, spec in domains.items():
        for operation, executor_cls in EXECUTOR_TYPES.items():
            registry.register(
                domain,
                operation,
                executor_cls(spec, budget_ms=budgets[operation], rng=rng, tokens=tokens, metrics=metrics),
            )
    return registry
