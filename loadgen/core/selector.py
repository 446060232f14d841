from __future__ import annotations

import bisect
import itertools
from random import Random
from typing import Sequence

from loadgen.core.models import ScenarioDescriptor


class CumulativeWeightTable:
    """Weighted pick over descriptors kept in declaration order.

    ``pick(draw)`` returns the first descriptor whose cumulative weight is
    >= ``draw``; draws past the end (float rounding) fall back to the last one.
    """

    def __init__(self, descriptors: Sequence[ScenarioDescriptor]) -> None:
        if not descriptors:
            raise ValueError("scenario catalog must be non-empty")
        self._descriptors = tuple(descriptors)
        self._cumulative = tuple(itertools.accumulate(d.weight for d in self._descriptors))

    @property
    def descriptors(self) -> tuple[ScenarioDescriptor, ...]:
        return self._descriptors

    @property
    def total_weight(self) -> float:
        return self._cumulative[-1]

    def pick(self, draw: float) -> ScenarioDescriptor:
        index = bisect.bisect_left(self._cumulative, draw)
        if index >= len(self._descriptors):
            return self._descriptors[-1]
        return self._descriptors[index]

    def sample(self, rng: Random) -> ScenarioDescriptor:
        return self.pick(rng.random() * self.total_weight)


class ScenarioSelector:
    """Chooses the domain, then the scenario within that domain's catalog."""

    def __init__(
        self,
        users: Sequence[ScenarioDescriptor],
        orders: Sequence[ScenarioDescriptor],
        *,
        domain_split: float,
        rng: Random | None = None,
    ) -> None:
        if not 0.0 <= domain_split <= 1.0:
            raise ValueError("domain_split must be within [0, 1]")
        self._users = CumulativeWeightTable(users)
        self._orders = CumulativeWeightTable(orders)
        self._domain_split = domain_split
        self._rng = rng or Random()

    @property
    def domain_split(self) -> float:
        return self._domain_split

    def select(self) -> ScenarioDescriptor:
        table = self._orders if self._rng.random() < self._domain_split else self._users
        return table.sample(self._rng)


def select(
    domain_split: float,
    users: Sequence[ScenarioDescriptor],
    orders: Sequence[ScenarioDescriptor],
    rng: Random,
) -> ScenarioDescriptor:
    """One-shot selection; builds the tables on every call."""
    return ScenarioSelector(users, orders, domain_split=domain_split, rng=rng).select()
