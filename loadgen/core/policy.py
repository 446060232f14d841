from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass
from random import Random
from typing import Callable


class UniqueTokenGenerator:
    """Produces '<epoch-ms>-<sequence>' tokens.

    The sequence is shared by every caller of one generator, so two tokens
    minted in the same millisecond still differ.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time, start: int = 0) -> None:
        self._clock = clock
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            seq = next(self._counter)
        millis = int(self._clock() * 1000)
        return f"{millis}-{seq}"


# Shared by every run in the process, so tokens never repeat across runs.
PROCESS_TOKENS = UniqueTokenGenerator()


@dataclass(frozen=True)
class IdSelectionPolicy:
    """Chooses which identifier a read-one lookup targets.

    With probability ``known_ratio`` a seed identifier (expected to exist) is
    used; otherwise a fresh identifier that should not exist is synthesized,
    so the not-found path of the service keeps getting exercised.
    """

    seed_ids: tuple[str, ...]
    known_ratio: float = 0.7
    miss_prefix: str = ""

    def __post_init__(self) -> None:
        if not self.seed_ids:
            raise ValueError("seed_ids must be non-empty")
        if not 0.0 <= self.known_ratio <= 1.0:
            raise ValueError("known_ratio must be within [0, 1]")

    def choose(self, rng: Random, tokens: UniqueTokenGenerator) -> str:
        if rng.random() < self.known_ratio:
            return self.choose_seed(rng)
        return f"{self.miss_prefix}{tokens.next()}"

    def choose_seed(self, rng: Random) -> str:
        return rng.choice(self.seed_ids)
