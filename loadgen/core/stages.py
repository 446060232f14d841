from __future__ import annotations

from typing import Iterable

from loadgen.core.models import Stage


class StageScheduler:
    """Maps elapsed run time to a target number of virtual users.

    Between stage boundaries the target moves linearly from the previous
    stage's target (0 before the first stage) to the current stage's target.
    Once the last stage has ended the target is 0 and the run is complete.
    """

    def __init__(self, stages: Iterable[Stage]) -> None:
        self._stages: tuple[Stage, ...] = tuple(stages)
        if not self._stages:
            raise ValueError("at least one stage is required")

        bounds: list[tuple[float, float, int, int]] = []
        start = 0.0
        previous = 0
        for stage in self._stages:
            end = start + stage.duration_seconds
            bounds.append((start, end, previous, stage.target))
            start = end
            previous = stage.target
        self._bounds = tuple(bounds)
        self._total = start

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def total_duration(self) -> float:
        return self._total

    @property
    def max_target(self) -> int:
        return max(stage.target for stage in self._stages)

    def is_complete(self, elapsed: float) -> bool:
        return elapsed >= self._total

    def stage_index_at(self, elapsed: float) -> int | None:
        """Index of the stage active at ``elapsed``, or None once complete."""
        if self.is_complete(elapsed):
            return None
        for index, (_start, end, _from, _to) in enumerate(self._bounds):
            if elapsed < end:
                return index
        return None  # pragma: no cover

    def exact_target_at(self, elapsed: float) -> float:
        if elapsed < 0:
            elapsed = 0.0
        if self.is_complete(elapsed):
            return 0.0

        for start, end, ramp_from, ramp_to in self._bounds:
            # Zero-length stages are skipped; the next stage ramps from their target.
            if elapsed >= end:
                continue
            progress = (elapsed - start) / (end - start)
            return ramp_from + (ramp_to - ramp_from) * progress

        return 0.0  # pragma: no cover

    def target_at(self, elapsed: float) -> int:
        """Interpolated target concurrency, rounded to a whole VU count."""
        return int(round(self.exact_target_at(elapsed)))
