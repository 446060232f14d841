"""CRUD scenario: the users/orders mixed workload.

This module provides pre-built ``RunProfile`` objects and a convenience
runner. The default profile ramps to 100 virtual users over four and a half
minutes; the smoke profile is a short, low-concurrency variant for CI.

Usage from CLI::

    python -m loadgen.run --base-url http://localhost:8080

Usage as library::

    from loadgen.scenarios.crud import build_smoke_profile, run_crud_scenario

    result = await run_crud_scenario(base_url="http://localhost:8080", profile=build_smoke_profile())
"""

from __future__ import annotations

import httpx

from loadgen.core.engine import LoadRunner
from loadgen.core.models import RunConfig, RunResult, Stage
from loadgen.core.profile import DEFAULT_DOMAIN_SPLIT, DEFAULT_STAGES, RunProfile
from loadgen.logger import Logger


def build_crud_profile(
    *,
    stages: tuple[Stage, ...] = DEFAULT_STAGES,
    domain_split: float = DEFAULT_DOMAIN_SPLIT,
    think_time: tuple[float, float] = (0.1, 1.0),
) -> RunProfile:
    """Build the default mixed users/orders profile with its standard thresholds."""
    return RunProfile(
        stages=stages,
        domain_split=domain_split,
        think_time_min_seconds=think_time[0],
        think_time_max_seconds=think_time[1],
    )


def build_smoke_profile(*, vus: int = 2, duration_seconds: float = 10.0) -> RunProfile:
    """Short constant-load profile: ramp up quickly, hold, ramp down."""
    ramp = min(1.0, duration_seconds / 4)
    return build_crud_profile(
        stages=(
            Stage(duration_seconds=ramp, target=vus),
            Stage(duration_seconds=max(0.0, duration_seconds - 2 * ramp), target=vus),
            Stage(duration_seconds=ramp, target=0),
        ),
    )


async def run_crud_scenario(
    *,
    base_url: str,
    profile: RunProfile | None = None,
    timeout_seconds: float = 30.0,
    seed: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    logger: Logger | None = None,
) -> RunResult:
    """Run the CRUD workload and return the result.

    This is the programmatic entry point used by integration tests and CI.
    """
    config = RunConfig(base_url=base_url, timeout_seconds=timeout_seconds, seed=seed)
    runner = LoadRunner(
        config,
        profile or build_crud_profile(),
        logger=logger,
        transport=transport,
        handle_signals=False,
    )
    return await runner.run()
