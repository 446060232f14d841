"""Pre-built run profiles."""

from __future__ import annotations

__all__ = ["build_crud_profile", "build_smoke_profile", "run_crud_scenario"]

from loadgen.scenarios.crud import build_crud_profile, build_smoke_profile, run_crud_scenario
