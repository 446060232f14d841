from __future__ import annotations

from typing import Any

from loadgen.core.models import RunConfig, RunResult
from loadgen.core.profile import RunProfile
from loadgen.core.timeparse import format_seconds


def build_run_report(config: RunConfig, profile: RunProfile, result: RunResult) -> dict[str, Any]:
    config_payload = {
        "base_url": config.base_url,
        "timeout_seconds": config.timeout_seconds,
        "seed": config.seed,
        "stages": [
            {"duration": format_seconds(stage.duration_seconds), "target": stage.target}
            for stage in profile.stages
        ],
        "domain_split": profile.domain_split,
        "scenarios": {
            "users": [_descriptor_payload(d) for d in profile.users],
            "orders": [_descriptor_payload(d) for d in profile.orders],
        },
        "latency_budgets_ms": {op.value: budget for op, budget in profile.latency_budgets_ms.items()},
        "known_id_ratio": profile.known_id_ratio,
        "think_time_seconds": [profile.think_time_min_seconds, profile.think_time_max_seconds],
    }
    return {
        "config": config_payload,
        "result": {
            "passed": result.passed,
            "interrupted": result.interrupted,
            "iterations": result.iterations,
            "max_vus": result.max_vus,
            "duration_seconds": result.duration_seconds,
        },
        "thresholds": [threshold.to_dict() for threshold in result.thresholds],
        "metrics": result.metrics.to_dict(),
    }


def format_summary(result: RunResult) -> str:
    """Plain-text table of thresholds and the overall verdict."""
    lines = ["THRESHOLDS"]
    width = max((len(t.spec.metric_label) for t in result.thresholds), default=0)
    for threshold in result.thresholds:
        actual = "n/a" if threshold.actual is None else f"{threshold.actual:.4g}"
        mark = "PASS" if threshold.passed else "FAIL"
        lines.append(
            f"  {mark}  {threshold.spec.metric_label:<{width}}  {threshold.spec.expression:<14} actual={actual}"
        )
    if not result.thresholds:
        lines.append("  (none configured)")

    metrics = result.metrics
    lines.append("")
    lines.append(
        f"iterations={result.iterations} http_reqs={metrics.http_reqs} "
        f"http_req_failed={metrics.http_req_failed.rate:.2%} checks_failed={metrics.checks_failed.rate:.2%}"
    )
    lines.append(f"VERDICT: {'PASSED' if result.passed else 'FAILED'}")
    return "\n".join(lines)


def _descriptor_payload(descriptor) -> dict[str, Any]:
    return {
        "name": descriptor.name,
        "operation": descriptor.operation.value,
        "weight": descriptor.weight,
    }
