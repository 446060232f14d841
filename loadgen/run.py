from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import os
import sys
from pathlib import Path

from loadgen.api.report import build_run_report, format_summary
from loadgen.core.engine import LoadRunner
from loadgen.core.models import RunConfig, Stage
from loadgen.core.profile import RunProfile, load_profile
from loadgen.core.thresholds import parse_threshold
from loadgen.core.timeparse import parse_duration_to_seconds
from loadgen.exceptions import ConfigurationError, HealthCheckError, LoadgenError
from loadgen.logger import configure_logging
from loadgen.logger import session_logger as logger

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_USAGE = 2
EXIT_HEALTH_GATE = 3


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CRUD service load generator")
    parser.add_argument(
        "--base-url",
        type=str,
        default=os.environ.get("LOADGEN_BASE_URL", "http://localhost:8080"),
        help="Base URL of the service under test (env: LOADGEN_BASE_URL)",
    )
    parser.add_argument(
        "--profile",
        type=str,
        default=os.environ.get("LOADGEN_PROFILE"),
        help="Path to a run profile JSON file (env: LOADGEN_PROFILE). Defaults to the built-in profile.",
    )
    parser.add_argument(
        "--stage",
        action="append",
        default=None,
        metavar="DURATION:TARGET",
        help="Override the stages, e.g. --stage 30s:10 --stage 1m:50 (repeatable)",
    )
    parser.add_argument(
        "--threshold",
        action="append",
        default=None,
        metavar="METRIC=EXPR",
        help="Override the thresholds, e.g. --threshold 'http_req_duration=p(95)<500' (repeatable)",
    )
    parser.add_argument(
        "--domain-split",
        type=float,
        default=None,
        help="Probability of picking an orders scenario (0..1)",
    )
    parser.add_argument(
        "--timeout-seconds",
        type=float,
        default=30.0,
        help="HTTP timeout per request",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for scenario/ID selection (reproducible mixes)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the run report JSON to this path",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("LOADGEN_LOG_LEVEL", "INFO"),
        help="Log level (env: LOADGEN_LOG_LEVEL)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit JSON log lines instead of console output",
    )
    return parser


def _parse_stage_arg(raw: str) -> Stage:
    duration, sep, target = raw.rpartition(":")
    if not sep:
        raise ValueError(f"stage must look like DURATION:TARGET, got {raw!r}")
    return Stage(duration_seconds=parse_duration_to_seconds(duration), target=int(target))


def _build_profile(args: argparse.Namespace) -> RunProfile:
    profile = load_profile(args.profile) if args.profile else RunProfile()

    overrides: dict[str, object] = {}
    if args.stage:
        overrides["stages"] = tuple(_parse_stage_arg(raw) for raw in args.stage)
    if args.threshold:
        specs = []
        for raw in args.threshold:
            metric, sep, expression = raw.partition("=")
            if not sep:
                raise ValueError(f"threshold must look like METRIC=EXPR, got {raw!r}")
            specs.append(parse_threshold(metric, expression))
        overrides["thresholds"] = tuple(specs)
    if args.domain_split is not None:
        overrides["domain_split"] = args.domain_split

    return dataclasses.replace(profile, **overrides) if overrides else profile


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(args.log_level, json_output=args.log_json)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        profile = _build_profile(args)
        config = RunConfig(
            base_url=args.base_url,
            timeout_seconds=args.timeout_seconds,
            seed=args.seed,
        )
    except ConfigurationError as exc:
        logger.error("loadgen.invalid_profile", code=exc.code, error=exc.message, details=exc.details)
        return EXIT_USAGE
    except (LoadgenError, ValueError) as exc:
        logger.error(
            "loadgen.invalid_arguments",
            error=str(exc),
            recovery="Check --stage/--threshold/--domain-split values",
        )
        return EXIT_USAGE

    runner = LoadRunner(config, profile, logger=logger)
    try:
        result = asyncio.run(runner.run())
    except HealthCheckError as exc:
        logger.error(
            "loadgen.health_gate_failed",
            code=exc.code,
            error=exc.message,
            recovery="Ensure the service is running and GET /health returns 200",
            details=exc.details,
        )
        return EXIT_HEALTH_GATE

    print(format_summary(result), file=sys.stdout)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = build_run_report(config, profile, result)
        output_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

        logger.info("loadgen.report_written", path=str(output_path))

    return EXIT_PASS if result.passed else EXIT_THRESHOLD_BREACH


if __name__ == "__main__":
    raise SystemExit(main())
