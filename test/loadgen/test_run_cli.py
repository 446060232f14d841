"""Tests for the command line entry point and its exit codes."""

from __future__ import annotations

import json

import pytest
import structlog

import loadgen.run as run_module
from conftest import FakeCrudService
from loadgen.core.engine import LoadRunner
from loadgen.run import EXIT_HEALTH_GATE, EXIT_PASS, EXIT_THRESHOLD_BREACH, EXIT_USAGE, main

_SHORT_STAGES = ["--stage", "200ms:2", "--stage", "200ms:0"]


@pytest.fixture(autouse=True)
def _reset_structlog():
    # main() binds structlog to the current (captured) stderr.
    yield
    structlog.reset_defaults()


@pytest.fixture
def wire_service(monkeypatch):
    """Route the CLI's runner to an in-memory service; returns the captured configs."""

    captured = []

    def install(service: FakeCrudService):
        def factory(config, profile, **kwargs):
            captured.append((config, profile))
            return LoadRunner(
                config,
                profile,
                transport=service.transport(),
                handle_signals=False,
                **kwargs,
            )

        monkeypatch.setattr(run_module, "LoadRunner", factory)
        return captured

    return install


class TestExitCodes:
    def test_passing_run_exits_zero(self, wire_service, fake_service, capsys):
        wire_service(fake_service)

        code = main(_SHORT_STAGES + ["--threshold", "http_req_failed=rate<0.05"])

        assert code == EXIT_PASS
        out = capsys.readouterr().out
        assert "VERDICT: PASSED" in out

    def test_breached_threshold_exits_one(self, wire_service, fake_service, capsys):
        wire_service(fake_service)

        code = main(_SHORT_STAGES + ["--threshold", "iterations=count>100000"])

        assert code == EXIT_THRESHOLD_BREACH
        assert "VERDICT: FAILED" in capsys.readouterr().out

    def test_health_gate_exits_three_without_load(self, wire_service):
        service = FakeCrudService(healthy=False)
        wire_service(service)

        assert main(_SHORT_STAGES) == EXIT_HEALTH_GATE
        assert service.calls == [("GET", "/health")]

    @pytest.mark.parametrize(
        "argv",
        [
            ["--stage", "nonsense"],
            ["--stage", "10s:many"],
            ["--stage", "nan:5"],
            ["--stage", "inf:5"],
            ["--threshold", "http_req_duration=p95<500"],
            ["--threshold", "no-equals-sign"],
            ["--domain-split", "2"],
            ["--profile", "/nonexistent/profile.json"],
        ],
    )
    def test_bad_arguments_exit_two(self, argv, wire_service, fake_service):
        wire_service(fake_service)

        assert main(argv) == EXIT_USAGE
        assert fake_service.calls == []

    def test_unknown_log_level_is_a_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["--log-level", "LOUD"])
        assert exc_info.value.code == 2


class TestOptions:
    def test_env_defaults(self, monkeypatch, wire_service, fake_service):
        monkeypatch.setenv("LOADGEN_BASE_URL", "http://from-env.test")
        captured = wire_service(fake_service)

        main(_SHORT_STAGES + ["--seed", "5", "--domain-split", "0.5"])

        config, profile = captured[0]
        assert config.base_url == "http://from-env.test"
        assert config.seed == 5
        assert profile.domain_split == 0.5
        assert [s.target for s in profile.stages] == [2, 0]

    def test_profile_file_and_report_output(self, tmp_path, wire_service, fake_service):
        profile_path = tmp_path / "profile.json"
        profile_path.write_text(
            json.dumps(
                {
                    "stages": [{"duration": "300ms", "target": 2}],
                    "scenarios": {"users": {"read-all": 1}, "orders": {"read-all": 1}},
                    "thresholds": {"http_reqs": "count>0"},
                    "think_time": {"min": 0, "max": "10ms"},
                }
            ),
            encoding="utf-8",
        )
        output = tmp_path / "reports" / "run.json"
        wire_service(fake_service)

        code = main(["--profile", str(profile_path), "--output", str(output), "--log-json"])

        assert code == EXIT_PASS
        report = json.loads(output.read_text(encoding="utf-8"))
        assert report["result"]["passed"] is True
        assert report["thresholds"][0]["metric"] == "http_reqs"
        assert set(report["metrics"]["http_req_duration_by_operation"]) == {"read-all"}
