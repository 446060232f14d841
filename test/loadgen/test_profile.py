"""Tests for run profile defaults and JSON loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from loadgen.core.executor import DEFAULT_LATENCY_BUDGETS_MS
from loadgen.core.models import Domain, Operation, Stage
from loadgen.core.profile import (
    DEFAULT_STAGES,
    RunProfile,
    default_catalog,
    load_profile,
    profile_from_dict,
)
from loadgen.exceptions import ConfigurationError


def _write(tmp_path, payload) -> str:
    path = tmp_path / "profile.json"
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload, encoding="utf-8")
    return str(path)


class TestDefaults:
    def test_default_profile_matches_standard_workload(self) -> None:
        profile = RunProfile()

        assert profile.stages == DEFAULT_STAGES
        assert [s.target for s in profile.stages] == [10, 50, 100, 100, 0]
        assert profile.total_duration_seconds == 270
        assert profile.domain_split == 0.3
        assert [str(t) for t in profile.thresholds] == [
            "http_req_duration p(95)<500",
            "http_req_failed rate<0.05",
            "errors rate<0.1",
        ]
        assert profile.latency_budgets_ms == DEFAULT_LATENCY_BUDGETS_MS

    def test_default_catalog_weights(self) -> None:
        catalog = default_catalog(Domain.ORDERS)

        assert [(d.operation, d.weight) for d in catalog] == [
            (Operation.READ_ALL, 40),
            (Operation.READ_ONE, 30),
            (Operation.CREATE, 15),
            (Operation.UPDATE, 10),
            (Operation.DELETE, 5),
        ]
        assert catalog[0].name == "orders.read-all"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"stages": ()},
            {"domain_split": 1.2},
            {"known_id_ratio": -0.1},
            {"think_time_min_seconds": 2.0, "think_time_max_seconds": 1.0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs) -> None:
        with pytest.raises(ValueError):
            RunProfile(**kwargs)


class TestProfileFromDict:
    def test_empty_dict_gives_defaults(self) -> None:
        assert profile_from_dict({}) == RunProfile()

    def test_full_profile(self) -> None:
        profile = profile_from_dict(
            {
                "stages": [{"duration": "30s", "target": 10}, {"duration": "1m30s", "target": 0}],
                "scenarios": {
                    "users": [{"operation": "read-all", "weight": 3}, {"operation": "create", "weight": 1}],
                    "orders": {"read-one": 2, "delete": 1},
                },
                "domain_split": 0.5,
                "thresholds": {"errors": "rate<0.2"},
                "latency_budgets_ms": {"read-one": 150},
                "known_id_ratio": 0.9,
                "think_time": {"min": "0ms", "max": "250ms"},
            }
        )

        assert profile.stages == (Stage(30, 10), Stage(90, 0))
        assert [d.name for d in profile.users] == ["users.read-all", "users.create"]
        assert [(d.operation, d.weight) for d in profile.orders] == [
            (Operation.READ_ONE, 2.0),
            (Operation.DELETE, 1.0),
        ]
        assert profile.domain_split == 0.5
        assert [str(t) for t in profile.thresholds] == ["errors rate<0.2"]
        assert profile.latency_budgets_ms[Operation.READ_ONE] == 150
        assert profile.latency_budgets_ms[Operation.CREATE] == 800
        assert profile.known_id_ratio == 0.9
        assert profile.think_time_min_seconds == 0.0
        assert profile.think_time_max_seconds == 0.25

    def test_custom_scenario_name(self) -> None:
        profile = profile_from_dict(
            {"scenarios": {"users": [{"name": "list users", "operation": "read-all", "weight": 1}]}}
        )
        assert profile.users[0].name == "list users"

    @pytest.mark.parametrize(
        "data",
        [
            {"stages": []},
            {"stages": [{"duration": "10s", "target": -1}]},
            {"stages": [{"target": 5}]},
            {"scenarios": {"products": {"read-all": 1}}},
            {"scenarios": {"users": {"patch": 1}}},
            {"scenarios": {"users": {"read-all": "heavy"}}},
            {"scenarios": {"users": {"read-all": 0}}},
            {"latency_budgets_ms": {"create": 0}},
            {"think_time": "1s"},
            {"stages": [{"duration": "nan", "target": 5}]},
            {"stages": [{"duration": float("inf"), "target": 5}]},
            {"scenarios": {"users": {"read-all": float("inf")}}},
            {"domain_split": float("nan")},
            {"latency_budgets_ms": {"create": float("inf")}},
            {"think_time": {"max": "inf"}},
        ],
    )
    def test_invalid_shapes_rejected(self, data) -> None:
        with pytest.raises(ValueError):
            profile_from_dict(data)


class TestLoadProfile:
    def test_loads_json_file(self, tmp_path) -> None:
        path = _write(tmp_path, {"stages": [{"duration": 5, "target": 2}], "domain_split": 0.0})

        profile = load_profile(path)
        assert profile.stages == (Stage(5, 2),)
        assert profile.domain_split == 0.0

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_profile(str(tmp_path / "missing.json"))
        assert exc_info.value.code == "PROFILE_UNREADABLE"

    def test_malformed_json(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_profile(_write(tmp_path, "{not json"))
        assert exc_info.value.code == "PROFILE_UNREADABLE"

    def test_non_object_root(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_profile(_write(tmp_path, [1, 2]))
        assert exc_info.value.code == "INVALID_PROFILE"

    def test_invalid_content(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_profile(_write(tmp_path, {"domain_split": 3}))
        assert exc_info.value.code == "INVALID_PROFILE"
        assert exc_info.value.details["path"].endswith("profile.json")

    def test_non_finite_json_literals_rejected(self, tmp_path) -> None:
        path = _write(tmp_path, '{"stages": [{"duration": NaN, "target": 5}]}')

        with pytest.raises(ConfigurationError) as exc_info:
            load_profile(path)
        assert exc_info.value.code == "INVALID_PROFILE"

    def test_invalid_threshold_keeps_its_code(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_profile(_write(tmp_path, {"thresholds": {"http_req_duration": "p95<5"}}))
        assert exc_info.value.code == "INVALID_THRESHOLD"


def test_bundled_smoke_profile_loads() -> None:
    path = Path(__file__).resolve().parents[2] / "profiles" / "smoke.json"

    profile = load_profile(str(path))

    assert profile.total_duration_seconds == 30
    assert max(s.target for s in profile.stages) == 2
    assert "http_req_duration{operation:create} p(95)<800" in [str(t) for t in profile.thresholds]
