"""Tests for the loadgen exception hierarchy.

These tests verify:
1. Exception structure (code, message, details)
2. Inheritance hierarchy
3. String representation
4. Run-level errors carry their own codes
"""

import pytest

from loadgen.exceptions import (
    ConfigurationError,
    HealthCheckError,
    LoadgenError,
    ScenarioNotRegisteredError,
    ValidationError,
)


class TestLoadgenError:
    """Tests for base LoadgenError class."""

    def test_basic_construction(self):
        error = LoadgenError("TEST_CODE", "Test message")

        assert error.code == "TEST_CODE"
        assert error.message == "Test message"
        assert error.details == {}

    def test_details_are_copied(self):
        details = {"path": "profile.json"}
        error = LoadgenError("TEST_CODE", "Test message", details=details)
        details["path"] = "changed"

        assert error.details == {"path": "profile.json"}

    def test_str_without_details(self):
        assert str(LoadgenError("TEST_CODE", "Test message")) == "TEST_CODE: Test message"

    def test_str_with_details(self):
        result = str(LoadgenError("TEST_CODE", "Test message", details={"foo": "bar"}))

        assert result.startswith("TEST_CODE: Test message")
        assert "foo" in result
        assert "bar" in result

    def test_can_be_raised(self):
        with pytest.raises(LoadgenError) as exc_info:
            raise LoadgenError("RAISED", "This was raised")

        assert exc_info.value.code == "RAISED"


class TestSubclasses:
    """Tests for the concrete error classes."""

    @pytest.mark.parametrize("cls", [ValidationError, ConfigurationError])
    def test_generic_subclasses(self, cls):
        error = cls("CODE", "message", {"field": "stages"})

        assert isinstance(error, LoadgenError)
        assert error.details["field"] == "stages"

    def test_configuration_error_not_caught_as_validation_error(self):
        with pytest.raises(ConfigurationError):
            try:
                raise ConfigurationError("INVALID_PROFILE", "bad profile")
            except ValidationError:
                pytest.fail("Should not catch as ValidationError")
                raise

    def test_health_check_error_with_status(self):
        error = HealthCheckError("Service is not healthy", status_code=503)

        assert isinstance(error, LoadgenError)
        assert error.code == "HEALTH_CHECK_FAILED"
        assert error.status_code == 503
        assert error.details == {"status_code": 503}

    def test_health_check_error_with_transport_error(self):
        error = HealthCheckError("unreachable", error="network_connect: refused")

        assert error.status_code is None
        assert error.details == {"error": "network_connect: refused"}

    def test_scenario_not_registered(self):
        error = ScenarioNotRegisteredError("orders", "delete")

        assert error.code == "SCENARIO_NOT_REGISTERED"
        assert "orders.delete" in error.message
        assert error.details == {"domain": "orders", "operation": "delete"}
