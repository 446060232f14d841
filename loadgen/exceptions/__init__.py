"""Exception classes for crud-loadgen.

Usage:
    from loadgen.exceptions import HealthCheckError

    try:
        await runner.run()
    except HealthCheckError as exc:
        logger.error("loadgen.health_gate_failed", code=exc.code, **exc.details)
"""

from loadgen.exceptions.base import ConfigurationError, LoadgenError, ValidationError
from loadgen.exceptions.run import HealthCheckError, ScenarioNotRegisteredError

__all__ = [
    "LoadgenError",
    "ValidationError",
    "ConfigurationError",
    "HealthCheckError",
    "ScenarioNotRegisteredError",
]
