"""Base exception for crud-loadgen.

Every error carries a machine-readable ``code``, a human ``message`` and an
optional ``details`` mapping used in structured log fields.
"""

from __future__ import annotations

from typing import Any


class LoadgenError(Exception):
    """Base class for all loadgen errors."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        self.code = code
        self.message = message
        self.details = dict(details) if details else {}
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.details:
            return f"{self.code}: {self.message}"
        return f"{self.code}: {self.message} (details: {self.details})"


class ValidationError(LoadgenError):
    """Raised when a value supplied by the caller is invalid."""

    pass


class ConfigurationError(LoadgenError):
    """Raised when a run profile cannot be loaded or is inconsistent."""

    pass
