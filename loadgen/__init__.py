"""Load generator for CRUD HTTP services.

Drives a staged population of virtual users against the ``users`` and
``orders`` resources of a target service, validates every response inline
and judges the run against latency/error-rate thresholds.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
