from __future__ import annotations

import time
from typing import Any

import httpx

from loadgen import __version__
from loadgen.core.models import Operation, RequestOutcome
from loadgen.exceptions import HealthCheckError
from loadgen.logger import Logger, session_logger

HEALTH_PATH = "/health"


class RequestExecutor:
    """Issues HTTP calls against the service under test and times them.

    One instance is shared by all virtual users of a run; httpx pools the
    connections. Transport failures never raise: they come back as a
    ``RequestOutcome`` with ``status_code=None`` and a classified
    ``error_type``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._logger = logger or session_logger
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            headers={
                "User-Agent": f"crud-loadgen/{__version__}",
                "Accept": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def request(
        self,
        operation: Operation,
        method: str,
        path: str,
        *,
        json_body: Any = None,
    ) -> RequestOutcome:
        start = time.perf_counter()
        try:
            response = await self._http.request(method, path, json=json_body)
            body = response.content
        except httpx.HTTPError as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            error_type = _classify_exception(exc)
            self._logger.debug(
                "loadgen.request_transport_error",
                operation=operation.value,
                method=method,
                path=path,
                error_type=error_type,
                error=str(exc),
            )
            return RequestOutcome(
                operation=operation,
                method=method,
                url=path,
                status_code=None,
                body=b"",
                latency_ms=latency_ms,
                error_type=error_type,
                error=str(exc),
            )

        latency_ms = (time.perf_counter() - start) * 1000
        return RequestOutcome(
            operation=operation,
            method=method,
            url=path,
            status_code=response.status_code,
            body=body,
            latency_ms=latency_ms,
            error_type=_classify_http_error(response.status_code),
        )

    async def check_health(self, path: str = HEALTH_PATH) -> None:
        """Probe the service once; raise HealthCheckError unless it answers 200."""
        try:
            response = await self._http.get(path)
        except httpx.HTTPError as exc:
            raise HealthCheckError(
                "Health probe could not reach the service",
                error=f"{_classify_exception(exc)}: {exc}",
            ) from exc

        self._logger.info("loadgen.health_probe", path=path, status_code=response.status_code)
        if response.status_code != 200:
            raise HealthCheckError(
                "Service is not healthy, aborting run",
                status_code=response.status_code,
            )


# ---------------------------------------------------------------------------
# Helpers: error classification
# ---------------------------------------------------------------------------

def _classify_http_error(status_code: int) -> str | None:
    """Map an HTTP status code to a canonical error_type, or None if success."""
    if 200 <= status_code < 400:
        return None
    if status_code == 404:
        return "not_found"
    if status_code == 429:
        return "rate_limited"
    if 400 <= status_code < 500:
        return "client_error"
    if 500 <= status_code < 600:
        return "server_error"
    return f"http_{status_code}"


def _classify_exception(exc: Exception) -> str:
    """Map a network-level exception to a canonical error_type."""
    if isinstance(exc, httpx.TimeoutException):
        return "network_timeout"
    if isinstance(exc, httpx.ConnectError):
        return "network_connect"
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.LocalProtocolError)):
        return "network_protocol"
    if isinstance(exc, httpx.HTTPError):
        return "network_error"
    return type(exc).__name__
