"""Pytest configuration and fixtures

Provides the in-memory CRUD service used by the engine tests. The service is
served through ``httpx.MockTransport`` so no sockets are opened.
"""

import asyncio
import json
import random
import sys
import threading
from pathlib import Path

import httpx
import pytest

# Add project root to sys.path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# ============================================================================
# FAKE CRUD SERVICE
# ============================================================================


class FakeCrudService:
    """Minimal users/orders service with the same contract as the real one.

    Seeds: users 1 and 2, orders order-1 and order-2.

    Failure injection:
    - ``transport_failure_ratio``: fraction of API calls raising httpx.ConnectError
      (the health check is never failed)
    - ``create_status``: force a status code for every POST
    - ``healthy``: when False, /health answers 503
    - ``latency_seconds``: async delay before every response
    """

    def __init__(
        self,
        *,
        transport_failure_ratio: float = 0.0,
        create_status: int | None = None,
        healthy: bool = True,
        seed: int = 1234,
        latency_seconds: float = 0.0,
    ) -> None:
        self.latency_seconds = latency_seconds
        self.transport_failure_ratio = transport_failure_ratio
        self.create_status = create_status
        self.healthy = healthy
        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._next_id = 100
        self.calls: list[tuple[str, str]] = []
        self.stores: dict[str, dict[str, dict]] = {
            "users": {
                "1": {"id": "1", "name": "John Doe", "email": "john@example.com"},
                "2": {"id": "2", "name": "Jane Smith", "email": "jane@example.com"},
            },
            "orders": {
                "order-1": {"id": "order-1", "customerId": "customer-1", "items": [{"productId": "p1"}]},
                "order-2": {"id": "order-2", "customerId": "customer-2", "items": [{"productId": "p2"}]},
            },
        }

    def transport(self) -> httpx.MockTransport:
        if self.latency_seconds:
            return httpx.MockTransport(self._handle_slow)
        return httpx.MockTransport(self.handle)

    async def _handle_slow(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(self.latency_seconds)
        return self.handle(request)

    def handle(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.calls.append((request.method, request.url.path))
            if (
                self.transport_failure_ratio
                and request.url.path != "/health"
                and self._rng.random() < self.transport_failure_ratio
            ):
                raise httpx.ConnectError("injected failure", request=request)
            return self._route(request)

    def _route(self, request: httpx.Request) -> httpx.Response:
        parts = [p for p in request.url.path.split("/") if p]

        if parts == ["health"]:
            return httpx.Response(200 if self.healthy else 503, json={"status": "UP" if self.healthy else "DOWN"})

        if len(parts) < 2 or parts[0] != "api" or parts[1] not in self.stores:
            return httpx.Response(404, json={"error": "Not found"})

        store = self.stores[parts[1]]
        item_id = parts[2] if len(parts) > 2 else None

        if item_id is None and request.method == "GET":
            return httpx.Response(200, json=list(store.values()))

        if item_id is None and request.method == "POST":
            if self.create_status is not None:
                return httpx.Response(self.create_status, json={"error": "forced"})
            body = json.loads(request.content)
            self._next_id += 1
            new_id = str(self._next_id) if parts[1] == "users" else f"order-{self._next_id}"
            record = {**body, "id": new_id}
            store[new_id] = record
            return httpx.Response(201, json=record)

        if item_id is not None and item_id not in store:
            return httpx.Response(404, json={"error": "Not found"})

        if request.method == "GET":
            return httpx.Response(200, json=store[item_id])

        if request.method == "PUT":
            body = json.loads(request.content)
            store[item_id] = {**body, "id": item_id}
            return httpx.Response(200, json=store[item_id])

        if request.method == "DELETE":
            del store[item_id]
            return httpx.Response(200, json={"message": "deleted"})

        return httpx.Response(405, json={"error": "Method not allowed"})


@pytest.fixture(scope="function")
def fake_service():
    """Fresh in-memory CRUD service for each test."""
    return FakeCrudService()
