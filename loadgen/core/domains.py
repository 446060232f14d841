"""Resource domains of the service under test.

Each ``DomainSpec`` knows its endpoints, the fields a returned record must
carry, which submitted fields a create must echo back, its seed identifiers
and how to synthesize request payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from random import Random
from typing import Any, Callable

from loadgen.core.models import Domain
from loadgen.core.policy import IdSelectionPolicy, UniqueTokenGenerator

PayloadFactory = Callable[[Random, UniqueTokenGenerator], dict[str, Any]]


@dataclass(frozen=True)
class DomainSpec:
    domain: Domain
    entity: str
    required_fields: tuple[str, ...]
    identifying_fields: tuple[str, ...]
    id_policy: IdSelectionPolicy
    create_payload: PayloadFactory
    update_payload: PayloadFactory
    disposable_payload: PayloadFactory

    @property
    def collection_path(self) -> str:
        return f"/api/{self.domain.value}"

    @property
    def item_template(self) -> str:
        return f"{self.collection_path}/:id"

    def item_path(self, item_id: str) -> str:
        return f"{self.collection_path}/{item_id}"


# ---------------------------------------------------------------------------
# users
# ---------------------------------------------------------------------------

USER_TEMPLATES: tuple[tuple[str, str], ...] = (
    ("John Doe", "john@example.com"),
    ("Jane Smith", "jane@example.com"),
    ("Bob Johnson", "bob@example.com"),
    ("Alice Brown", "alice@example.com"),
    ("Charlie Wilson", "charlie@example.com"),
)

USER_SEED_IDS = ("1", "2")


def new_user_payload(rng: Random, tokens: UniqueTokenGenerator) -> dict[str, Any]:
    name, email = rng.choice(USER_TEMPLATES)
    token = tokens.next()
    return {"name": f"{name}_{token}", "email": f"{token}_{email}"}


def updated_user_payload(rng: Random, tokens: UniqueTokenGenerator) -> dict[str, Any]:
    token = tokens.next()
    return {"name": f"Updated User {token}", "email": f"updated_{token}@example.com"}


def temp_user_payload(rng: Random, tokens: UniqueTokenGenerator) -> dict[str, Any]:
    token = tokens.next()
    return {"name": f"Temp User {token}", "email": f"temp_{token}@example.com"}


# ---------------------------------------------------------------------------
# orders
# ---------------------------------------------------------------------------

ORDER_SEED_IDS = ("order-1", "order-2")

MAX_ITEM_QUANTITY = 5


def format_price(value: float) -> str:
    """Prices travel as decimal strings with two fractional digits."""
    return f"{value:.2f}"


def _order_item(product: str, name: str, quantity: int, unit_price: str) -> dict[str, Any]:
    return {
        "productId": product,
        "productName": name,
        "quantity": quantity,
        "unitPrice": unit_price,
    }


def new_order_payload(rng: Random, tokens: UniqueTokenGenerator) -> dict[str, Any]:
    product = rng.randrange(100)
    return {
        "customerId": f"customer-{rng.randrange(1000)}-{tokens.next()}",
        "items": [
            _order_item(
                f"prod-{product}",
                f"Product {product}",
                rng.randint(1, MAX_ITEM_QUANTITY),
                format_price(rng.random() * 100 + 10),
            )
        ],
    }


def updated_order_payload(rng: Random, tokens: UniqueTokenGenerator) -> dict[str, Any]:
    return {
        "customerId": f"updated-customer-{tokens.next()}",
        "items": [_order_item("updated-prod-1", "Updated Product", 2, "49.99")],
    }


def temp_order_payload(rng: Random, tokens: UniqueTokenGenerator) -> dict[str, Any]:
    return {
        "customerId": f"temp-customer-{tokens.next()}",
        "items": [_order_item("temp-prod", "Temp Product", 1, "9.99")],
    }


def build_domain_specs(*, known_id_ratio: float = 0.7) -> dict[Domain, DomainSpec]:
    return {
        Domain.USERS: DomainSpec(
            domain=Domain.USERS,
            entity="user",
            required_fields=("id", "name", "email"),
            identifying_fields=("name", "email"),
            id_policy=IdSelectionPolicy(seed_ids=USER_SEED_IDS, known_ratio=known_id_ratio),
            create_payload=new_user_payload,
            update_payload=updated_user_payload,
            disposable_payload=temp_user_payload,
        ),
        Domain.ORDERS: DomainSpec(
            domain=Domain.ORDERS,
            entity="order",
            required_fields=("id", "customerId", "items"),
            identifying_fields=("customerId",),
            id_policy=IdSelectionPolicy(
                seed_ids=ORDER_SEED_IDS,
                known_ratio=known_id_ratio,
                miss_prefix="order-",
            ),
            create_payload=new_order_payload,
            update_payload=updated_order_payload,
            disposable_payload=temp_order_payload,
        ),
    }
