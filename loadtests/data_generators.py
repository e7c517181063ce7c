"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the checkout API's validation
rules and match the exact field names of its Pydantic request schemas.
"""

import random
import uuid

from faker import Faker

fake = Faker("en_IN")


def buyer_id() -> str:
    return f"buyer-lt-{uuid.uuid4().hex[:10]}"


def stock_unit_data(available_quantity: int | None = None) -> dict:
    """RegisterStockUnitRequest payload."""
    return {
        "product_id": f"prod-lt-{uuid.uuid4().hex[:8]}",
        "sku": f"LT-{uuid.uuid4().hex[:10].upper()}",
        "name": fake.catch_phrase()[:255],
        "available_quantity": available_quantity if available_quantity is not None else random.randint(20, 200),
    }


def cart_item_data(unit_id: str, quantity: int = 1) -> dict:
    """AddCartItemRequest payload; prices straddle the free-shipping threshold."""
    return {
        "unit_id": unit_id,
        "product_id": f"prod-of-{unit_id}",
        "name": fake.catch_phrase()[:255],
        "unit_price": round(random.uniform(99, 1499), 2),
        "quantity": quantity,
    }


def shipping_address_data() -> dict:
    """ShippingAddressRequest payload."""
    return {
        "full_name": fake.name()[:255],
        "phone": f"+91-{random.randint(70000, 99999)}-{random.randint(10000, 99999)}",
        "line1": fake.street_address()[:255],
        "city": fake.city()[:100],
        "state": fake.state()[:100],
        "postal_code": fake.postcode()[:20],
    }


def commit_data(payment_method: str) -> dict:
    """CommitCheckoutRequest payload."""
    return {"payment_method": payment_method, "shipping_address": shipping_address_data()}


def payment_outcome_data(success_rate: float = 0.8) -> dict:
    """PaymentCallbackRequest payload; declines at roughly 1 - success_rate."""
    if random.random() < success_rate:
        return {"outcome": "success", "reference": f"pay_lt_{uuid.uuid4().hex[:12]}"}
    return {"outcome": "failure", "reason": random.choice(["card_declined", "insufficient_funds", "abandoned"])}
