"""Human-facing order numbers: ``ORD-20260214-9F3A01BC``."""

from datetime import UTC, datetime
from uuid import uuid4

from protean.utils.globals import current_domain

from checkout.order.order import Order

_MAX_ATTEMPTS = 5


def order_number_taken(order_number: str) -> bool:
    return bool(current_domain.repository_for(Order)._dao.query.filter(order_number=order_number).all().items)


def generate_order_number(now: datetime | None = None, exists=order_number_taken) -> str:
    """Return an order number not used by any stored order."""
    now = now or datetime.now(UTC)
    for _ in range(_MAX_ATTEMPTS):
        candidate = f"ORD-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"
        if not exists(candidate):
            return candidate
    raise RuntimeError("Could not allocate a unique order number")
