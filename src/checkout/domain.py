"""Checkout bounded context — Stock Ledger, Holds, Discounts and Order Commit.

Owns the per-unit stock counters and the time-boxed holds placed against them,
prices carts through the discount engine, and commits orders exactly once
across cash-on-delivery and asynchronous online payment.
"""

from protean.domain import Domain

from checkout.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
checkout = Domain(name="checkout")
