"""Domain events for the StockUnit aggregate.

Raised on every ledger mutation so downstream consumers (stock dashboards,
low-stock alerts, audit) can follow holds without reading the aggregate.
"""

from protean.fields import DateTime, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="StockUnit")
class StockUnitRegistered:
    """A purchasable unit (product or variant) entered the ledger."""

    __version__ = 1

    unit_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(required=True)
    available_quantity = Integer(required=True)
    registered_at = DateTime(required=True)


@checkout.event(part_of="StockUnit")
class StockReceived:
    """Physical stock was added to a unit."""

    __version__ = 1

    unit_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    reference = String()
    received_at = DateTime(required=True)


@checkout.event(part_of="StockUnit")
class StockHeld:
    """A buyer's hold was placed or replaced on a unit."""

    __version__ = 1

    unit_id = Identifier(required=True)
    hold_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    checkout_id = Identifier()
    quantity = Integer(required=True)
    previous_quantity = Integer(default=0)
    effective_available = Integer(required=True)
    expires_at = DateTime(required=True)


@checkout.event(part_of="StockUnit")
class HoldReleased:
    """A hold was given back to availability before it was finalized."""

    __version__ = 1

    unit_id = Identifier(required=True)
    hold_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    order_id = Identifier()
    quantity = Integer(required=True)
    reason = String(required=True)
    released_at = DateTime(required=True)


@checkout.event(part_of="StockUnit")
class HoldsFinalized:
    """A buyer's holds on a unit were linked to a committed order."""

    __version__ = 1

    unit_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    finalized_at = DateTime(required=True)


@checkout.event(part_of="StockUnit")
class HoldLapsed:
    """A hold passed its expiry without being finalized."""

    __version__ = 1

    unit_id = Identifier(required=True)
    hold_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    quantity = Integer(required=True)
    expired_at = DateTime(required=True)


@checkout.event(part_of="StockUnit")
class OrderStockCommitted:
    """An order shipped: its finalized quantity left the building."""

    __version__ = 1

    unit_id = Identifier(required=True)
    order_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    committed_at = DateTime(required=True)
