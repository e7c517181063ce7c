"""Domain events for the Order aggregate."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """An order and its dependent records were committed."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    buyer_id = Identifier(required=True)
    checkout_id = Identifier()
    payment_method = String(required=True)
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    discount_total = Float(required=True)
    shipping_charge = Float(required=True)
    total = Float(required=True)
    coupon_code = String()
    placed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class CashOnDeliveryAccepted:
    """A cash-on-delivery order was confirmed; payment is collected at the door."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    cod_amount = Float(required=True)
    confirmed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderPaid:
    """The payment collaborator reported success for an online order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    amount = Float(required=True)
    reference = String()
    paid_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderPaymentFailed:
    """The payment collaborator reported failure or the buyer abandoned payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderRejected:
    """The order's stock could not be secured. A paid order is left due for refund."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    reason = String(required=True)
    refund_due = Boolean(default=False)
    payment_reference = String()
    rejected_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderShipped:
    """The order left the warehouse."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    shipped_at = DateTime(required=True)
