"""Order placement — command and handler.

Prices the cart lines checkout validated and reserved, and writes the Order
with all of its dependents in one Unit of Work. The lines travel with the
command, so a cart changed after its holds were confirmed never leaks into the
order. When the order belongs to a checkout attempt, the attempt moves to
Order_Created in that same Unit of Work.
"""

import json
from decimal import Decimal

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.cart.cart import CartLine
from checkout.coordinator.attempt import CheckoutAttempt
from checkout.discounts.pricing import quote
from checkout.discounts.source import get_discount_source
from checkout.domain import checkout
from checkout.order.numbering import generate_order_number
from checkout.order.order import Order, PaymentMethod
from checkout.settings import get_settings

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class PlaceOrder:
    buyer_id = Identifier(required=True)
    checkout_id = Identifier()
    payment_method = String(choices=PaymentMethod, required=True)
    lines = Text(required=True)  # JSON list of the reserved CartLine snapshots
    shipping_address = Text(required=True)  # JSON snapshot
    coupon_code = String(max_length=50)
    expected_total = Float()  # Total the buyer was shown, if any


@checkout.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        lines = [CartLine.from_dict(data) for data in json.loads(command.lines)]

        source = get_discount_source()
        coupon = source.coupon_for(command.coupon_code) if command.coupon_code else None
        price = quote(lines, source.active_offers(), coupon, get_settings())

        if command.expected_total is not None and Decimal(str(command.expected_total)) != price.total:
            raise ValidationError(
                {"total": [f"Order total changed from {command.expected_total} to {price.total}, please review"]}
            )

        order = Order.place(
            order_number=generate_order_number(),
            buyer_id=command.buyer_id,
            checkout_id=command.checkout_id,
            payment_method=command.payment_method,
            lines=lines,
            quote=price,
            shipping_address=json.loads(command.shipping_address),
        )
        current_domain.repository_for(Order).add(order)

        if command.checkout_id:
            attempts = current_domain.repository_for(CheckoutAttempt)
            attempt = attempts.get(command.checkout_id)
            attempt.record_order(order_id=str(order.id), order_number=order.order_number)
            attempts.add(attempt)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            buyer_id=str(command.buyer_id),
            total=str(price.total),
        )
        return str(order.id)
