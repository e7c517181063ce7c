"""Order aggregate (CQRS) — the committed purchase record.

An Order is written once, by checkout, together with everything that must
exist alongside it: line items, the shipping address snapshot, the coupon
snapshot, the delivery record and (cash on delivery) the payment record. All
of it lives inside the aggregate and is persisted by one repository call, so
there is never an order without its lines.

Prices, address and coupon are copies taken at commit time. Later catalogue
or coupon changes never reach an existing order.

State Machine:
    NEW → CONFIRMED (cash on delivery accepted, or online payment succeeded)
    NEW → PAYMENT_FAILED (terminal; kept as an audit record)
    NEW → REJECTED (its stock could not be secured; a paid order is due a refund)
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from checkout.domain import checkout
from checkout.order.events import (
    CashOnDeliveryAccepted,
    OrderPaid,
    OrderPaymentFailed,
    OrderPlaced,
    OrderRejected,
    OrderShipped,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    NEW = "New"
    CONFIRMED = "Confirmed"
    PAYMENT_FAILED = "Payment_Failed"
    REJECTED = "Rejected"


class PaymentStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "Cash_On_Delivery"
    ONLINE = "Online"


class DeliveryStatus(Enum):
    PENDING = "Pending"
    SHIPPED = "Shipped"


_VALID_TRANSITIONS = {
    OrderStatus.NEW: {OrderStatus.CONFIRMED, OrderStatus.PAYMENT_FAILED, OrderStatus.REJECTED},
    OrderStatus.CONFIRMED: set(),
    OrderStatus.PAYMENT_FAILED: set(),
    OrderStatus.REJECTED: set(),
}


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="Order")
class ShippingAddress:
    """Where the order goes, copied verbatim from the buyer's chosen address."""

    full_name = String(required=True, max_length=255)
    phone = String(required=True, max_length=20)
    line1 = String(required=True, max_length=255)
    line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)
    landmark = String(max_length=255)


@checkout.value_object(part_of="Order")
class OrderPricing:
    subtotal = Float(default=0.0)
    discount_total = Float(default=0.0)
    shipping_charge = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="INR")


@checkout.value_object(part_of="Order")
class CouponSnapshot:
    """The coupon as it was when the order was placed, and what it was worth."""

    code = String(required=True, max_length=50)
    kind = String(required=True, max_length=20)
    value = Float(required=True)
    discount_amount = Float(default=0.0)


@checkout.value_object(part_of="Order")
class DeliveryRecord:
    status = String(choices=DeliveryStatus, default=DeliveryStatus.PENDING.value)
    is_cod = Boolean(default=False)
    cod_amount = Float()
    delivery_charge = Float(default=0.0)
    updated_at = DateTime()


@checkout.value_object(part_of="Order")
class PaymentRecord:
    method = String(choices=PaymentMethod, required=True)
    amount = Float(required=True)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    reference = String(max_length=255)
    failure_reason = String(max_length=500)
    recorded_at = DateTime()


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class OrderLineItem:
    unit_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(required=True, max_length=255)
    variant_name = String(max_length=255)
    sku = String(max_length=50)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    line_total = Float(required=True)
    offer_discount = Float(default=0.0)
    offer_id = String(max_length=100)
    bundle_id = Identifier()
    bundle_name = String(max_length=255)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Order:
    order_number = String(required=True, max_length=50)
    buyer_id = Identifier(required=True)
    checkout_id = Identifier()
    status = String(choices=OrderStatus, default=OrderStatus.NEW.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment_method = String(choices=PaymentMethod, required=True)
    pricing = ValueObject(OrderPricing)
    shipping_address = ValueObject(ShippingAddress)
    coupon = ValueObject(CouponSnapshot)
    items = HasMany(OrderLineItem)
    delivery = ValueObject(DeliveryRecord)
    payment_record = ValueObject(PaymentRecord)
    rejection_reason = String(max_length=500)
    placed_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, order_number, buyer_id, payment_method, lines, quote, shipping_address, checkout_id=None):
        """Build a complete order from cart lines and a price quote.

        Args:
            lines: ``CartLine`` snapshots, one per order line.
            quote: The ``PriceQuote`` for exactly these lines.
            shipping_address: Dict with full_name, phone, line1, line2, city,
                state, postal_code, landmark.
        """
        if not lines:
            raise ValidationError({"items": ["An order needs at least one line item"]})

        method = PaymentMethod(payment_method)
        cod = method == PaymentMethod.CASH_ON_DELIVERY
        total = float(quote.total)
        now = datetime.now(UTC)

        coupon = None
        if quote.coupon is not None:
            coupon = CouponSnapshot(
                code=quote.coupon.code,
                kind=quote.coupon.kind.value,
                value=float(quote.coupon.value),
                discount_amount=float(quote.discount.coupon_discount),
            )

        order = cls(
            order_number=order_number,
            buyer_id=buyer_id,
            checkout_id=checkout_id,
            status=OrderStatus.NEW.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=method.value,
            pricing=OrderPricing(
                subtotal=float(quote.subtotal),
                discount_total=float(quote.discount_total),
                shipping_charge=float(quote.shipping_charge),
                total=total,
                currency=quote.currency,
            ),
            shipping_address=ShippingAddress(**shipping_address),
            coupon=coupon,
            delivery=DeliveryRecord(
                status=DeliveryStatus.PENDING.value,
                is_cod=cod,
                cod_amount=total if cod else None,
                delivery_charge=float(quote.shipping_charge),
                updated_at=now,
            ),
            payment_record=PaymentRecord(
                method=method.value, amount=total, status=PaymentStatus.PENDING.value, recorded_at=now
            )
            if cod
            else None,
            placed_at=now,
            updated_at=now,
        )

        discounts = quote.discount.per_line_discount
        offers = quote.discount.applied_offers
        for line in lines:
            order.add_items(
                OrderLineItem(
                    unit_id=line.unit_id,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    name=line.name,
                    variant_name=line.variant_name,
                    sku=line.sku,
                    unit_price=float(line.unit_price),
                    quantity=line.quantity,
                    line_total=float(line.line_total),
                    offer_discount=float(discounts.get(line.unit_id, 0)),
                    offer_id=offers.get(line.unit_id),
                    bundle_id=line.bundle_id,
                    bundle_name=line.bundle_name,
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                buyer_id=str(buyer_id),
                checkout_id=str(checkout_id) if checkout_id else None,
                payment_method=method.value,
                item_count=len(lines),
                subtotal=float(quote.subtotal),
                discount_total=float(quote.discount_total),
                shipping_charge=float(quote.shipping_charge),
                total=total,
                coupon_code=coupon.code if coupon else None,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    @property
    def unit_ids(self) -> list[str]:
        return sorted({str(item.unit_id) for item in self.items})

    @property
    def quantities(self) -> dict[str, int]:
        """Ordered quantity per stock unit."""
        totals: dict[str, int] = {}
        for item in self.items:
            totals[str(item.unit_id)] = totals.get(str(item.unit_id), 0) + item.quantity
        return totals

    # -------------------------------------------------------------------
    # Payment outcomes
    # -------------------------------------------------------------------
    def accept_cash_on_delivery(self):
        if PaymentMethod(self.payment_method) != PaymentMethod.CASH_ON_DELIVERY:
            raise ValidationError({"payment_method": ["Only cash-on-delivery orders can be accepted without payment"]})
        if OrderStatus(self.status) == OrderStatus.CONFIRMED:
            return False
        self._assert_can_transition(OrderStatus.CONFIRMED)

        now = datetime.now(UTC)
        self.status = OrderStatus.CONFIRMED.value
        self.updated_at = now
        self.raise_(
            CashOnDeliveryAccepted(
                order_id=str(self.id),
                order_number=self.order_number,
                cod_amount=self.delivery.cod_amount,
                confirmed_at=now,
            )
        )
        return True

    def record_payment_success(self, reference=None):
        """Mark an online order paid. Returns False if it already was."""
        if PaymentStatus(self.payment_status) == PaymentStatus.PAID:
            return False
        self._assert_can_transition(OrderStatus.CONFIRMED)

        now = datetime.now(UTC)
        self.status = OrderStatus.CONFIRMED.value
        self.payment_status = PaymentStatus.PAID.value
        self.payment_record = PaymentRecord(
            method=self.payment_method,
            amount=self.pricing.total,
            status=PaymentStatus.PAID.value,
            reference=reference,
            recorded_at=now,
        )
        self.updated_at = now
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                order_number=self.order_number,
                amount=self.pricing.total,
                reference=reference,
                paid_at=now,
            )
        )
        return True

    def record_payment_failure(self, reason):
        """Mark an online order's payment failed. Returns False if it already was."""
        if PaymentStatus(self.payment_status) == PaymentStatus.FAILED:
            return False
        self._assert_can_transition(OrderStatus.PAYMENT_FAILED)

        now = datetime.now(UTC)
        self.status = OrderStatus.PAYMENT_FAILED.value
        self.payment_status = PaymentStatus.FAILED.value
        self.payment_record = PaymentRecord(
            method=self.payment_method,
            amount=self.pricing.total,
            status=PaymentStatus.FAILED.value,
            failure_reason=reason,
            recorded_at=now,
        )
        self.updated_at = now
        self.raise_(
            OrderPaymentFailed(
                order_id=str(self.id),
                order_number=self.order_number,
                reason=reason,
                failed_at=now,
            )
        )
        return True

    def reject(self, reason, refund_due=False, payment_reference=None):
        """Close an order whose stock could not be secured.

        ``refund_due`` marks an online payment that was taken anyway (its
        ``payment_reference`` is kept); the order then stays Paid.
        """
        if OrderStatus(self.status) == OrderStatus.REJECTED:
            return False
        self._assert_can_transition(OrderStatus.REJECTED)

        now = datetime.now(UTC)
        self.status = OrderStatus.REJECTED.value
        self.rejection_reason = reason
        self.payment_status = PaymentStatus.PAID.value if refund_due else PaymentStatus.FAILED.value
        self.payment_record = PaymentRecord(
            method=self.payment_method,
            amount=self.pricing.total,
            status=self.payment_status,
            reference=payment_reference,
            failure_reason=None if refund_due else reason,
            recorded_at=now,
        )
        self.updated_at = now
        self.raise_(
            OrderRejected(
                order_id=str(self.id),
                order_number=self.order_number,
                reason=reason,
                refund_due=refund_due,
                payment_reference=payment_reference,
                rejected_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------
    def mark_shipped(self):
        if OrderStatus(self.status) != OrderStatus.CONFIRMED:
            raise ValidationError({"status": ["Only confirmed orders can be shipped"]})
        if DeliveryStatus(self.delivery.status) == DeliveryStatus.SHIPPED:
            return False

        now = datetime.now(UTC)
        self.delivery = DeliveryRecord(
            status=DeliveryStatus.SHIPPED.value,
            is_cod=self.delivery.is_cod,
            cod_amount=self.delivery.cod_amount,
            delivery_charge=self.delivery.delivery_charge,
            updated_at=now,
        )
        self.updated_at = now
        self.raise_(OrderShipped(order_id=str(self.id), order_number=self.order_number, shipped_at=now))
        return True
