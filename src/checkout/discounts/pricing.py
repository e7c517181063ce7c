"""Cart pricing — subtotal, discounts and shipping in one quote.

The checkout preview and the committed order both go through ``quote`` so the
buyer is charged exactly the total they were shown.
"""

from dataclasses import dataclass
from decimal import Decimal

from checkout.cart.cart import CartLine
from checkout.discounts.engine import (
    ZERO,
    Coupon,
    DiscountBreakdown,
    PricedLine,
    PromotionalOffer,
    compute_discount,
    to_money,
)
from checkout.settings import CheckoutSettings


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    discount: DiscountBreakdown
    shipping_charge: Decimal
    total: Decimal
    currency: str
    coupon: Coupon | None = None

    @property
    def discount_total(self) -> Decimal:
        return self.discount.total_discount


def shipping_charge(subtotal: Decimal, settings: CheckoutSettings) -> Decimal:
    """Flat charge, waived once the (pre-discount) subtotal reaches the threshold."""
    if subtotal <= ZERO:
        return ZERO
    threshold = to_money(settings.free_shipping_threshold)
    if threshold > ZERO and subtotal >= threshold:
        return ZERO
    return to_money(settings.default_shipping_charge)


def priced_lines(cart_items: list[CartLine]) -> list[PricedLine]:
    return [
        PricedLine(
            unit_id=line.unit_id,
            unit_price=to_money(line.unit_price),
            quantity=line.quantity,
            product_id=line.product_id,
            category_id=line.category_id,
        )
        for line in cart_items
    ]


def quote(
    cart_items: list[CartLine],
    offers: list[PromotionalOffer],
    coupon: Coupon | None,
    settings: CheckoutSettings,
) -> PriceQuote:
    lines = priced_lines(cart_items)
    subtotal = sum((line.line_total for line in lines), ZERO)
    discount = compute_discount(lines, offers, coupon)
    shipping = shipping_charge(subtotal, settings)
    total = max(ZERO, subtotal - discount.total_discount + shipping)
    return PriceQuote(
        subtotal=subtotal,
        discount=discount,
        shipping_charge=shipping,
        total=total,
        currency=settings.currency,
        coupon=coupon,
    )
