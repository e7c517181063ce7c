"""Discount engine — stacked promotional-offer and coupon arithmetic.

Pure functions over immutable inputs: the live price preview and the committed
order total are computed by the same call and must agree to the paisa.

Order of application:
    1. Promotional offers, per line. The best qualifying offer wins a line.
    2. The coupon, on the subtotal left after offers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from protean.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class DiscountKind(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PricedLine:
    unit_id: str
    unit_price: Decimal
    quantity: int
    product_id: str | None = None
    category_id: str | None = None

    @property
    def line_total(self) -> Decimal:
        return to_money(to_money(self.unit_price) * self.quantity)


@dataclass(frozen=True)
class PromotionalOffer:
    """Store-defined discount applied automatically.

    Targets one product, one category, or (neither set) every line.
    A fixed offer is an amount off each unit.
    """

    offer_id: str
    kind: DiscountKind
    value: Decimal
    label: str | None = None
    product_id: str | None = None
    category_id: str | None = None
    max_discount: Decimal | None = None

    def applies_to(self, line: PricedLine) -> bool:
        if self.product_id is not None:
            return line.product_id == self.product_id
        if self.category_id is not None:
            return line.category_id == self.category_id
        return True

    def discount_for(self, line: PricedLine) -> Decimal:
        total = line.line_total
        if self.kind == DiscountKind.PERCENTAGE:
            amount = to_money(total * Decimal(self.value) / 100)
            if self.max_discount is not None:
                amount = min(amount, to_money(self.max_discount))
        else:
            amount = to_money(Decimal(self.value) * line.quantity)
        return max(ZERO, min(amount, total))


@dataclass(frozen=True)
class Coupon:
    code: str
    kind: DiscountKind
    value: Decimal
    max_discount: Decimal | None = None
    min_order_value: Decimal | None = None
    expires_at: datetime | None = None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DiscountBreakdown:
    per_line_discount: dict[str, Decimal] = field(default_factory=dict)
    offer_total: Decimal = ZERO
    coupon_discount: Decimal = ZERO
    total_discount: Decimal = ZERO
    applied_offers: dict[str, str] = field(default_factory=dict)


def best_offer(line: PricedLine, offers: list[PromotionalOffer]) -> tuple[PromotionalOffer | None, Decimal]:
    best, best_amount = None, ZERO
    for offer in sorted(offers, key=lambda o: o.offer_id):
        if not offer.applies_to(line):
            continue
        amount = offer.discount_for(line)
        if amount > best_amount:
            best, best_amount = offer, amount
    return best, best_amount


def coupon_discount(coupon: Coupon | None, amount: Decimal) -> Decimal:
    """Coupon value against ``amount`` (the post-offer subtotal), never more than it."""
    if coupon is None or amount <= ZERO:
        return ZERO
    if coupon.kind == DiscountKind.PERCENTAGE:
        discount = to_money(amount * Decimal(coupon.value) / 100)
        if coupon.max_discount is not None:
            discount = min(discount, to_money(coupon.max_discount))
    else:
        discount = to_money(coupon.value)
    return max(ZERO, min(discount, amount))


def compute_discount(
    line_items: list[PricedLine],
    active_offers: list[PromotionalOffer],
    coupon: Coupon | None = None,
) -> DiscountBreakdown:
    per_line: dict[str, Decimal] = {}
    applied: dict[str, str] = {}
    for line in line_items:
        offer, amount = best_offer(line, active_offers)
        per_line[line.unit_id] = per_line.get(line.unit_id, ZERO) + amount
        if offer is not None:
            applied[line.unit_id] = offer.offer_id

    subtotal = sum((line.line_total for line in line_items), ZERO)
    offer_total = sum(per_line.values(), ZERO)
    from_coupon = coupon_discount(coupon, subtotal - offer_total)

    return DiscountBreakdown(
        per_line_discount=per_line,
        offer_total=offer_total,
        coupon_discount=from_coupon,
        total_discount=offer_total + from_coupon,
        applied_offers=applied,
    )


def validate_coupon(coupon: Coupon, subtotal: Decimal, as_of: datetime) -> None:
    """Eligibility checks made before a coupon reaches ``compute_discount``."""
    if coupon.expires_at is not None and coupon.expires_at < as_of:
        raise ValidationError({"coupon_code": [f"Coupon {coupon.code} has expired"]})
    if coupon.min_order_value is not None and subtotal < Decimal(coupon.min_order_value):
        raise ValidationError(
            {"coupon_code": [f"Coupon {coupon.code} needs a minimum order of {to_money(coupon.min_order_value)}"]}
        )
