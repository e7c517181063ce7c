"""Domain tests for the discount engine and cart pricing.

Covers:
- Offers per line (product, category, store-wide), best offer wins, caps
- Coupons on the post-offer subtotal: percentage caps, fixed clamp
- Determinism of compute_discount
- Coupon eligibility (expiry, minimum order)
- Shipping threshold and totals in quote()
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from checkout.cart.cart import CartLine
from checkout.discounts.engine import (
    Coupon,
    DiscountKind,
    PricedLine,
    PromotionalOffer,
    compute_discount,
    to_money,
    validate_coupon,
)
from checkout.discounts.pricing import quote, shipping_charge
from checkout.settings import CheckoutSettings
from protean.exceptions import ValidationError


def _line(unit_id="u-1", price="100", quantity=1, product_id="p-1", category_id=None):
    return PricedLine(
        unit_id=unit_id,
        unit_price=Decimal(price),
        quantity=quantity,
        product_id=product_id,
        category_id=category_id,
    )


def _percent_offer(offer_id, value, **targets):
    return PromotionalOffer(offer_id=offer_id, kind=DiscountKind.PERCENTAGE, value=Decimal(value), **targets)


class TestOffers:
    def test_percentage_offer_on_product(self):
        result = compute_discount([_line(price="250", quantity=2)], [_percent_offer("o-1", "10", product_id="p-1")])
        assert result.per_line_discount == {"u-1": Decimal("50.00")}
        assert result.offer_total == Decimal("50.00")
        assert result.applied_offers == {"u-1": "o-1"}

    def test_offer_for_another_product_does_not_apply(self):
        result = compute_discount([_line()], [_percent_offer("o-1", "10", product_id="p-2")])
        assert result.total_discount == Decimal("0.00")
        assert result.applied_offers == {}

    def test_category_offer(self):
        lines = [_line("u-1", "100", category_id="c-ethnic"), _line("u-2", "100", product_id="p-2", category_id="c-other")]
        result = compute_discount(lines, [_percent_offer("o-1", "20", category_id="c-ethnic")])
        assert result.per_line_discount == {"u-1": Decimal("20.00"), "u-2": Decimal("0.00")}

    def test_store_wide_offer_applies_to_every_line(self):
        lines = [_line("u-1", "100"), _line("u-2", "300", product_id="p-2")]
        result = compute_discount(lines, [_percent_offer("o-1", "5")])
        assert result.offer_total == Decimal("20.00")

    def test_best_offer_wins_a_line(self):
        offers = [_percent_offer("o-small", "5"), _percent_offer("o-big", "15", product_id="p-1")]
        result = compute_discount([_line(price="200")], offers)
        assert result.per_line_discount["u-1"] == Decimal("30.00")
        assert result.applied_offers["u-1"] == "o-big"

    def test_percentage_offer_cap(self):
        offer = _percent_offer("o-1", "50", max_discount=Decimal("100"))
        result = compute_discount([_line(price="1000")], [offer])
        assert result.offer_total == Decimal("100.00")

    def test_fixed_offer_is_per_unit_and_never_exceeds_the_line(self):
        per_unit = PromotionalOffer(offer_id="o-1", kind=DiscountKind.FIXED, value=Decimal("30"))
        assert compute_discount([_line(price="100", quantity=3)], [per_unit]).offer_total == Decimal("90.00")

        too_big = PromotionalOffer(offer_id="o-2", kind=DiscountKind.FIXED, value=Decimal("500"))
        assert compute_discount([_line(price="100", quantity=1)], [too_big]).offer_total == Decimal("100.00")


class TestCoupons:
    def test_fixed_coupon_after_offers(self):
        """Subtotal 1000, 10% offer (100), SAVE50 fixed 50 → total discount 150."""
        coupon = Coupon(code="SAVE50", kind=DiscountKind.FIXED, value=Decimal("50"))
        result = compute_discount([_line(price="1000")], [_percent_offer("o-1", "10")], coupon)

        assert result.offer_total == Decimal("100.00")
        assert result.coupon_discount == Decimal("50.00")
        assert result.total_discount == Decimal("150.00")

    def test_percentage_coupon_is_on_post_offer_subtotal(self):
        coupon = Coupon(code="TEN", kind=DiscountKind.PERCENTAGE, value=Decimal("10"))
        result = compute_discount([_line(price="1000")], [_percent_offer("o-1", "20")], coupon)
        assert result.coupon_discount == Decimal("80.00")

    def test_percentage_coupon_cap(self):
        coupon = Coupon(code="HALF", kind=DiscountKind.PERCENTAGE, value=Decimal("50"), max_discount=Decimal("200"))
        result = compute_discount([_line(price="1000")], [], coupon)
        assert result.coupon_discount == Decimal("200.00")

    def test_fixed_coupon_is_clamped_to_the_subtotal(self):
        coupon = Coupon(code="BIG", kind=DiscountKind.FIXED, value=Decimal("500"))
        result = compute_discount([_line(price="120")], [_percent_offer("o-1", "50")], coupon)
        assert result.offer_total == Decimal("60.00")
        assert result.coupon_discount == Decimal("60.00")
        assert result.total_discount == Decimal("120.00")

    def test_no_coupon(self):
        assert compute_discount([_line()], [], None).coupon_discount == Decimal("0.00")

    def test_rounding_is_half_up_to_the_cent(self):
        coupon = Coupon(code="THIRD", kind=DiscountKind.PERCENTAGE, value=Decimal("33.333"))
        result = compute_discount([_line(price="10.05")], [], coupon)
        assert result.coupon_discount == Decimal("3.35")


class TestDeterminism:
    def test_identical_inputs_give_identical_results(self):
        lines = [_line("u-1", "499.99", 3, category_id="c-1"), _line("u-2", "1299.50", 1, product_id="p-2")]
        offers = [_percent_offer("o-1", "12.5", category_id="c-1"), _percent_offer("o-2", "7")]
        coupon = Coupon(code="TEN", kind=DiscountKind.PERCENTAGE, value=Decimal("10"), max_discount=Decimal("150"))

        first = compute_discount(lines, offers, coupon)
        second = compute_discount(lines, offers, coupon)

        assert first == second
        assert str(first.total_discount) == str(second.total_discount)


class TestValidateCoupon:
    def test_expired_coupon_is_rejected(self):
        coupon = Coupon(
            code="OLD",
            kind=DiscountKind.FIXED,
            value=Decimal("50"),
            expires_at=datetime.now(UTC) - timedelta(days=1),
        )
        with pytest.raises(ValidationError) as exc:
            validate_coupon(coupon, Decimal("1000"), datetime.now(UTC))
        assert "coupon_code" in exc.value.messages

    def test_minimum_order_value(self):
        coupon = Coupon(code="BIGSPEND", kind=DiscountKind.FIXED, value=Decimal("100"), min_order_value=Decimal("999"))
        with pytest.raises(ValidationError):
            validate_coupon(coupon, Decimal("500"), datetime.now(UTC))

        validate_coupon(coupon, Decimal("999"), datetime.now(UTC))


class TestQuote:
    def _settings(self, **overrides):
        return CheckoutSettings(**overrides)

    def _cart_line(self, price="1000", quantity=1):
        return CartLine(unit_id="u-1", product_id="p-1", name="Kurta", unit_price=Decimal(price), quantity=quantity)

    def test_scenario_with_offer_coupon_and_free_shipping(self):
        coupon = Coupon(code="SAVE50", kind=DiscountKind.FIXED, value=Decimal("50"))
        price = quote([self._cart_line("1000")], [_percent_offer("o-1", "10")], coupon, self._settings())

        assert price.subtotal == Decimal("1000.00")
        assert price.discount_total == Decimal("150.00")
        assert price.shipping_charge == Decimal("0.00")
        assert price.total == Decimal("850.00")
        assert price.currency == "INR"

    def test_shipping_charged_below_threshold(self):
        price = quote([self._cart_line("200")], [], None, self._settings())
        assert price.shipping_charge == Decimal("50.00")
        assert price.total == Decimal("250.00")

    def test_free_shipping_uses_the_pre_discount_subtotal(self):
        price = quote([self._cart_line("500")], [_percent_offer("o-1", "10")], None, self._settings())
        assert price.shipping_charge == Decimal("0.00")
        assert price.total == Decimal("450.00")

    def test_zero_threshold_always_charges_shipping(self):
        settings = self._settings(free_shipping_threshold=Decimal("0"))
        assert shipping_charge(Decimal("10000"), settings) == Decimal("50.00")

    def test_total_never_negative(self):
        coupon = Coupon(code="ALL", kind=DiscountKind.FIXED, value=Decimal("5000"))
        settings = self._settings(default_shipping_charge=Decimal("0"))
        assert quote([self._cart_line("100")], [], coupon, settings).total == Decimal("0.00")

    def test_to_money(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(3) == Decimal("3.00")
