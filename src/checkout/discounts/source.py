"""Discount inputs — where active offers and coupons come from.

Offers and coupons are administered elsewhere; checkout only reads them. The
``DiscountSource`` port keeps that boundary, with an in-memory adapter used in
development and tests:

    source = get_discount_source()
    source.add_offer(PromotionalOffer(...))
    source.add_coupon(Coupon(code="SAVE50", kind=DiscountKind.FIXED, value=Decimal("50")))
"""

from abc import ABC, abstractmethod

from checkout.discounts.engine import Coupon, PromotionalOffer


class DiscountSource(ABC):
    @abstractmethod
    def active_offers(self) -> list[PromotionalOffer]:
        """Offers currently running in the store."""
        ...

    @abstractmethod
    def coupon_for(self, code: str) -> Coupon | None:
        """The coupon registered under ``code`` (case-insensitive), if any."""
        ...


class InMemoryDiscountSource(DiscountSource):
    def __init__(self) -> None:
        self.offers: dict[str, PromotionalOffer] = {}
        self.coupons: dict[str, Coupon] = {}

    def add_offer(self, offer: PromotionalOffer) -> None:
        self.offers[offer.offer_id] = offer

    def add_coupon(self, coupon: Coupon) -> None:
        self.coupons[coupon.code.upper()] = coupon

    def active_offers(self) -> list[PromotionalOffer]:
        return sorted(self.offers.values(), key=lambda o: o.offer_id)

    def coupon_for(self, code: str) -> Coupon | None:
        return self.coupons.get((code or "").strip().upper())


_current_source: DiscountSource | None = None


def get_discount_source() -> DiscountSource:
    """Return the current discount source. Defaults to an empty InMemoryDiscountSource."""
    global _current_source
    if _current_source is None:
        _current_source = InMemoryDiscountSource()
    return _current_source


def set_discount_source(source: DiscountSource) -> None:
    global _current_source
    _current_source = source


def reset_discount_source() -> None:
    global _current_source
    _current_source = None
