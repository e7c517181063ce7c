"""StockUnit aggregate (CQRS) — the authoritative stock counter for one purchasable unit.

A Stock Unit is a product, or one specific variant of a product. It owns its
holds: every reservation placed against the unit lives inside the aggregate,
so checking availability and recording a claim happen on the same object and
are persisted by the same repository call.

Quantity Model:
    available_quantity: physical stock not yet shipped
    held_quantity:      live active holds + finalized holds
    effective:          available_quantity - held_quantity

Hold lifecycle:
    ACTIVE → FINALIZED (order committed) → removed when the order ships
    ACTIVE → RELEASED (payment failure, cart change)
    ACTIVE → EXPIRED (expires_at passed; counted as free from that instant)
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String

from checkout.domain import checkout
from checkout.errors import QuantityIssue, QuantityUnavailable
from checkout.ledger.events import (
    HoldLapsed,
    HoldReleased,
    HoldsFinalized,
    OrderStockCommitted,
    StockHeld,
    StockReceived,
    StockUnitRegistered,
)


class HoldState(Enum):
    ACTIVE = "Active"
    FINALIZED = "Finalized"
    RELEASED = "Released"
    EXPIRED = "Expired"


def as_utc(value: datetime | None) -> datetime | None:
    """Providers may hand back naive datetimes; treat those as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="StockUnit")
class Hold:
    """A time-boxed claim on a quantity of the unit by one buyer.

    ``order_id`` stays empty until the buyer's order is committed; it is the
    only link between a hold and an order.
    """

    buyer_id = Identifier(required=True)
    checkout_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    state = String(choices=HoldState, default=HoldState.ACTIVE.value)
    order_id = Identifier()
    created_at = DateTime(required=True)
    expires_at = DateTime(required=True)
    closed_at = DateTime()

    def is_live(self, as_of: datetime) -> bool:
        return self.state == HoldState.ACTIVE.value and as_utc(self.expires_at) > as_of

    def counts_against_stock(self, as_of: datetime) -> bool:
        return self.state == HoldState.FINALIZED.value or self.is_live(as_of)

    def belongs_to(self, buyer_id, checkout_id=None) -> bool:
        if str(self.buyer_id) != str(buyer_id):
            return False
        return checkout_id is None or str(self.checkout_id) == str(checkout_id)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class StockUnit:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(required=True, max_length=50)
    name = String(max_length=255)
    available_quantity = Integer(default=0, min_value=0)
    holds = HasMany(Hold)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def holds_cannot_exceed_available_stock(self):
        held = self.held_quantity()
        if held > (self.available_quantity or 0):
            raise ValidationError(
                {"available_quantity": [f"Holds of {held} exceed available stock of {self.available_quantity}"]}
            )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def register(cls, product_id, sku, available_quantity=0, variant_id=None, name=None):
        now = datetime.now(UTC)
        unit = cls(
            product_id=product_id,
            variant_id=variant_id,
            sku=sku,
            name=name,
            available_quantity=available_quantity,
            created_at=now,
            updated_at=now,
        )
        unit.raise_(
            StockUnitRegistered(
                unit_id=str(unit.id),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                sku=sku,
                available_quantity=available_quantity,
                registered_at=now,
            )
        )
        return unit

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def held_quantity(self, as_of: datetime | None = None, excluding_buyer=None) -> int:
        """Sum of holds that currently count against stock.

        Expired holds are left out whether or not the sweep has marked them.
        ``excluding_buyer`` drops that buyer's active holds (the ones a new
        reservation would replace); their finalized holds still count.
        """
        as_of = as_utc(as_of) or datetime.now(UTC)
        total = 0
        for hold in self.holds:
            if not hold.counts_against_stock(as_of):
                continue
            if (
                excluding_buyer is not None
                and hold.state == HoldState.ACTIVE.value
                and str(hold.buyer_id) == str(excluding_buyer)
            ):
                continue
            total += hold.quantity
        return total

    def effective_available(self, buyer_id=None, as_of: datetime | None = None) -> int:
        """Quantity free for ``buyer_id`` (their own pending hold counts as free)."""
        return max(0, (self.available_quantity or 0) - self.held_quantity(as_of, excluding_buyer=buyer_id))

    def open_hold_for(self, buyer_id):
        """The buyer's single ACTIVE hold on this unit, live or lapsed."""
        return next(
            (h for h in self.holds if h.state == HoldState.ACTIVE.value and str(h.buyer_id) == str(buyer_id)),
            None,
        )

    def shortfall_for(self, buyer_id, quantity, as_of: datetime | None = None) -> QuantityIssue | None:
        available = self.effective_available(buyer_id, as_of)
        if quantity > available:
            return QuantityIssue(unit_id=str(self.id), requested=quantity, available=available, name=self.name)
        return None

    # -------------------------------------------------------------------
    # Stock movements
    # -------------------------------------------------------------------
    def receive(self, quantity, reference=None):
        if quantity < 1:
            raise ValidationError({"quantity": ["Received quantity must be positive"]})

        previous = self.available_quantity
        now = datetime.now(UTC)
        self.available_quantity = previous + quantity
        self.updated_at = now

        self.raise_(
            StockReceived(
                unit_id=str(self.id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=self.available_quantity,
                reference=reference,
                received_at=now,
            )
        )

    def commit_order(self, order_id, as_of: datetime | None = None) -> int:
        """Deduct an order's finalized quantity once it ships. Returns the quantity deducted."""
        committed = [
            h for h in self.holds if h.state == HoldState.FINALIZED.value and str(h.order_id) == str(order_id)
        ]
        if not committed:
            return 0

        now = as_utc(as_of) or datetime.now(UTC)
        quantity = sum(h.quantity for h in committed)
        previous = self.available_quantity

        with atomic_change(self):
            for hold in committed:
                self.remove_holds(hold)
            self.available_quantity = previous - quantity
        self.updated_at = now

        self.raise_(
            OrderStockCommitted(
                unit_id=str(self.id),
                order_id=str(order_id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=self.available_quantity,
                committed_at=now,
            )
        )
        return quantity

    # -------------------------------------------------------------------
    # Holds
    # -------------------------------------------------------------------
    def place_hold(self, buyer_id, quantity, expires_at, checkout_id=None, as_of: datetime | None = None):
        """Place the buyer's hold, replacing their previous one on this unit."""
        now = as_utc(as_of) or datetime.now(UTC)

        issue = self.shortfall_for(buyer_id, quantity, now)
        if issue is not None:
            raise QuantityUnavailable([issue])

        existing = self.open_hold_for(buyer_id)
        previous_quantity = 0

        with atomic_change(self):
            if existing is not None and existing.is_live(now):
                previous_quantity = existing.quantity
                existing.quantity = quantity
                existing.created_at = now
                existing.expires_at = expires_at
                if checkout_id is not None:
                    existing.checkout_id = checkout_id
                hold = existing
            else:
                if existing is not None:
                    self._lapse(existing, now)
                hold = Hold(
                    buyer_id=buyer_id,
                    checkout_id=checkout_id,
                    quantity=quantity,
                    state=HoldState.ACTIVE.value,
                    created_at=now,
                    expires_at=expires_at,
                )
                self.add_holds(hold)
        self.updated_at = now

        self.raise_(
            StockHeld(
                unit_id=str(self.id),
                hold_id=str(hold.id),
                buyer_id=str(buyer_id),
                checkout_id=str(hold.checkout_id) if hold.checkout_id else None,
                quantity=quantity,
                previous_quantity=previous_quantity,
                effective_available=self.effective_available(as_of=now),
                expires_at=expires_at,
            )
        )
        return hold

    def finalize_holds(self, buyer_id, order_id, checkout_id=None, quantity=None, as_of: datetime | None = None):
        """Link the buyer's unlinked active holds to ``order_id``.

        Without ``quantity`` every matching hold is finalized as it stands. A
        hold that expired before payment came back is finalized only if the
        unit can still cover it; otherwise it is lapsed.

        With ``quantity`` (what the order actually contains) the finalized
        claim is made to match it exactly: a larger hold gives back the excess,
        a smaller or lapsed one is topped up from free stock when possible.

        Returns a tuple of (finalized quantity, uncovered quantity).
        """
        now = as_utc(as_of) or datetime.now(UTC)
        candidates = [
            h
            for h in self.holds
            if h.state == HoldState.ACTIVE.value and h.order_id is None and h.belongs_to(buyer_id, checkout_id)
        ]
        if quantity is None:
            finalized, lapsed = self._finalize_as_held(candidates, order_id, now)
        else:
            finalized, lapsed = self._finalize_exactly(buyer_id, candidates, order_id, quantity, now)

        if finalized:
            self.updated_at = now
            self.raise_(
                HoldsFinalized(
                    unit_id=str(self.id),
                    buyer_id=str(buyer_id),
                    order_id=str(order_id),
                    quantity=finalized,
                    finalized_at=now,
                )
            )
        return finalized, lapsed

    def _finalize_as_held(self, candidates, order_id, now):
        finalized = 0
        lapsed = 0
        for hold in candidates:
            if not hold.is_live(now):
                free = (self.available_quantity or 0) - self.held_quantity(now)
                if hold.quantity > free:
                    self._lapse(hold, now)
                    lapsed += hold.quantity
                    continue
            self._close_as_finalized(hold, order_id, now)
            finalized += hold.quantity
        return finalized, lapsed

    def _finalize_exactly(self, buyer_id, candidates, order_id, quantity, now):
        hold = next((h for h in candidates if h.is_live(now)), None)
        for stale in candidates:
            if stale is not hold and not stale.is_live(now):
                self._lapse(stale, now)

        own = hold.quantity if hold is not None else 0
        free = (self.available_quantity or 0) - self.held_quantity(now)
        if own + free < quantity:
            return 0, quantity - own

        excess = hold.quantity - quantity if hold is not None else 0
        with atomic_change(self):
            if hold is None:
                hold = Hold(
                    buyer_id=buyer_id,
                    quantity=quantity,
                    state=HoldState.ACTIVE.value,
                    created_at=now,
                    expires_at=now,
                )
                self.add_holds(hold)
            hold.quantity = quantity
            self._close_as_finalized(hold, order_id, now)

        if excess > 0:
            self.raise_(
                HoldReleased(
                    unit_id=str(self.id),
                    hold_id=str(hold.id),
                    buyer_id=str(buyer_id),
                    order_id=str(order_id),
                    quantity=excess,
                    reason="exceeds_order",
                    released_at=now,
                )
            )
        return quantity, 0

    @staticmethod
    def _close_as_finalized(hold, order_id, now):
        hold.state = HoldState.FINALIZED.value
        hold.order_id = order_id
        hold.closed_at = now

    def release_holds(self, buyer_id, order_id=None, checkout_id=None, reason="released", as_of=None) -> int:
        """Give the buyer's active holds back to availability. Finalized holds are left alone."""
        now = as_utc(as_of) or datetime.now(UTC)
        released = 0
        for hold in list(self.holds):
            if hold.state != HoldState.ACTIVE.value or not hold.belongs_to(buyer_id, checkout_id):
                continue
            if hold.order_id is not None and str(hold.order_id) != str(order_id):
                continue
            if not hold.is_live(now):
                # Its quantity is already free; record the expiry instead
                self._lapse(hold, now)
                continue

            hold.state = HoldState.RELEASED.value
            hold.closed_at = now
            released += hold.quantity
            self.raise_(
                HoldReleased(
                    unit_id=str(self.id),
                    hold_id=str(hold.id),
                    buyer_id=str(buyer_id),
                    order_id=str(order_id) if order_id else None,
                    quantity=hold.quantity,
                    reason=reason,
                    released_at=now,
                )
            )

        if released:
            self.updated_at = now
        return released

    def expire_holds(self, as_of: datetime | None = None) -> int:
        """Mark every active hold past its expiry as expired. Returns the number marked."""
        now = as_utc(as_of) or datetime.now(UTC)
        lapsed = [h for h in self.holds if h.state == HoldState.ACTIVE.value and not h.is_live(now)]
        for hold in lapsed:
            self._lapse(hold, now)
        if lapsed:
            self.updated_at = now
        return len(lapsed)

    def _lapse(self, hold, now):
        hold.state = HoldState.EXPIRED.value
        hold.closed_at = now
        self.raise_(
            HoldLapsed(
                unit_id=str(self.id),
                hold_id=str(hold.id),
                buyer_id=str(hold.buyer_id),
                quantity=hold.quantity,
                expired_at=as_utc(hold.expires_at),
            )
        )
