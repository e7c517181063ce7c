"""Hold Manager — keeps a buyer's holds in step with their cart.

Every change to the cart's contents re-runs the whole reservation for the
current cart, so a buyer who adds items mid-checkout is re-validated and the
expiry of every hold is pushed forward. Ledger rejections come back as a
``QuantityUnavailable`` that names the cart lines and how much of each is
still free for this buyer.

Abandoned holds are never released on the buyer's behalf: a closed tab sends
no signal, so reclamation is left to hold expiry.
"""

from dataclasses import dataclass, field
from datetime import datetime

import structlog

from checkout.cart.cart import CartLine, find_cart
from checkout.errors import HoldExpired, QuantityIssue, QuantityUnavailable
from checkout.ledger.service import StockLedger

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class HoldConfirmation:
    buyer_id: str
    unit_ids: tuple[str, ...] = field(default_factory=tuple)
    expires_at: datetime | None = None
    checkout_id: str | None = None


def requested_quantities(cart_items: list[CartLine]) -> dict[str, int]:
    quantities: dict[str, int] = {}
    for line in cart_items:
        quantities[line.unit_id] = quantities.get(line.unit_id, 0) + line.quantity
    return quantities


class HoldManager:
    def __init__(self, ledger: StockLedger | None = None) -> None:
        self.ledger = ledger or StockLedger()

    def ensure_holds(self, buyer_id, cart_items: list[CartLine], checkout_id=None, as_of=None) -> HoldConfirmation:
        """Hold stock for the whole cart, replacing the buyer's previous holds.

        Raises ``QuantityUnavailable`` (nothing reserved or changed) when any
        line cannot be covered.
        """
        wanted = requested_quantities(cart_items)
        if not wanted:
            released = self.ledger.release(buyer_id, reason="cart_emptied")
            logger.info("Cart empty, holds released", buyer_id=str(buyer_id), quantity=released)
            return HoldConfirmation(buyer_id=str(buyer_id), checkout_id=checkout_id)

        try:
            expires_at = self.ledger.reserve(
                buyer_id,
                list(wanted.items()),
                checkout_id=checkout_id,
                as_of=as_of,
            )
        except QuantityUnavailable as exc:
            issues = self._describe(exc.issues, cart_items)
            logger.info(
                "Cart exceeds available stock",
                buyer_id=str(buyer_id),
                issues=[issue.to_dict() for issue in issues],
            )
            raise QuantityUnavailable(issues) from exc

        dropped = set(self.ledger.units_held_by(buyer_id)) - set(wanted)
        if dropped:
            self.ledger.release(buyer_id, unit_ids=dropped, reason="removed_from_cart")

        logger.debug(
            "Holds confirmed",
            buyer_id=str(buyer_id),
            checkout_id=checkout_id,
            units=len(wanted),
            expires_at=expires_at.isoformat(),
        )
        return HoldConfirmation(
            buyer_id=str(buyer_id),
            unit_ids=tuple(sorted(wanted)),
            expires_at=expires_at,
            checkout_id=checkout_id,
        )

    def confirm_holds(self, buyer_id, cart_items: list[CartLine], checkout_id=None, as_of=None) -> None:
        """Raise ``HoldExpired`` unless live holds still cover every cart line."""
        wanted = requested_quantities(cart_items)
        held = {
            view.unit_id: view
            for view in self.ledger.active_holds(buyer_id, unit_ids=sorted(wanted), as_of=as_of)
            if checkout_id is None or view.checkout_id == str(checkout_id)
        }
        lapsed = [
            unit_id for unit_id, quantity in sorted(wanted.items()) if unit_id not in held or held[unit_id].quantity < quantity
        ]
        if lapsed:
            raise HoldExpired(lapsed)

    def revalidate(self, buyer_id) -> HoldConfirmation | None:
        """Re-run ``ensure_holds`` after a cart change when the buyer is mid-checkout.

        Buyers without live holds are browsing, not checking out, and are
        left alone. Returns None in that case.
        """
        if not self.ledger.has_active_holds(buyer_id):
            return None
        cart = find_cart(buyer_id)
        return self.ensure_holds(buyer_id, cart.lines() if cart else [])

    @staticmethod
    def _describe(issues: list[QuantityIssue], cart_items: list[CartLine]) -> list[QuantityIssue]:
        names = {line.unit_id: line.display_name for line in cart_items}
        return [
            QuantityIssue(
                unit_id=issue.unit_id,
                requested=issue.requested,
                available=issue.available,
                name=names.get(issue.unit_id, issue.name),
            )
            for issue in issues
        ]
