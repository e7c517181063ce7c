"""StockLedger — the only entry point through which stock quantities change.

Wraps the ledger commands with per-unit locking. A command's read of a unit,
the availability decision, the write and the Unit of Work commit all happen
while that unit's lock is held, so two reservations touching the same unit are
strictly ordered and the second one sees the first one's holds.

A write that still loses to another process (the unit's version moved on
between read and commit) is retried from a fresh read, a bounded number of
times, before the conflict is surfaced.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from checkout.ledger.expiry import iter_stock_units, sweep_expired_holds
from checkout.ledger.locks import LockRegistry, unit_locks
from checkout.ledger.registration import ReceiveStock, RegisterStockUnit
from checkout.ledger.reservation import FinalizeHolds, ReleaseHolds, ReserveStock, merge_requests
from checkout.ledger.shipping import CommitOrderStock
from checkout.ledger.stock_unit import HoldState, StockUnit, as_utc

logger = structlog.get_logger(__name__)

VERSION_CONFLICT_ATTEMPTS = 3


@dataclass(frozen=True)
class HoldView:
    """Read-only snapshot of one hold, as reported to callers."""

    hold_id: str
    unit_id: str
    buyer_id: str
    quantity: int
    state: str
    expires_at: datetime
    checkout_id: str | None = None


def _normalize(requests) -> list[dict]:
    normalized = []
    for entry in requests:
        if isinstance(entry, dict):
            normalized.append({"unit_id": str(entry["unit_id"]), "quantity": int(entry["quantity"])})
        else:
            unit_id, quantity = entry
            normalized.append({"unit_id": str(unit_id), "quantity": int(quantity)})
    return normalized


class StockLedger:
    def __init__(self, locks: LockRegistry | None = None) -> None:
        self._locks = locks or unit_locks

    @staticmethod
    def _process(command):
        for attempt in range(1, VERSION_CONFLICT_ATTEMPTS + 1):
            try:
                return current_domain.process(command, asynchronous=False)
            except ExpectedVersionError as exc:
                if attempt == VERSION_CONFLICT_ATTEMPTS:
                    logger.error(
                        "Stock write kept conflicting, giving up",
                        command=type(command).__name__,
                        attempts=attempt,
                    )
                    raise
                logger.warning(
                    "Stock write conflicted, retrying",
                    command=type(command).__name__,
                    attempt=attempt,
                    error=str(exc),
                )

    # -------------------------------------------------------------------
    # Catalogue-side operations
    # -------------------------------------------------------------------
    def register(self, product_id, sku, available_quantity=0, variant_id=None, name=None) -> str:
        return current_domain.process(
            RegisterStockUnit(
                product_id=product_id,
                variant_id=variant_id,
                sku=sku,
                name=name,
                available_quantity=available_quantity,
            ),
            asynchronous=False,
        )

    def receive(self, unit_id, quantity, reference=None) -> None:
        with self._locks.hold([unit_id]):
            self._process(ReceiveStock(unit_id=unit_id, quantity=quantity, reference=reference))

    # -------------------------------------------------------------------
    # Hold operations
    # -------------------------------------------------------------------
    def reserve(self, buyer_id, requests, checkout_id=None, hold_window_seconds=None, as_of=None) -> datetime:
        """Hold every requested ``(unit_id, quantity)`` for the buyer, or none of them.

        Returns the expiry shared by the new holds. Raises ``QuantityUnavailable``
        listing every unit that could not be covered.
        """
        normalized = _normalize(requests)
        with self._locks.hold(merge_requests(normalized)):
            return self._process(
                ReserveStock(
                    buyer_id=buyer_id,
                    requests=json.dumps(normalized),
                    checkout_id=checkout_id,
                    hold_window_seconds=hold_window_seconds,
                    as_of=as_of,
                )
            )

    def finalize(self, buyer_id, order_id, checkout_id=None, unit_ids=None, quantities=None, as_of=None) -> int:
        """Link the buyer's unlinked holds to ``order_id``. Returns the quantity finalized.

        With ``quantities`` (``{unit_id: quantity}`` of the order) each unit is
        finalized to exactly that quantity, or ``HoldExpired`` is raised naming
        the units that could not be covered and nothing is finalized.
        """
        if quantities is not None:
            targets = sorted(str(unit_id) for unit_id in quantities)
        else:
            targets = list(unit_ids) if unit_ids else self.units_held_by(buyer_id)
        if not targets:
            return 0
        with self._locks.hold(targets) as ordered:
            finalized = self._process(
                FinalizeHolds(
                    buyer_id=buyer_id,
                    order_id=order_id,
                    checkout_id=checkout_id,
                    unit_ids=json.dumps(ordered),
                    quantities=json.dumps({str(k): int(v) for k, v in quantities.items()}) if quantities else None,
                    as_of=as_of,
                )
            )
        logger.info("Holds finalized", buyer_id=str(buyer_id), order_id=str(order_id), quantity=finalized)
        return finalized

    def release(self, buyer_id, order_id=None, checkout_id=None, unit_ids=None, reason="released", as_of=None) -> int:
        """Return the buyer's active holds to availability. Returns the quantity released."""
        targets = list(unit_ids) if unit_ids else self.units_held_by(buyer_id)
        if not targets:
            return 0
        with self._locks.hold(targets) as ordered:
            released = self._process(
                ReleaseHolds(
                    buyer_id=buyer_id,
                    order_id=order_id,
                    checkout_id=checkout_id,
                    unit_ids=json.dumps(ordered),
                    reason=reason,
                    as_of=as_of,
                )
            )
        logger.info(
            "Holds released",
            buyer_id=str(buyer_id),
            order_id=str(order_id) if order_id else None,
            quantity=released,
            reason=reason,
        )
        return released

    def commit_shipment(self, order_id, unit_ids=None) -> int:
        """Turn an order's finalized holds into a stock deduction. Returns the quantity deducted."""
        if unit_ids is None:
            unit_ids = [
                str(unit.id)
                for unit in iter_stock_units()
                if any(h.state == HoldState.FINALIZED.value and str(h.order_id) == str(order_id) for h in unit.holds)
            ]
        deducted = 0
        for unit_id in sorted({str(u) for u in unit_ids}):
            with self._locks.hold([unit_id]):
                deducted += self._process(CommitOrderStock(unit_id=unit_id, order_id=order_id))
        return deducted

    def sweep(self, as_of=None) -> int:
        return sweep_expired_holds(as_of)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, unit_id) -> StockUnit:
        return current_domain.repository_for(StockUnit).get(unit_id)

    def effective_available(self, unit_id, buyer_id=None, as_of=None) -> int:
        return self.get(unit_id).effective_available(buyer_id=buyer_id, as_of=as_of)

    def units_held_by(self, buyer_id) -> list[str]:
        """Units on which the buyer has an unfinalized hold."""
        return [
            str(unit.id)
            for unit in iter_stock_units()
            if any(h.state == HoldState.ACTIVE.value and str(h.buyer_id) == str(buyer_id) for h in unit.holds)
        ]

    def active_holds(self, buyer_id, unit_ids=None, as_of=None) -> list[HoldView]:
        """The buyer's live holds, optionally limited to ``unit_ids``."""
        as_of = as_utc(as_of) or datetime.now(UTC)
        if unit_ids is None:
            units = iter_stock_units()
        else:
            repo = current_domain.repository_for(StockUnit)
            units = (repo.get(unit_id) for unit_id in unit_ids)

        views = []
        for unit in units:
            hold = unit.open_hold_for(buyer_id)
            if hold is None or not hold.is_live(as_of):
                continue
            views.append(
                HoldView(
                    hold_id=str(hold.id),
                    unit_id=str(unit.id),
                    buyer_id=str(hold.buyer_id),
                    quantity=hold.quantity,
                    state=hold.state,
                    expires_at=as_utc(hold.expires_at),
                    checkout_id=str(hold.checkout_id) if hold.checkout_id else None,
                )
            )
        return views

    def has_active_holds(self, buyer_id, as_of=None) -> bool:
        return bool(self.active_holds(buyer_id, as_of=as_of))
