"""Hold placement, finalization and release — commands and handler.

These handlers assume the caller already holds the per-unit locks for every
unit they touch (see ``checkout.ledger.service.StockLedger``); each command
then runs read, check and write inside one Unit of Work.
"""

import json
from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.errors import HoldExpired, QuantityIssue, QuantityUnavailable
from checkout.ledger.stock_unit import StockUnit, as_utc
from checkout.settings import get_settings

logger = structlog.get_logger(__name__)


@checkout.command(part_of="StockUnit")
class ReserveStock:
    """Place or replace one hold per requested unit, all or nothing."""

    buyer_id = Identifier(required=True)
    requests = Text(required=True)  # JSON list of {"unit_id", "quantity"}
    checkout_id = Identifier()
    hold_window_seconds = Integer(min_value=1)
    as_of = DateTime()


@checkout.command(part_of="StockUnit")
class FinalizeHolds:
    """Link a buyer's unlinked active holds to a committed order.

    When ``quantities`` is given the order's units are finalized to exactly
    those quantities, all of them or none.
    """

    buyer_id = Identifier(required=True)
    order_id = Identifier(required=True)
    checkout_id = Identifier()
    unit_ids = Text()  # JSON list of units to visit
    quantities = Text()  # JSON {unit_id: quantity} the order contains
    as_of = DateTime()


@checkout.command(part_of="StockUnit")
class ReleaseHolds:
    """Return a buyer's active holds to availability."""

    buyer_id = Identifier(required=True)
    order_id = Identifier()
    checkout_id = Identifier()
    unit_ids = Text()
    reason = String(max_length=255, default="released")
    as_of = DateTime()


def merge_requests(requests) -> dict[str, int]:
    """Collapse ``[{"unit_id", "quantity"}]`` into ``{unit_id: quantity}``."""
    merged: dict[str, int] = {}
    for entry in requests:
        unit_id = str(entry["unit_id"])
        merged[unit_id] = merged.get(unit_id, 0) + int(entry["quantity"])
    return merged


@checkout.command_handler(part_of=StockUnit)
class HoldHandler:
    @handle(ReserveStock)
    def reserve_stock(self, command):
        as_of = as_utc(command.as_of) or datetime.now(UTC)
        window = command.hold_window_seconds or get_settings().hold_window_seconds
        expires_at = as_of + timedelta(seconds=window)
        wanted = merge_requests(json.loads(command.requests))

        repo = current_domain.repository_for(StockUnit)
        units = {}
        issues = []
        # Check every unit before touching any of them
        for unit_id in sorted(wanted):
            quantity = wanted[unit_id]
            if quantity < 1:
                issues.append(QuantityIssue(unit_id=unit_id, requested=quantity, available=0))
                continue
            try:
                unit = repo.get(unit_id)
            except ObjectNotFoundError:
                issues.append(QuantityIssue(unit_id=unit_id, requested=quantity, available=0))
                continue
            issue = unit.shortfall_for(command.buyer_id, quantity, as_of)
            if issue is not None:
                issues.append(issue)
            units[unit_id] = unit

        if issues:
            logger.info(
                "Reservation rejected",
                buyer_id=str(command.buyer_id),
                units=[issue.unit_id for issue in issues],
            )
            raise QuantityUnavailable(issues)

        for unit_id, unit in units.items():
            unit.place_hold(
                buyer_id=command.buyer_id,
                quantity=wanted[unit_id],
                expires_at=expires_at,
                checkout_id=command.checkout_id,
                as_of=as_of,
            )
            repo.add(unit)

        logger.info(
            "Stock held",
            buyer_id=str(command.buyer_id),
            checkout_id=command.checkout_id,
            units=len(units),
            expires_at=expires_at.isoformat(),
        )
        return expires_at

    @handle(FinalizeHolds)
    def finalize_holds(self, command):
        repo = current_domain.repository_for(StockUnit)
        quantities = json.loads(command.quantities) if command.quantities else None
        unit_ids = sorted(quantities) if quantities is not None else json.loads(command.unit_ids or "[]")

        finalized = 0
        uncovered = []
        for unit_id in unit_ids:
            unit = repo.get(unit_id)
            done, missed = unit.finalize_holds(
                buyer_id=command.buyer_id,
                order_id=command.order_id,
                checkout_id=command.checkout_id,
                quantity=quantities[unit_id] if quantities is not None else None,
                as_of=command.as_of,
            )
            if done or missed:
                repo.add(unit)
            finalized += done
            if missed:
                uncovered.append(unit_id)

        if uncovered:
            logger.warning(
                "Holds lapsed before finalization",
                buyer_id=str(command.buyer_id),
                order_id=str(command.order_id),
                units=uncovered,
            )
            if quantities is not None:
                # The order must be covered in full or not at all
                raise HoldExpired(uncovered)
        return finalized

    @handle(ReleaseHolds)
    def release_holds(self, command):
        repo = current_domain.repository_for(StockUnit)
        released = 0
        for unit_id in json.loads(command.unit_ids or "[]"):
            unit = repo.get(unit_id)
            released += unit.release_holds(
                buyer_id=command.buyer_id,
                order_id=command.order_id,
                checkout_id=command.checkout_id,
                reason=command.reason or "released",
                as_of=command.as_of,
            )
            repo.add(unit)
        return released
