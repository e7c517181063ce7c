"""Hold expiry — marking lapsed holds as expired.

Availability never depends on this sweep: ``StockUnit.held_quantity`` already
ignores holds past ``expires_at``. The sweep only brings hold states in line so
that reads of the ledger show ``Expired`` instead of a stale ``Active``.

Triggered periodically by ``src/sweeper.py`` or the maintenance API endpoint.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.ledger.locks import unit_locks
from checkout.ledger.stock_unit import HoldState, StockUnit, as_utc

logger = structlog.get_logger(__name__)

_PAGE_SIZE = 100


@checkout.command(part_of="StockUnit")
class ExpireHolds:
    """Mark the lapsed holds of one unit as expired."""

    unit_id = Identifier(required=True)
    as_of = DateTime()


@checkout.command_handler(part_of=StockUnit)
class ExpireHoldsHandler:
    @handle(ExpireHolds)
    def expire_holds(self, command):
        repo = current_domain.repository_for(StockUnit)
        unit = repo.get(command.unit_id)
        expired = unit.expire_holds(as_of=command.as_of)
        if expired:
            repo.add(unit)
        return expired


def iter_stock_units():
    """Yield every Stock Unit, one page at a time."""
    dao = current_domain.repository_for(StockUnit)._dao
    offset = 0
    while True:
        page = dao.query.offset(offset).limit(_PAGE_SIZE).all().items
        yield from page
        if len(page) < _PAGE_SIZE:
            return
        offset += _PAGE_SIZE


def sweep_expired_holds(as_of: datetime | None = None) -> int:
    """Expire every lapsed hold across the ledger. Returns the number of holds expired."""
    as_of = as_utc(as_of) or datetime.now(UTC)

    stale_units = [
        str(unit.id)
        for unit in iter_stock_units()
        if any(h.state == HoldState.ACTIVE.value and not h.is_live(as_of) for h in unit.holds)
    ]
    if not stale_units:
        logger.debug("No lapsed holds found", as_of=as_of.isoformat())
        return 0

    expired_count = 0
    for unit_id in stale_units:
        try:
            with unit_locks.hold([unit_id]):
                expired_count += current_domain.process(ExpireHolds(unit_id=unit_id, as_of=as_of), asynchronous=False)
        except (ValidationError, ObjectNotFoundError) as exc:
            logger.warning("Failed to expire holds", unit_id=unit_id, error=str(exc))

    logger.info("Hold sweep complete", expired_count=expired_count, units=len(stale_units))
    return expired_count
