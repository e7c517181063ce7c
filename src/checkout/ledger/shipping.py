"""Stock commitment on shipment — command and handler.

Finalized holds keep counting against availability until the order leaves the
warehouse; at that point the held quantity becomes a real stock deduction and
the holds are dropped. Running it twice for the same order changes nothing.
"""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.ledger.stock_unit import StockUnit


@checkout.command(part_of="StockUnit")
class CommitOrderStock:
    """Deduct an order's finalized quantity from one unit."""

    unit_id = Identifier(required=True)
    order_id = Identifier(required=True)


@checkout.command_handler(part_of=StockUnit)
class CommitOrderStockHandler:
    @handle(CommitOrderStock)
    def commit_order_stock(self, command):
        repo = current_domain.repository_for(StockUnit)
        unit = repo.get(command.unit_id)
        quantity = unit.commit_order(order_id=command.order_id)
        if quantity:
            repo.add(unit)
        return quantity
