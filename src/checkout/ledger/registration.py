"""Stock unit registration and restocking — commands and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.ledger.stock_unit import StockUnit


@checkout.command(part_of="StockUnit")
class RegisterStockUnit:
    """Bring a product (or one of its variants) under ledger control."""

    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(required=True, max_length=50)
    name = String(max_length=255)
    available_quantity = Integer(default=0, min_value=0)


@checkout.command(part_of="StockUnit")
class ReceiveStock:
    """Add physically received stock to a unit."""

    unit_id = Identifier(required=True)
    quantity = Integer(required=True)
    reference = String(max_length=255)


@checkout.command_handler(part_of=StockUnit)
class StockUnitHandler:
    @handle(RegisterStockUnit)
    def register_stock_unit(self, command):
        unit = StockUnit.register(
            product_id=command.product_id,
            variant_id=command.variant_id,
            sku=command.sku,
            name=command.name,
            available_quantity=command.available_quantity or 0,
        )
        current_domain.repository_for(StockUnit).add(unit)
        return str(unit.id)

    @handle(ReceiveStock)
    def receive_stock(self, command):
        repo = current_domain.repository_for(StockUnit)
        unit = repo.get(command.unit_id)
        unit.receive(quantity=command.quantity, reference=command.reference)
        repo.add(unit)
