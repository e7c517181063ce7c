"""Payment outcomes and shipment — commands and handler.

Each handler returns whether the order actually changed, so callers can tell
a first outcome from a duplicate delivery of the same one.
"""

from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order


@checkout.command(part_of="Order")
class AcceptCashOnDelivery:
    order_id = Identifier(required=True)


@checkout.command(part_of="Order")
class RecordPaymentSuccess:
    order_id = Identifier(required=True)
    reference = String(max_length=255)


@checkout.command(part_of="Order")
class RecordPaymentFailure:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@checkout.command(part_of="Order")
class RejectOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    refund_due = Boolean(default=False)
    payment_reference = String(max_length=255)


@checkout.command(part_of="Order")
class ShipOrder:
    order_id = Identifier(required=True)


@checkout.command_handler(part_of=Order)
class OrderOutcomeHandler:
    @handle(AcceptCashOnDelivery)
    def accept_cash_on_delivery(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.accept_cash_on_delivery()
        if changed:
            repo.add(order)
        return changed

    @handle(RecordPaymentSuccess)
    def record_payment_success(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.record_payment_success(reference=command.reference)
        if changed:
            repo.add(order)
        return changed

    @handle(RecordPaymentFailure)
    def record_payment_failure(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.record_payment_failure(reason=command.reason)
        if changed:
            repo.add(order)
        return changed

    @handle(RejectOrder)
    def reject_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.reject(
            reason=command.reason,
            refund_due=bool(command.refund_due),
            payment_reference=command.payment_reference,
        )
        if changed:
            repo.add(order)
        return changed

    @handle(ShipOrder)
    def ship_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.mark_shipped()
        if changed:
            repo.add(order)
        return changed
