"""Checkout attempt transitions — commands and handler.

The move to Order_Created is not here: it is written by ``PlaceOrder`` together
with the order itself.
"""

from protean import handle
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from checkout.coordinator.attempt import CheckoutAttempt, CheckoutState
from checkout.domain import checkout
from checkout.order.order import PaymentMethod


@checkout.command(part_of="CheckoutAttempt")
class StartCheckout:
    buyer_id = Identifier(required=True)
    payment_method = String(choices=PaymentMethod, required=True)


@checkout.command(part_of="CheckoutAttempt")
class ConfirmCheckoutHolds:
    checkout_id = Identifier(required=True)
    holds_expire_at = DateTime()


@checkout.command(part_of="CheckoutAttempt")
class AwaitCheckoutPayment:
    checkout_id = Identifier(required=True)


@checkout.command(part_of="CheckoutAttempt")
class CompleteCheckout:
    """Terminal success: cash on delivery accepted or online payment received."""

    checkout_id = Identifier(required=True)


@checkout.command(part_of="CheckoutAttempt")
class FailCheckoutPayment:
    checkout_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@checkout.command(part_of="CheckoutAttempt")
class AbortCheckout:
    checkout_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@checkout.command_handler(part_of=CheckoutAttempt)
class CheckoutAttemptHandler:
    @handle(StartCheckout)
    def start_checkout(self, command):
        attempt = CheckoutAttempt.start(buyer_id=command.buyer_id, payment_method=command.payment_method)
        current_domain.repository_for(CheckoutAttempt).add(attempt)
        return str(attempt.id)

    @handle(ConfirmCheckoutHolds)
    def confirm_checkout_holds(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.get(command.checkout_id)
        attempt.confirm_holds(expires_at=command.holds_expire_at)
        repo.add(attempt)

    @handle(AwaitCheckoutPayment)
    def await_checkout_payment(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.get(command.checkout_id)
        attempt.await_payment()
        repo.add(attempt)

    @handle(CompleteCheckout)
    def complete_checkout(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.get(command.checkout_id)
        if CheckoutState(attempt.state) == CheckoutState.ORDER_CREATED:
            attempt.accept_cash_on_delivery()
        else:
            attempt.record_payment_succeeded()
        repo.add(attempt)
        return attempt.state

    @handle(FailCheckoutPayment)
    def fail_checkout_payment(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.get(command.checkout_id)
        attempt.record_payment_failed(reason=command.reason)
        repo.add(attempt)
        return attempt.state

    @handle(AbortCheckout)
    def abort_checkout(self, command):
        repo = current_domain.repository_for(CheckoutAttempt)
        attempt = repo.get(command.checkout_id)
        attempt.abort(reason=command.reason)
        repo.add(attempt)
