"""CheckoutAttempt aggregate (CQRS) — one buyer's pass through checkout.

State Machine:
    CART_VALIDATED → HOLDS_CONFIRMED → ORDER_CREATED
    ORDER_CREATED → COD_ACCEPTED (terminal success)
    ORDER_CREATED → PAYMENT_PENDING → PAYMENT_SUCCEEDED | PAYMENT_FAILED
    CART_VALIDATED | HOLDS_CONFIRMED → ABORTED (no order was created)
    ORDER_CREATED → ABORTED (the order was rejected: its stock could not be secured)

The attempt id doubles as the checkout id stamped on the buyer's holds, so
finalizing or releasing for this attempt never touches holds another attempt
placed.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from checkout.coordinator.events import CheckoutAdvanced, CheckoutStarted
from checkout.domain import checkout
from checkout.order.order import PaymentMethod


class CheckoutState(Enum):
    CART_VALIDATED = "Cart_Validated"
    HOLDS_CONFIRMED = "Holds_Confirmed"
    ORDER_CREATED = "Order_Created"
    PAYMENT_PENDING = "Payment_Pending"
    PAYMENT_SUCCEEDED = "Payment_Succeeded"
    PAYMENT_FAILED = "Payment_Failed"
    COD_ACCEPTED = "Cod_Accepted"
    ABORTED = "Aborted"


_VALID_TRANSITIONS = {
    CheckoutState.CART_VALIDATED: {CheckoutState.HOLDS_CONFIRMED, CheckoutState.ABORTED},
    CheckoutState.HOLDS_CONFIRMED: {CheckoutState.ORDER_CREATED, CheckoutState.ABORTED},
    CheckoutState.ORDER_CREATED: {CheckoutState.COD_ACCEPTED, CheckoutState.PAYMENT_PENDING, CheckoutState.ABORTED},
    CheckoutState.PAYMENT_PENDING: {CheckoutState.PAYMENT_SUCCEEDED, CheckoutState.PAYMENT_FAILED},
    CheckoutState.PAYMENT_SUCCEEDED: set(),
    CheckoutState.PAYMENT_FAILED: set(),
    CheckoutState.COD_ACCEPTED: set(),
    CheckoutState.ABORTED: set(),
}

TERMINAL_STATES = {state for state, targets in _VALID_TRANSITIONS.items() if not targets}


@checkout.aggregate
class CheckoutAttempt:
    buyer_id = Identifier(required=True)
    payment_method = String(choices=PaymentMethod, required=True)
    state = String(choices=CheckoutState, default=CheckoutState.CART_VALIDATED.value)
    order_id = Identifier()
    order_number = String(max_length=50)
    holds_expire_at = DateTime()
    failure_reason = String(max_length=500)
    started_at = DateTime()
    updated_at = DateTime()
    completed_at = DateTime()

    @classmethod
    def start(cls, buyer_id, payment_method):
        now = datetime.now(UTC)
        attempt = cls(
            buyer_id=buyer_id,
            payment_method=PaymentMethod(payment_method).value,
            state=CheckoutState.CART_VALIDATED.value,
            started_at=now,
            updated_at=now,
        )
        attempt.raise_(
            CheckoutStarted(
                checkout_id=str(attempt.id),
                buyer_id=str(buyer_id),
                payment_method=attempt.payment_method,
                started_at=now,
            )
        )
        return attempt

    @property
    def is_terminal(self) -> bool:
        return CheckoutState(self.state) in TERMINAL_STATES

    def _advance(self, target, reason=None):
        current = CheckoutState(self.state)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"state": [f"Cannot move checkout from {current.value} to {target.value}"]})

        now = datetime.now(UTC)
        self.state = target.value
        self.updated_at = now
        if target in TERMINAL_STATES:
            self.completed_at = now
        if reason:
            self.failure_reason = reason

        self.raise_(
            CheckoutAdvanced(
                checkout_id=str(self.id),
                from_state=current.value,
                to_state=target.value,
                order_id=str(self.order_id) if self.order_id else None,
                reason=reason,
                occurred_at=now,
            )
        )

    def confirm_holds(self, expires_at):
        self.holds_expire_at = expires_at
        self._advance(CheckoutState.HOLDS_CONFIRMED)

    def record_order(self, order_id, order_number):
        self.order_id = order_id
        self.order_number = order_number
        self._advance(CheckoutState.ORDER_CREATED)

    def accept_cash_on_delivery(self):
        self._advance(CheckoutState.COD_ACCEPTED)

    def await_payment(self):
        self._advance(CheckoutState.PAYMENT_PENDING)

    def record_payment_succeeded(self):
        self._advance(CheckoutState.PAYMENT_SUCCEEDED)

    def record_payment_failed(self, reason):
        self._advance(CheckoutState.PAYMENT_FAILED, reason=reason)

    def abort(self, reason):
        self._advance(CheckoutState.ABORTED, reason=reason)
