"""Configurable fake payment collaborator for development and testing.

Records every hand-off and keeps the callbacks it was given, so a test (or the
callback endpoint in development) decides when and how each payment resolves:

    collaborator.succeed(order_id, reference="pay_123")
    collaborator.fail(order_id, "card_declined")

``configure(raise_on_start=True)`` makes the hand-off itself blow up, the way
an unreachable provider would.
"""

from uuid import uuid4

from checkout.gateway.port import FailureCallback, PaymentCollaborator, PaymentRequest, SuccessCallback


class FakePaymentCollaborator(PaymentCollaborator):
    def __init__(self) -> None:
        self.raise_on_start: bool = False
        self.start_error: str = "Payment provider unavailable"
        self.calls: list[PaymentRequest] = []
        self._pending: dict[str, tuple[SuccessCallback, FailureCallback]] = {}

    def configure(self, raise_on_start: bool = False, start_error: str = "Payment provider unavailable") -> None:
        self.raise_on_start = raise_on_start
        self.start_error = start_error

    def start_payment(self, request: PaymentRequest, on_success: SuccessCallback, on_failure: FailureCallback) -> None:
        self.calls.append(request)
        if self.raise_on_start:
            raise ConnectionError(self.start_error)
        self._pending[request.order_id] = (on_success, on_failure)

    def pending_orders(self) -> list[str]:
        return list(self._pending)

    def succeed(self, order_id: str, reference: str | None = None) -> None:
        on_success, _ = self._pending.pop(str(order_id))
        on_success(reference or f"fake_pay_{uuid4().hex[:12]}")

    def fail(self, order_id: str, reason: str = "card_declined") -> None:
        _, on_failure = self._pending.pop(str(order_id))
        on_failure(reason)

    def verify_callback_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
