"""Payment collaborator port (abstract interface).

Online payment is callback driven: checkout hands the collaborator an amount
and an order, then returns. The collaborator later calls exactly one of the
two callbacks it was given, once. Adapters for real providers implement this
contract; the fake adapter drives it from tests and the callback endpoint.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal

SuccessCallback = Callable[[str | None], None]
FailureCallback = Callable[[str], None]


@dataclass(frozen=True)
class PaymentRequest:
    """What the collaborator needs to collect payment for one order."""

    order_id: str
    order_number: str
    amount: Decimal
    currency: str
    contact: dict = field(default_factory=dict)


class PaymentCollaborator(ABC):
    @abstractmethod
    def start_payment(
        self,
        request: PaymentRequest,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> None:
        """Begin collecting payment. Must not block on the buyer."""
        ...

    @abstractmethod
    def verify_callback_signature(self, payload: str, signature: str) -> bool:
        """Verify that a callback payload really comes from the provider."""
        ...
