"""Checkout error taxonomy.

Buyer-recoverable failures (``QuantityUnavailable``, ``HoldExpired``) are
``ValidationError`` subclasses so they carry the usual ``{field: [messages]}``
payload. Commit and payment failures derive from ``CheckoutError``.
"""

from dataclasses import asdict, dataclass

from protean.exceptions import ValidationError


@dataclass(frozen=True)
class QuantityIssue:
    """One cart line that exceeds what is free for the buyer."""

    unit_id: str
    requested: int
    available: int
    name: str | None = None

    @property
    def shortfall(self) -> int:
        return self.requested - self.available

    def to_dict(self) -> dict:
        return asdict(self)


class QuantityUnavailable(ValidationError):
    """A reserve batch failed because one or more units lacked stock."""

    def __init__(self, issues: list[QuantityIssue]):
        self.issues = list(issues)
        super().__init__(
            {
                "quantity": [
                    f"{issue.name or issue.unit_id}: only {issue.available} available, {issue.requested} requested"
                    for issue in self.issues
                ]
            }
        )


class HoldExpired(ValidationError):
    """A hold lapsed and its stock could not be secured for the order."""

    def __init__(self, unit_ids: list[str]):
        self.unit_ids = list(unit_ids)
        super().__init__({"holds": [f"Hold on {unit_id} has expired" for unit_id in self.unit_ids]})


class CheckoutError(Exception):
    """Base class for failures surfaced at the checkout boundary."""


class OrderCommitFailure(CheckoutError):
    """The order and its dependent records could not be persisted."""

    def __init__(self, message: str = "Order could not be placed, please retry", checkout_id: str | None = None):
        super().__init__(message)
        self.checkout_id = checkout_id


class PaymentFailure(CheckoutError):
    """The payment collaborator reported failure or could not be reached."""

    def __init__(self, reason: str, order_id: str | None = None, order_number: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.order_id = order_id
        self.order_number = order_number
