"""Payment collaborator factory.

Provides get_payment_collaborator() / set_payment_collaborator() to swap
implementations; FakePaymentCollaborator is the default.
"""

from checkout.gateway.fake_adapter import FakePaymentCollaborator
from checkout.gateway.port import PaymentCollaborator, PaymentRequest

_current_collaborator: PaymentCollaborator | None = None


def get_payment_collaborator() -> PaymentCollaborator:
    """Return the current payment collaborator. Defaults to FakePaymentCollaborator."""
    global _current_collaborator
    if _current_collaborator is None:
        _current_collaborator = FakePaymentCollaborator()
    return _current_collaborator


def set_payment_collaborator(collaborator: PaymentCollaborator) -> None:
    """Override the active payment collaborator (useful for tests)."""
    global _current_collaborator
    _current_collaborator = collaborator


def reset_payment_collaborator() -> None:
    global _current_collaborator
    _current_collaborator = None


__all__ = [
    "PaymentCollaborator",
    "PaymentRequest",
    "get_payment_collaborator",
    "reset_payment_collaborator",
    "set_payment_collaborator",
]
