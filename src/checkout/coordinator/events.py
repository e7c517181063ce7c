"""Domain events for the CheckoutAttempt aggregate."""

from protean.fields import DateTime, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="CheckoutAttempt")
class CheckoutStarted:
    """A buyer's cart passed validation and a checkout attempt began."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    payment_method = String(required=True)
    started_at = DateTime(required=True)


@checkout.event(part_of="CheckoutAttempt")
class CheckoutAdvanced:
    """The attempt moved to its next state."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    from_state = String(required=True)
    to_state = String(required=True)
    order_id = Identifier()
    reason = String()
    occurred_at = DateTime(required=True)
