"""Domain events for the BuyerCart aggregate."""

from protean.fields import Identifier, Integer, String

from checkout.domain import checkout


@checkout.event(part_of="BuyerCart")
class CartItemAdded:
    """A unit was added to the buyer's cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    unit_id = Identifier(required=True)
    quantity = Integer(required=True)


@checkout.event(part_of="BuyerCart")
class CartItemQuantityChanged:
    """The quantity of a cart line was changed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    unit_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@checkout.event(part_of="BuyerCart")
class CartItemRemoved:
    """A line was removed from the buyer's cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    unit_id = Identifier(required=True)


@checkout.event(part_of="BuyerCart")
class CartCouponApplied:
    """A coupon code was attached to the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)


@checkout.event(part_of="BuyerCart")
class CartCleared:
    """The cart was emptied after an order completed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    order_id = Identifier()
    items_removed = Integer(required=True)
