"""Cart changes — commands and handler.

Carts are looked up by buyer; the first ``AddCartItem`` for a buyer creates it.
"""

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.cart.cart import BuyerCart, find_cart
from checkout.domain import checkout


@checkout.command(part_of="BuyerCart")
class AddCartItem:
    buyer_id = Identifier(required=True)
    unit_id = Identifier(required=True)
    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    variant_id = Identifier()
    variant_name = String(max_length=255)
    category_id = Identifier()
    sku = String(max_length=50)
    bundle_id = Identifier()
    bundle_name = String(max_length=255)


@checkout.command(part_of="BuyerCart")
class ChangeCartItemQuantity:
    buyer_id = Identifier(required=True)
    unit_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=0)


@checkout.command(part_of="BuyerCart")
class RemoveCartItem:
    buyer_id = Identifier(required=True)
    unit_id = Identifier(required=True)


@checkout.command(part_of="BuyerCart")
class ApplyCartCoupon:
    buyer_id = Identifier(required=True)
    coupon_code = String(required=True, max_length=50)


@checkout.command(part_of="BuyerCart")
class ClearCart:
    """Empty the cart once its order is secured."""

    buyer_id = Identifier(required=True)
    order_id = Identifier()


def _existing_cart(buyer_id) -> BuyerCart:
    cart = find_cart(buyer_id)
    if cart is None:
        raise ObjectNotFoundError(f"No cart for buyer {buyer_id}")
    return cart


@checkout.command_handler(part_of=BuyerCart)
class CartHandler:
    @handle(AddCartItem)
    def add_cart_item(self, command):
        repo = current_domain.repository_for(BuyerCart)
        cart = find_cart(command.buyer_id) or BuyerCart.create(buyer_id=command.buyer_id)
        cart.add_item(
            unit_id=command.unit_id,
            product_id=command.product_id,
            name=command.name,
            unit_price=command.unit_price,
            quantity=command.quantity,
            variant_id=command.variant_id,
            variant_name=command.variant_name,
            category_id=command.category_id,
            sku=command.sku,
            bundle_id=command.bundle_id,
            bundle_name=command.bundle_name,
        )
        repo.add(cart)
        return str(cart.id)

    @handle(ChangeCartItemQuantity)
    def change_cart_item_quantity(self, command):
        cart = _existing_cart(command.buyer_id)
        cart.change_quantity(command.unit_id, command.quantity)
        current_domain.repository_for(BuyerCart).add(cart)

    @handle(RemoveCartItem)
    def remove_cart_item(self, command):
        cart = _existing_cart(command.buyer_id)
        cart.remove_item(command.unit_id)
        current_domain.repository_for(BuyerCart).add(cart)

    @handle(ApplyCartCoupon)
    def apply_cart_coupon(self, command):
        cart = _existing_cart(command.buyer_id)
        cart.apply_coupon(command.coupon_code)
        current_domain.repository_for(BuyerCart).add(cart)

    @handle(ClearCart)
    def clear_cart(self, command):
        cart = find_cart(command.buyer_id)
        if cart is None or not cart.items:
            return 0
        removed = len(cart.items)
        cart.clear(order_id=command.order_id)
        current_domain.repository_for(BuyerCart).add(cart)
        return removed
