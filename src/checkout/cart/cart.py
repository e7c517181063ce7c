"""BuyerCart aggregate (CQRS) — the buyer's current selection of stock units.

Cart CRUD belongs to the storefront; this aggregate carries just enough of it
for checkout: the lines that holds are placed for, the price snapshot each line
was added at, the coupon the buyer entered, and the ``clear`` that closes a
successful checkout.
"""

from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from decimal import Decimal

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String
from protean.utils.globals import current_domain

from checkout.cart.events import (
    CartCleared,
    CartCouponApplied,
    CartItemAdded,
    CartItemQuantityChanged,
    CartItemRemoved,
)
from checkout.domain import checkout


@dataclass(frozen=True)
class CartLine:
    """Read-only view of one cart line, handed to the hold manager and the pricer."""

    unit_id: str
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    variant_id: str | None = None
    variant_name: str | None = None
    category_id: str | None = None
    sku: str | None = None
    bundle_id: str | None = None
    bundle_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.bundle_name or self.name

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        data = asdict(self)
        data["unit_price"] = str(self.unit_price)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(**{**data, "unit_price": Decimal(str(data["unit_price"]))})


@checkout.entity(part_of="BuyerCart")
class CartItem:
    unit_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    category_id = Identifier()
    name = String(required=True, max_length=255)
    variant_name = String(max_length=255)
    sku = String(max_length=50)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    bundle_id = Identifier()
    bundle_name = String(max_length=255)
    added_at = DateTime()


@checkout.aggregate
class BuyerCart:
    buyer_id = Identifier(required=True)
    items = HasMany(CartItem)
    coupon_code = String(max_length=50)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, buyer_id):
        now = datetime.now(UTC)
        return cls(buyer_id=buyer_id, created_at=now, updated_at=now)

    def _item_for(self, unit_id):
        return next((i for i in self.items if str(i.unit_id) == str(unit_id)), None)

    def add_item(self, unit_id, product_id, name, unit_price, quantity, **details):
        """Add a unit, or add to the quantity of the line already holding it."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        now = datetime.now(UTC)
        existing = self._item_for(unit_id)
        if existing:
            existing.quantity += quantity
            existing.unit_price = unit_price
        else:
            self.add_items(
                CartItem(
                    unit_id=unit_id,
                    product_id=product_id,
                    name=name,
                    unit_price=unit_price,
                    quantity=quantity,
                    added_at=now,
                    **details,
                )
            )
        self.updated_at = now

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                buyer_id=str(self.buyer_id),
                unit_id=str(unit_id),
                quantity=quantity,
            )
        )

    def change_quantity(self, unit_id, quantity):
        """Set a line's quantity; zero removes the line."""
        item = self._item_for(unit_id)
        if item is None:
            raise ValidationError({"unit_id": ["Unit is not in the cart"]})
        if quantity == 0:
            self.remove_item(unit_id)
            return
        if quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})

        previous = item.quantity
        item.quantity = quantity
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartItemQuantityChanged(
                cart_id=str(self.id),
                unit_id=str(unit_id),
                previous_quantity=previous,
                new_quantity=quantity,
            )
        )

    def remove_item(self, unit_id):
        item = self._item_for(unit_id)
        if item is None:
            raise ValidationError({"unit_id": ["Unit is not in the cart"]})

        self.remove_items(item)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartItemRemoved(cart_id=str(self.id), unit_id=str(unit_id)))

    def apply_coupon(self, coupon_code):
        code = (coupon_code or "").strip().upper()
        if not code:
            raise ValidationError({"coupon_code": ["Coupon code is required"]})
        self.coupon_code = code
        self.updated_at = datetime.now(UTC)
        self.raise_(CartCouponApplied(cart_id=str(self.id), coupon_code=code))

    def remove_coupon(self):
        self.coupon_code = None
        self.updated_at = datetime.now(UTC)

    def clear(self, order_id=None):
        removed = len(self.items)
        for item in list(self.items):
            self.remove_items(item)
        self.coupon_code = None
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartCleared(
                cart_id=str(self.id),
                buyer_id=str(self.buyer_id),
                order_id=str(order_id) if order_id else None,
                items_removed=removed,
            )
        )

    def lines(self) -> list[CartLine]:
        return [
            CartLine(
                unit_id=str(item.unit_id),
                product_id=str(item.product_id),
                name=item.name,
                unit_price=Decimal(str(item.unit_price)),
                quantity=item.quantity,
                variant_id=str(item.variant_id) if item.variant_id else None,
                variant_name=item.variant_name,
                category_id=str(item.category_id) if item.category_id else None,
                sku=item.sku,
                bundle_id=str(item.bundle_id) if item.bundle_id else None,
                bundle_name=item.bundle_name,
            )
            for item in self.items
        ]


def find_cart(buyer_id) -> BuyerCart | None:
    """The buyer's cart, or None when they have never added anything."""
    carts = current_domain.repository_for(BuyerCart)._dao.query.filter(buyer_id=str(buyer_id)).all().items
    return carts[0] if carts else None
