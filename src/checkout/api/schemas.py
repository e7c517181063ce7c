"""Pydantic request/response schemas for the Checkout API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

# --- Stock Ledger ---


class RegisterStockUnitRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-kurta-001",
                    "variant_id": "var-kurta-001-m",
                    "sku": "KURTA-IND-M",
                    "name": "Indigo Kurta (M)",
                    "available_quantity": 25,
                }
            ]
        }
    }

    product_id: str
    variant_id: str | None = None
    sku: str = Field(..., max_length=50)
    name: str | None = Field(None, max_length=255)
    available_quantity: int = Field(0, ge=0)


class ReceiveStockRequest(BaseModel):
    quantity: int = Field(..., ge=1)
    reference: str | None = Field(None, max_length=255)


class HoldRequestLine(BaseModel):
    unit_id: str
    quantity: int


class ReserveRequest(BaseModel):
    buyer_id: str
    items: list[HoldRequestLine] = Field(..., min_length=1)
    checkout_id: str | None = None


class FinalizeRequest(BaseModel):
    buyer_id: str
    order_id: str
    checkout_id: str | None = None


class ReleaseRequest(BaseModel):
    buyer_id: str
    order_id: str | None = None
    checkout_id: str | None = None
    reason: str = Field("released", max_length=100)


class StockUnitIdResponse(BaseModel):
    unit_id: str


class AvailabilityResponse(BaseModel):
    unit_id: str
    available_quantity: int
    held_quantity: int
    effective_available: int


class ReserveResponse(BaseModel):
    buyer_id: str
    expires_at: str


class QuantityResponse(BaseModel):
    quantity: int


class SweepResponse(BaseModel):
    expired: int


# --- Cart ---


class AddCartItemRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "unit_id": "unit-001",
                    "product_id": "prod-kurta-001",
                    "name": "Indigo Kurta",
                    "unit_price": 999.0,
                    "quantity": 2,
                    "variant_name": "M",
                    "category_id": "cat-ethnic",
                }
            ]
        }
    }

    unit_id: str
    product_id: str
    name: str = Field(..., max_length=255)
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    variant_id: str | None = None
    variant_name: str | None = Field(None, max_length=255)
    category_id: str | None = None
    sku: str | None = Field(None, max_length=50)
    bundle_id: str | None = None
    bundle_name: str | None = Field(None, max_length=255)


class ChangeQuantityRequest(BaseModel):
    quantity: int = Field(..., ge=0)


class ApplyCouponRequest(BaseModel):
    coupon_code: str = Field(..., max_length=50)


class CartLineResponse(BaseModel):
    unit_id: str
    product_id: str
    name: str
    unit_price: str
    quantity: int
    line_total: str


class QuantityIssueResponse(BaseModel):
    unit_id: str
    name: str | None = None
    requested: int
    available: int


class CartResponse(BaseModel):
    buyer_id: str
    items: list[CartLineResponse] = []
    coupon_code: str | None = None
    holds_expire_at: str | None = None
    issues: list[QuantityIssueResponse] = []


# --- Checkout ---


class ShippingAddressRequest(BaseModel):
    full_name: str = Field(..., max_length=255)
    phone: str = Field(..., max_length=20)
    line1: str = Field(..., max_length=255)
    line2: str | None = Field(None, max_length=255)
    city: str = Field(..., max_length=100)
    state: str = Field(..., max_length=100)
    postal_code: str = Field(..., max_length=20)
    landmark: str | None = Field(None, max_length=255)


class CommitCheckoutRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "payment_method": "Cash_On_Delivery",
                    "shipping_address": {
                        "full_name": "Asha Rao",
                        "phone": "+91-98450-00000",
                        "line1": "12 MG Road",
                        "city": "Bengaluru",
                        "state": "Karnataka",
                        "postal_code": "560001",
                    },
                    "coupon_code": "SAVE50",
                }
            ]
        }
    }

    payment_method: Literal["Cash_On_Delivery", "Online"]
    shipping_address: ShippingAddressRequest
    coupon_code: str | None = Field(None, max_length=50)
    contact: dict | None = None
    expected_total: float | None = None


class PriceQuoteResponse(BaseModel):
    subtotal: str
    offer_discount: str
    coupon_discount: str
    discount_total: str
    shipping_charge: str
    total: str
    currency: str
    coupon_code: str | None = None


class CheckoutReceiptResponse(BaseModel):
    checkout_id: str
    order_id: str | None = None
    order_number: str | None = None
    state: str
    total: str
    payment_method: str


class PaymentCallbackRequest(BaseModel):
    outcome: Literal["success", "failure"]
    reference: str | None = Field(None, max_length=255)
    reason: str | None = Field(None, max_length=500)


class PaymentCallbackResponse(BaseModel):
    status: str
    applied: bool


# --- Orders ---


class OrderLineResponse(BaseModel):
    unit_id: str
    name: str
    unit_price: float
    quantity: int
    line_total: float
    offer_discount: float = 0.0


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    buyer_id: str
    status: str
    payment_status: str
    payment_method: str
    delivery_status: str
    subtotal: float
    discount_total: float
    shipping_charge: float
    total: float
    currency: str
    coupon_code: str | None = None
    rejection_reason: str | None = None
    items: list[OrderLineResponse] = []


class ShipmentResponse(BaseModel):
    order_id: str
    quantity_deducted: int
