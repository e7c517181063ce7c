"""FastAPI routes for the Checkout domain — stock, holds, carts, checkout and orders."""

import json

import structlog
from fastapi import APIRouter, Header, HTTPException
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    AddCartItemRequest,
    ApplyCouponRequest,
    AvailabilityResponse,
    CartLineResponse,
    CartResponse,
    ChangeQuantityRequest,
    CheckoutReceiptResponse,
    CommitCheckoutRequest,
    FinalizeRequest,
    OrderLineResponse,
    OrderResponse,
    PaymentCallbackRequest,
    PaymentCallbackResponse,
    PriceQuoteResponse,
    QuantityIssueResponse,
    QuantityResponse,
    ReceiveStockRequest,
    RegisterStockUnitRequest,
    ReleaseRequest,
    ReserveRequest,
    ReserveResponse,
    ShipmentResponse,
    StockUnitIdResponse,
    SweepResponse,
)
from checkout.cart.cart import find_cart
from checkout.cart.management import AddCartItem, ApplyCartCoupon, ChangeCartItemQuantity, RemoveCartItem
from checkout.coordinator.coordinator import CheckoutCoordinator
from checkout.discounts.pricing import PriceQuote
from checkout.errors import QuantityUnavailable
from checkout.gateway import get_payment_collaborator
from checkout.holds.manager import HoldManager
from checkout.ledger.service import StockLedger
from checkout.order.order import Order

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Stock Ledger routers
# ---------------------------------------------------------------------------
stock_router = APIRouter(prefix="/stock-units", tags=["stock"])
hold_router = APIRouter(prefix="/holds", tags=["holds"])
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@stock_router.post("", status_code=201, response_model=StockUnitIdResponse)
async def register_stock_unit(body: RegisterStockUnitRequest) -> StockUnitIdResponse:
    unit_id = StockLedger().register(
        product_id=body.product_id,
        variant_id=body.variant_id,
        sku=body.sku,
        name=body.name,
        available_quantity=body.available_quantity,
    )
    return StockUnitIdResponse(unit_id=unit_id)


@stock_router.put("/{unit_id}/receive", response_model=AvailabilityResponse)
async def receive_stock(unit_id: str, body: ReceiveStockRequest) -> AvailabilityResponse:
    ledger = StockLedger()
    ledger.receive(unit_id, body.quantity, reference=body.reference)
    return _availability(ledger, unit_id)


@stock_router.get("/{unit_id}/availability", response_model=AvailabilityResponse)
async def get_availability(unit_id: str) -> AvailabilityResponse:
    return _availability(StockLedger(), unit_id)


def _availability(ledger: StockLedger, unit_id: str) -> AvailabilityResponse:
    unit = ledger.get(unit_id)
    return AvailabilityResponse(
        unit_id=str(unit.id),
        available_quantity=unit.available_quantity,
        held_quantity=unit.held_quantity(),
        effective_available=unit.effective_available(),
    )


@hold_router.post("/reserve", response_model=ReserveResponse)
async def reserve(body: ReserveRequest) -> ReserveResponse:
    expires_at = StockLedger().reserve(
        body.buyer_id,
        [item.model_dump() for item in body.items],
        checkout_id=body.checkout_id,
    )
    return ReserveResponse(buyer_id=body.buyer_id, expires_at=expires_at.isoformat())


@hold_router.post("/finalize", response_model=QuantityResponse)
async def finalize(body: FinalizeRequest) -> QuantityResponse:
    quantity = StockLedger().finalize(body.buyer_id, body.order_id, checkout_id=body.checkout_id)
    return QuantityResponse(quantity=quantity)


@hold_router.post("/release", response_model=QuantityResponse)
async def release(body: ReleaseRequest) -> QuantityResponse:
    quantity = StockLedger().release(
        body.buyer_id,
        order_id=body.order_id,
        checkout_id=body.checkout_id,
        reason=body.reason,
    )
    return QuantityResponse(quantity=quantity)


@maintenance_router.post("/sweep-holds", response_model=SweepResponse)
async def sweep_holds() -> SweepResponse:
    return SweepResponse(expired=StockLedger().sweep())


# ---------------------------------------------------------------------------
# Cart router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


def _cart_response(buyer_id: str, revalidate: bool = False) -> CartResponse:
    """Current cart, re-validating the buyer's holds when they are mid-checkout."""
    holds_expire_at = None
    issues: list[QuantityIssueResponse] = []
    if revalidate:
        try:
            confirmation = HoldManager().revalidate(buyer_id)
        except QuantityUnavailable as exc:
            issues = [QuantityIssueResponse(**issue.to_dict()) for issue in exc.issues]
        else:
            if confirmation is not None and confirmation.expires_at is not None:
                holds_expire_at = confirmation.expires_at.isoformat()

    cart = find_cart(buyer_id)
    lines = cart.lines() if cart else []
    return CartResponse(
        buyer_id=buyer_id,
        items=[
            CartLineResponse(
                unit_id=line.unit_id,
                product_id=line.product_id,
                name=line.display_name,
                unit_price=str(line.unit_price),
                quantity=line.quantity,
                line_total=str(line.line_total),
            )
            for line in lines
        ],
        coupon_code=cart.coupon_code if cart else None,
        holds_expire_at=holds_expire_at,
        issues=issues,
    )


@cart_router.get("/{buyer_id}", response_model=CartResponse)
async def get_cart(buyer_id: str) -> CartResponse:
    return _cart_response(buyer_id)


@cart_router.post("/{buyer_id}/items", response_model=CartResponse)
async def add_cart_item(buyer_id: str, body: AddCartItemRequest) -> CartResponse:
    command = AddCartItem(
        buyer_id=buyer_id,
        unit_id=body.unit_id,
        product_id=body.product_id,
        name=body.name,
        unit_price=body.unit_price,
        quantity=body.quantity,
        variant_id=body.variant_id,
        variant_name=body.variant_name,
        category_id=body.category_id,
        sku=body.sku,
        bundle_id=body.bundle_id,
        bundle_name=body.bundle_name,
    )
    current_domain.process(command, asynchronous=False)
    return _cart_response(buyer_id, revalidate=True)


@cart_router.put("/{buyer_id}/items/{unit_id}", response_model=CartResponse)
async def change_cart_item_quantity(buyer_id: str, unit_id: str, body: ChangeQuantityRequest) -> CartResponse:
    command = ChangeCartItemQuantity(buyer_id=buyer_id, unit_id=unit_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return _cart_response(buyer_id, revalidate=True)


@cart_router.delete("/{buyer_id}/items/{unit_id}", response_model=CartResponse)
async def remove_cart_item(buyer_id: str, unit_id: str) -> CartResponse:
    command = RemoveCartItem(buyer_id=buyer_id, unit_id=unit_id)
    current_domain.process(command, asynchronous=False)
    return _cart_response(buyer_id, revalidate=True)


@cart_router.put("/{buyer_id}/coupon", response_model=CartResponse)
async def apply_coupon(buyer_id: str, body: ApplyCouponRequest) -> CartResponse:
    command = ApplyCartCoupon(buyer_id=buyer_id, coupon_code=body.coupon_code)
    current_domain.process(command, asynchronous=False)
    return _cart_response(buyer_id)


# ---------------------------------------------------------------------------
# Checkout router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


def _quote_response(price: PriceQuote) -> PriceQuoteResponse:
    return PriceQuoteResponse(
        subtotal=str(price.subtotal),
        offer_discount=str(price.discount.offer_total),
        coupon_discount=str(price.discount.coupon_discount),
        discount_total=str(price.discount_total),
        shipping_charge=str(price.shipping_charge),
        total=str(price.total),
        currency=price.currency,
        coupon_code=price.coupon.code if price.coupon else None,
    )


@checkout_router.get("/{buyer_id}/preview", response_model=PriceQuoteResponse)
async def preview(buyer_id: str, coupon_code: str | None = None) -> PriceQuoteResponse:
    return _quote_response(CheckoutCoordinator().preview(buyer_id, coupon_code=coupon_code))


@checkout_router.post("/{buyer_id}/commit", status_code=201, response_model=CheckoutReceiptResponse)
async def commit(buyer_id: str, body: CommitCheckoutRequest) -> CheckoutReceiptResponse:
    receipt = CheckoutCoordinator().commit(
        buyer_id,
        payment_method=body.payment_method,
        shipping_address=body.shipping_address.model_dump(),
        coupon_code=body.coupon_code,
        contact=body.contact,
        expected_total=body.expected_total,
    )
    return CheckoutReceiptResponse(
        checkout_id=receipt.checkout_id,
        order_id=receipt.order_id,
        order_number=receipt.order_number,
        state=receipt.state,
        total=str(receipt.total),
        payment_method=receipt.payment_method,
    )


@checkout_router.post("/payments/{order_id}/callback", response_model=PaymentCallbackResponse)
async def payment_callback(
    order_id: str,
    body: PaymentCallbackRequest,
    x_gateway_signature: str = Header(default=""),
) -> PaymentCallbackResponse:
    """Payment provider callback: exactly one outcome per order, duplicates are no-ops."""
    collaborator = get_payment_collaborator()
    if not collaborator.verify_callback_signature(json.dumps(body.model_dump()), x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid callback signature")

    coordinator = CheckoutCoordinator()
    if body.outcome == "success":
        applied = coordinator.payment_succeeded(order_id, reference=body.reference)
    else:
        applied = coordinator.payment_failed(order_id, body.reason or "payment_failed")
    return PaymentCallbackResponse(status="processed", applied=applied)


# ---------------------------------------------------------------------------
# Order router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    order = current_domain.repository_for(Order).get(order_id)
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        buyer_id=str(order.buyer_id),
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        delivery_status=order.delivery.status,
        subtotal=order.pricing.subtotal,
        discount_total=order.pricing.discount_total,
        shipping_charge=order.pricing.shipping_charge,
        total=order.pricing.total,
        currency=order.pricing.currency,
        coupon_code=order.coupon.code if order.coupon else None,
        rejection_reason=order.rejection_reason,
        items=[
            OrderLineResponse(
                unit_id=str(item.unit_id),
                name=item.name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                line_total=item.line_total,
                offer_discount=item.offer_discount,
            )
            for item in order.items
        ],
    )


@order_router.post("/{order_id}/ship", response_model=ShipmentResponse)
async def ship_order(order_id: str) -> ShipmentResponse:
    deducted = CheckoutCoordinator().ship(order_id)
    return ShipmentResponse(order_id=order_id, quantity_deducted=deducted)
