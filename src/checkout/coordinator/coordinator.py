"""Checkout Commit Coordinator — drives one checkout attempt end to end.

Flow:
    1. Validate the cart → StartCheckout (Cart_Validated), emit checkout_started
    2. ensure_holds → ConfirmCheckoutHolds (Holds_Confirmed)
       QuantityUnavailable → AbortCheckout, re-raised to the buyer
    3. confirm_holds, re-reserving once if a hold lapsed in between
    4. PlaceOrder → Order + dependents, attempt at Order_Created (one UoW)
    5a. Cash on delivery → finalize holds, AcceptCashOnDelivery, clear cart.
        If the holds no longer cover the order, it is rejected, the attempt
        aborted and HoldExpired raised.
    5b. Online → AwaitCheckoutPayment, hand off to the payment collaborator
        and return. The collaborator later calls exactly one of
        ``payment_succeeded`` (finalize, mark paid, clear cart) or
        ``payment_failed`` (mark failed, release holds). A payment that
        arrives after the stock is gone rejects the order as due a refund.

Every step is its own command and Unit of Work, so nothing is locked or left
open while the buyer is away paying. Holds stay active (not finalized) until
the payment outcome is known; a crash in between leaves stock reserved and
lets hold expiry reclaim it.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from functools import partial

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from checkout.cart.cart import CartLine, find_cart
from checkout.cart.management import ClearCart
from checkout.coordinator.attempt import CheckoutAttempt
from checkout.coordinator.signals import (
    CHECKOUT_STARTED,
    ORDER_COMPLETED,
    PAYMENT_FAILED,
    CheckoutSignals,
    get_signals,
)
from checkout.coordinator.transitions import (
    AbortCheckout,
    AwaitCheckoutPayment,
    CompleteCheckout,
    ConfirmCheckoutHolds,
    FailCheckoutPayment,
    StartCheckout,
)
from checkout.discounts.engine import Coupon, validate_coupon
from checkout.discounts.pricing import PriceQuote, quote
from checkout.discounts.source import get_discount_source
from checkout.errors import HoldExpired, OrderCommitFailure, PaymentFailure, QuantityUnavailable
from checkout.gateway import PaymentCollaborator, PaymentRequest, get_payment_collaborator
from checkout.holds.manager import HoldManager
from checkout.ledger.locks import order_locks
from checkout.order.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from checkout.order.payment import (
    AcceptCashOnDelivery,
    RecordPaymentFailure,
    RecordPaymentSuccess,
    RejectOrder,
    ShipOrder,
)
from checkout.order.placement import PlaceOrder
from checkout.settings import CheckoutSettings, get_settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutReceipt:
    checkout_id: str
    order_id: str | None
    order_number: str | None
    state: str
    total: Decimal
    payment_method: str


def _process(command):
    return current_domain.process(command, asynchronous=False)


class CheckoutCoordinator:
    def __init__(
        self,
        hold_manager: HoldManager | None = None,
        payments: PaymentCollaborator | None = None,
        signals: CheckoutSignals | None = None,
        settings: CheckoutSettings | None = None,
    ) -> None:
        self.hold_manager = hold_manager or HoldManager()
        self.ledger = self.hold_manager.ledger
        self._payments = payments
        self._signals = signals
        self._settings = settings

    @property
    def payments(self) -> PaymentCollaborator:
        return self._payments or get_payment_collaborator()

    @property
    def signals(self) -> CheckoutSignals:
        return self._signals or get_signals()

    @property
    def settings(self) -> CheckoutSettings:
        return self._settings or get_settings()

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    def _coupon(self, coupon_code, subtotal: Decimal) -> Coupon | None:
        if not coupon_code:
            return None
        coupon = get_discount_source().coupon_for(coupon_code)
        if coupon is None:
            raise ValidationError({"coupon_code": [f"Coupon {coupon_code} is not valid"]})
        validate_coupon(coupon, subtotal, datetime.now(UTC))
        return coupon

    def _quote(self, lines: list[CartLine], coupon_code) -> PriceQuote:
        subtotal = sum((line.line_total for line in lines), Decimal("0"))
        coupon = self._coupon(coupon_code, subtotal)
        return quote(lines, get_discount_source().active_offers(), coupon, self.settings)

    def preview(self, buyer_id, coupon_code=None) -> PriceQuote:
        """Price the buyer's cart exactly as ``commit`` would."""
        cart = find_cart(buyer_id)
        lines = cart.lines() if cart else []
        code = coupon_code or (cart.coupon_code if cart else None)
        return self._quote(lines, code)

    def _validate_cart(self, lines: list[CartLine], method: PaymentMethod, coupon_code) -> PriceQuote:
        if not lines:
            raise ValidationError({"cart": ["Your cart is empty"]})
        if method == PaymentMethod.CASH_ON_DELIVERY and not self.settings.cod_enabled:
            raise ValidationError({"payment_method": ["Cash on delivery is not available"]})

        price = self._quote(lines, coupon_code)
        minimum = self.settings.min_order_value
        if minimum and price.subtotal < minimum:
            raise ValidationError({"subtotal": [f"Minimum order value is {minimum}"]})
        return price

    # -------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------
    def commit(
        self,
        buyer_id,
        payment_method,
        shipping_address: dict,
        coupon_code=None,
        contact: dict | None = None,
        expected_total=None,
    ) -> CheckoutReceipt:
        """Run one checkout attempt for the buyer's current cart.

        Raises:
            ValidationError: The cart, coupon or address is not acceptable.
            QuantityUnavailable: Stock no longer covers the cart.
            HoldExpired: Holds lapsed and could not be re-established, before
                or after the order was placed. A placed order is rejected.
            OrderCommitFailure: The order could not be persisted.
            PaymentFailure: The payment collaborator could not be reached.
        """
        method = PaymentMethod(payment_method)
        cart = find_cart(buyer_id)
        lines = cart.lines() if cart else []
        coupon_code = coupon_code or (cart.coupon_code if cart else None)
        price = self._validate_cart(lines, method, coupon_code)

        checkout_id = _process(StartCheckout(buyer_id=buyer_id, payment_method=method.value))
        log = logger.bind(buyer_id=str(buyer_id), checkout_id=checkout_id)
        log.info("Checkout started", payment_method=method.value, total=str(price.total))
        self.signals.emit(
            CHECKOUT_STARTED,
            checkout_id=checkout_id,
            buyer_id=str(buyer_id),
            payment_method=method.value,
            total=str(price.total),
        )

        try:
            confirmation = self.hold_manager.ensure_holds(buyer_id, lines, checkout_id=checkout_id)
        except QuantityUnavailable:
            self._abort(checkout_id, "quantity_unavailable")
            raise
        _process(ConfirmCheckoutHolds(checkout_id=checkout_id, holds_expire_at=confirmation.expires_at))

        try:
            self.hold_manager.confirm_holds(buyer_id, lines, checkout_id=checkout_id)
        except HoldExpired as exc:
            log.info("Holds lapsed before order creation, re-reserving", units=exc.unit_ids)
            try:
                self.hold_manager.ensure_holds(buyer_id, lines, checkout_id=checkout_id)
                self.hold_manager.confirm_holds(buyer_id, lines, checkout_id=checkout_id)
            except (QuantityUnavailable, HoldExpired):
                self._abort(checkout_id, "holds_expired")
                raise

        try:
            order_id = _process(
                PlaceOrder(
                    buyer_id=buyer_id,
                    checkout_id=checkout_id,
                    payment_method=method.value,
                    lines=json.dumps([line.to_dict() for line in lines]),
                    shipping_address=json.dumps(shipping_address),
                    coupon_code=coupon_code,
                    expected_total=float(expected_total) if expected_total is not None else None,
                )
            )
        except ValidationError:
            self._abort(checkout_id, "order_rejected")
            raise
        except Exception as exc:
            log.error("Order commit failed", error=str(exc), exc_info=True)
            self._abort(checkout_id, "order_commit_failed")
            raise OrderCommitFailure(checkout_id=checkout_id) from exc

        order = current_domain.repository_for(Order).get(order_id)
        if method == PaymentMethod.CASH_ON_DELIVERY:
            self._complete_cash_on_delivery(order)
        else:
            self._hand_off_payment(order, contact or self._contact_from(shipping_address))

        attempt = current_domain.repository_for(CheckoutAttempt).get(checkout_id)
        return CheckoutReceipt(
            checkout_id=checkout_id,
            order_id=str(order.id),
            order_number=order.order_number,
            state=attempt.state,
            total=Decimal(str(order.pricing.total)),
            payment_method=method.value,
        )

    def _abort(self, checkout_id, reason):
        _process(AbortCheckout(checkout_id=checkout_id, reason=reason))
        logger.info("Checkout aborted", checkout_id=checkout_id, reason=reason)

    def _finalize_order(self, order: Order) -> int:
        """Finalize exactly what the order contains, or raise ``HoldExpired``."""
        return self.ledger.finalize(
            order.buyer_id,
            str(order.id),
            checkout_id=order.checkout_id,
            quantities=order.quantities,
        )

    def _reject_order(self, order: Order, reason, refund_due=False, payment_reference=None) -> None:
        order_id = str(order.id)
        _process(
            RejectOrder(
                order_id=order_id,
                reason=reason,
                refund_due=refund_due,
                payment_reference=payment_reference,
            )
        )
        self.ledger.release(
            order.buyer_id,
            order_id=order_id,
            checkout_id=order.checkout_id,
            unit_ids=order.unit_ids,
            reason="order_rejected",
        )
        logger.info("Order rejected", order_id=order_id, reason=reason, refund_due=refund_due)

    @staticmethod
    def _contact_from(shipping_address: dict) -> dict:
        return {"name": shipping_address.get("full_name"), "phone": shipping_address.get("phone")}

    def _complete_cash_on_delivery(self, order: Order) -> None:
        order_id = str(order.id)
        try:
            self._finalize_order(order)
        except HoldExpired:
            self._reject_order(order, reason="holds_expired")
            self._abort(order.checkout_id, "holds_expired")
            raise
        _process(AcceptCashOnDelivery(order_id=order_id))
        _process(CompleteCheckout(checkout_id=order.checkout_id))
        _process(ClearCart(buyer_id=order.buyer_id, order_id=order_id))

        logger.info("Cash on delivery order completed", order_id=order_id, order_number=order.order_number)
        self.signals.emit(
            ORDER_COMPLETED,
            order_id=order_id,
            order_number=order.order_number,
            buyer_id=str(order.buyer_id),
            payment_method=order.payment_method,
            total=order.pricing.total,
        )

    def _hand_off_payment(self, order: Order, contact: dict) -> None:
        order_id = str(order.id)
        _process(AwaitCheckoutPayment(checkout_id=order.checkout_id))

        request = PaymentRequest(
            order_id=order_id,
            order_number=order.order_number,
            amount=Decimal(str(order.pricing.total)),
            currency=order.pricing.currency,
            contact=contact,
        )
        try:
            self.payments.start_payment(
                request,
                on_success=partial(self.payment_succeeded, order_id),
                on_failure=partial(self.payment_failed, order_id),
            )
        except Exception as exc:
            reason = f"payment_unavailable: {exc}"
            logger.warning("Payment hand-off failed", order_id=order_id, error=str(exc))
            if self.payment_failed(order_id, reason):
                raise PaymentFailure(reason, order_id=order_id, order_number=order.order_number) from exc
            # An outcome arrived before the collaborator failed; it stands
            logger.warning("Hand-off error after payment outcome ignored", order_id=order_id)
            return

        logger.info("Payment handed off", order_id=order_id, amount=str(request.amount))

    # -------------------------------------------------------------------
    # Payment callbacks
    # -------------------------------------------------------------------
    def payment_succeeded(self, order_id, reference=None) -> bool:
        """Success callback. Returns False for duplicates and late conflicting outcomes."""
        order_id = str(order_id)
        with order_locks.hold([order_id]):
            order = current_domain.repository_for(Order).get(order_id)
            if not self._awaiting_payment(order, outcome="success"):
                return False

            try:
                self._finalize_order(order)
            except HoldExpired as exc:
                self._reject_order(order, reason="stock_unavailable", refund_due=True, payment_reference=reference)
                if order.checkout_id:
                    _process(FailCheckoutPayment(checkout_id=order.checkout_id, reason="stock_unavailable"))
                lapsed_units = exc.unit_ids
            else:
                lapsed_units = None
                _process(RecordPaymentSuccess(order_id=order_id, reference=reference))
                if order.checkout_id:
                    _process(CompleteCheckout(checkout_id=order.checkout_id))
                _process(ClearCart(buyer_id=order.buyer_id, order_id=order_id))

        if lapsed_units is not None:
            logger.warning(
                "Paid order rejected, its holds lapsed and the stock is gone",
                order_id=order_id,
                reference=reference,
                units=lapsed_units,
            )
            self.signals.emit(
                PAYMENT_FAILED,
                order_id=order_id,
                order_number=order.order_number,
                buyer_id=str(order.buyer_id),
                reason="stock_unavailable",
                refund_due=True,
            )
            return True

        logger.info("Online payment succeeded", order_id=order_id, reference=reference)
        self.signals.emit(
            ORDER_COMPLETED,
            order_id=order_id,
            order_number=order.order_number,
            buyer_id=str(order.buyer_id),
            payment_method=order.payment_method,
            total=order.pricing.total,
        )
        return True

    def payment_failed(self, order_id, reason) -> bool:
        """Failure callback (declined, abandoned or unreachable). Releases the order's holds."""
        order_id = str(order_id)
        with order_locks.hold([order_id]):
            order = current_domain.repository_for(Order).get(order_id)
            if not self._awaiting_payment(order, outcome="failure"):
                return False

            _process(RecordPaymentFailure(order_id=order_id, reason=reason))
            self.ledger.release(
                order.buyer_id,
                order_id=order_id,
                checkout_id=order.checkout_id,
                unit_ids=order.unit_ids,
                reason="payment_failed",
            )
            if order.checkout_id:
                _process(FailCheckoutPayment(checkout_id=order.checkout_id, reason=reason))

        logger.info("Online payment failed", order_id=order_id, reason=reason)
        self.signals.emit(
            PAYMENT_FAILED,
            order_id=order_id,
            order_number=order.order_number,
            buyer_id=str(order.buyer_id),
            reason=reason,
        )
        return True

    @staticmethod
    def _awaiting_payment(order: Order, outcome: str) -> bool:
        if PaymentMethod(order.payment_method) != PaymentMethod.ONLINE:
            logger.warning("Payment outcome for a cash-on-delivery order ignored", order_id=str(order.id))
            return False
        if OrderStatus(order.status) == OrderStatus.NEW:
            return True

        expected = PaymentStatus.PAID if outcome == "success" else PaymentStatus.FAILED
        if PaymentStatus(order.payment_status) == expected:
            logger.debug("Duplicate payment outcome ignored", order_id=str(order.id), outcome=outcome)
        else:
            logger.warning(
                "Conflicting payment outcome ignored",
                order_id=str(order.id),
                outcome=outcome,
                payment_status=order.payment_status,
            )
        return False

    # -------------------------------------------------------------------
    # Shipment
    # -------------------------------------------------------------------
    def ship(self, order_id) -> int:
        """Mark a confirmed order shipped and deduct its stock. Returns the quantity deducted."""
        order_id = str(order_id)
        order = current_domain.repository_for(Order).get(order_id)
        _process(ShipOrder(order_id=order_id))
        return self.ledger.commit_shipment(order_id, unit_ids=order.unit_ids)
