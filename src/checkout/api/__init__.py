"""Checkout domain API package."""

from checkout.api.context import request_context_middleware
from checkout.api.errors import register_error_handlers
from checkout.api.routes import (
    cart_router,
    checkout_router,
    hold_router,
    maintenance_router,
    order_router,
    stock_router,
)

__all__ = [
    "cart_router",
    "checkout_router",
    "hold_router",
    "maintenance_router",
    "order_router",
    "register_error_handlers",
    "request_context_middleware",
    "stock_router",
]
