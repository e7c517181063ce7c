"""Store checkout settings.

Read from the environment once and cached. Tests swap them with
``set_settings()`` / ``reset_settings()``:

    CHECKOUT_HOLD_WINDOW_SECONDS      hold lifetime (default 180)
    CHECKOUT_FREE_SHIPPING_THRESHOLD  subtotal at which shipping is waived (500)
    CHECKOUT_DEFAULT_SHIPPING_CHARGE  flat shipping charge otherwise (50)
    CHECKOUT_COD_ENABLED              whether cash on delivery is offered (true)
    CHECKOUT_MIN_ORDER_VALUE          minimum subtotal to place an order (0)
    CHECKOUT_CURRENCY                 ISO currency code (INR)
"""

import os
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CheckoutSettings:
    hold_window_seconds: int = 180
    free_shipping_threshold: Decimal = Decimal("500")
    default_shipping_charge: Decimal = Decimal("50")
    cod_enabled: bool = True
    min_order_value: Decimal = Decimal("0")
    currency: str = "INR"

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        defaults = cls()
        return cls(
            hold_window_seconds=int(os.environ.get("CHECKOUT_HOLD_WINDOW_SECONDS", defaults.hold_window_seconds)),
            free_shipping_threshold=Decimal(
                os.environ.get("CHECKOUT_FREE_SHIPPING_THRESHOLD", defaults.free_shipping_threshold)
            ),
            default_shipping_charge=Decimal(
                os.environ.get("CHECKOUT_DEFAULT_SHIPPING_CHARGE", defaults.default_shipping_charge)
            ),
            cod_enabled=os.environ.get("CHECKOUT_COD_ENABLED", "true").lower() in ("1", "true", "yes"),
            min_order_value=Decimal(os.environ.get("CHECKOUT_MIN_ORDER_VALUE", defaults.min_order_value)),
            currency=os.environ.get("CHECKOUT_CURRENCY", defaults.currency),
        )


_current_settings: CheckoutSettings | None = None


def get_settings() -> CheckoutSettings:
    """Return the active checkout settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = CheckoutSettings.from_env()
    return _current_settings


def set_settings(settings: CheckoutSettings) -> None:
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    global _current_settings
    _current_settings = None
