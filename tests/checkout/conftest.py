import os
from decimal import Decimal

import pytest


@pytest.fixture(scope="session")
def _checkout_domain(request):
    """Initialize the checkout domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from checkout.domain import checkout

    checkout.init()
    return checkout


@pytest.fixture(scope="session", autouse=True)
def setup_db(_checkout_domain):
    from checkout.utils.db import drop_db, setup_db

    setup_db(_checkout_domain)

    yield

    drop_db(_checkout_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_checkout_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _checkout_domain.domain_context()
    ctx.push()

    yield

    from checkout.coordinator.signals import reset_signals
    from checkout.discounts.source import reset_discount_source
    from checkout.gateway import reset_payment_collaborator
    from checkout.ledger.locks import order_locks, unit_locks
    from checkout.settings import reset_settings
    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()

    reset_payment_collaborator()
    reset_discount_source()
    reset_settings()
    reset_signals()
    unit_locks.clear()
    order_locks.clear()
    ctx.pop()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture()
def settings():
    """Default store settings: free shipping from 500, else 50; COD on."""
    from checkout.settings import CheckoutSettings, set_settings

    current = CheckoutSettings(
        hold_window_seconds=180,
        free_shipping_threshold=Decimal("500"),
        default_shipping_charge=Decimal("50"),
        cod_enabled=True,
        min_order_value=Decimal("0"),
        currency="INR",
    )
    set_settings(current)
    return current


@pytest.fixture()
def discounts():
    from checkout.discounts.source import InMemoryDiscountSource, set_discount_source

    source = InMemoryDiscountSource()
    set_discount_source(source)
    return source


@pytest.fixture()
def payments():
    from checkout.gateway import set_payment_collaborator
    from checkout.gateway.fake_adapter import FakePaymentCollaborator

    collaborator = FakePaymentCollaborator()
    set_payment_collaborator(collaborator)
    return collaborator


class RecordingSink:
    def __init__(self):
        self.received = []

    def send(self, name, payload):
        self.received.append((name, payload))

    def names(self):
        return [name for name, _ in self.received]


@pytest.fixture()
def signal_sink():
    from checkout.coordinator.signals import CheckoutSignals, set_signals

    sink = RecordingSink()
    set_signals(CheckoutSignals([sink]))
    return sink


# ---------------------------------------------------------------------------
# Ledger and cart helpers
# ---------------------------------------------------------------------------
@pytest.fixture()
def ledger():
    from checkout.ledger.service import StockLedger

    return StockLedger()


@pytest.fixture()
def make_unit(ledger):
    """Register a stock unit and return its id."""
    counter = {"n": 0}

    def _make(available=10, name=None, product_id=None):
        counter["n"] += 1
        n = counter["n"]
        return ledger.register(
            product_id=product_id or f"prod-{n:03d}",
            sku=f"SKU-{n:03d}",
            name=name or f"Item {n}",
            available_quantity=available,
        )

    return _make


@pytest.fixture()
def add_to_cart():
    """Put a stock unit in a buyer's cart through the AddCartItem command."""
    from checkout.cart.management import AddCartItem
    from protean import current_domain

    def _add(buyer_id, unit_id, quantity=1, unit_price=100.0, name="Item", product_id=None, category_id=None):
        return current_domain.process(
            AddCartItem(
                buyer_id=buyer_id,
                unit_id=unit_id,
                product_id=product_id or f"prod-of-{unit_id}",
                name=name,
                unit_price=unit_price,
                quantity=quantity,
                category_id=category_id,
            ),
            asynchronous=False,
        )

    return _add


@pytest.fixture()
def shipping_address():
    return {
        "full_name": "Asha Rao",
        "phone": "+91-98450-00000",
        "line1": "12 MG Road",
        "line2": "Near Trinity Circle",
        "city": "Bengaluru",
        "state": "Karnataka",
        "postal_code": "560001",
        "landmark": None,
    }
