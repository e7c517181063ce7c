"""Shared BDD fixtures and step definitions for the Checkout domain."""

from datetime import UTC, datetime, timedelta

import pytest
from checkout.cart.cart import find_cart
from checkout.errors import QuantityUnavailable
from pytest_bdd import given, parsers, then


# ---------------------------------------------------------------------------
# Scenario state
# ---------------------------------------------------------------------------
@pytest.fixture()
def units():
    """Stock unit ids by display name."""
    return {}


@pytest.fixture()
def outcome():
    """Container for results and captured errors of When steps."""
    return {"error": None, "receipt": None, "expired": None}


@pytest.fixture()
def store(settings, discounts, payments):
    """Store collaborators every checkout scenario runs against."""
    return {"settings": settings, "discounts": discounts, "payments": payments}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a stock unit "{name}" with {quantity:d} available'))
def stock_unit(units, make_unit, name, quantity):
    units[name] = make_unit(available=quantity, name=name)


@given(parsers.cfparse('buyer "{buyer_id}" holds {quantity:d} of "{name}"'))
def buyer_holds(ledger, units, buyer_id, quantity, name):
    ledger.reserve(buyer_id, [(units[name], quantity)])


@given(parsers.cfparse('buyer "{buyer_id}" held {quantity:d} of "{name}" half an hour ago'))
def buyer_held_long_ago(ledger, units, buyer_id, quantity, name):
    ledger.reserve(buyer_id, [(units[name], quantity)], as_of=datetime.now(UTC) - timedelta(minutes=30))


@given(parsers.cfparse('buyer "{buyer_id}" has {quantity:d} of "{name}" in the cart at {price:g}'))
def buyer_cart(add_to_cart, units, buyer_id, quantity, name, price):
    add_to_cart(buyer_id, units[name], quantity=quantity, unit_price=float(price), name=name)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('"{name}" has {quantity:d} available for buyer "{buyer_id}"'))
def available_for(ledger, units, name, quantity, buyer_id):
    assert ledger.effective_available(units[name], buyer_id=buyer_id) == quantity


@then(parsers.cfparse('buyer "{buyer_id}" can reserve {quantity:d} of "{name}"'))
def can_reserve(ledger, units, buyer_id, quantity, name):
    ledger.reserve(buyer_id, [(units[name], quantity)])


@then(parsers.cfparse('buyer "{buyer_id}" cannot reserve {quantity:d} of "{name}"'))
def cannot_reserve(ledger, units, buyer_id, quantity, name):
    with pytest.raises(QuantityUnavailable):
        ledger.reserve(buyer_id, [(units[name], quantity)])


@then(parsers.cfparse('the cart of buyer "{buyer_id}" is empty'))
def cart_is_empty(buyer_id):
    cart = find_cart(buyer_id)
    assert cart is None or len(cart.items) == 0


@then("no reservation failed")
def no_reservation_failed(outcome):
    assert outcome["error"] is None
