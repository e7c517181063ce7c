"""Application tests for the HoldManager: keeping holds in step with the cart."""

from datetime import UTC, datetime, timedelta

import pytest
from checkout.cart.cart import find_cart
from checkout.cart.management import ChangeCartItemQuantity, RemoveCartItem
from checkout.errors import HoldExpired, QuantityUnavailable
from checkout.holds.manager import HoldManager, requested_quantities
from protean import current_domain


@pytest.fixture()
def manager(ledger):
    return HoldManager(ledger)


def _lines(buyer_id):
    cart = find_cart(buyer_id)
    return cart.lines() if cart else []


class TestEnsureHolds:
    def test_holds_cover_the_whole_cart(self, manager, ledger, make_unit, add_to_cart):
        kurta = make_unit(available=5)
        dupatta = make_unit(available=5)
        add_to_cart("buyer-a", kurta, quantity=2)
        add_to_cart("buyer-a", dupatta, quantity=1)

        confirmation = manager.ensure_holds("buyer-a", _lines("buyer-a"))

        assert confirmation.unit_ids == tuple(sorted([kurta, dupatta]))
        assert confirmation.expires_at is not None
        assert ledger.effective_available(kurta) == 3
        assert ledger.effective_available(dupatta) == 4

    def test_cart_change_mid_checkout_returns_stock(self, manager, ledger, make_unit, add_to_cart):
        unit_id = make_unit(available=10)
        add_to_cart("buyer-a", unit_id, quantity=3)
        manager.ensure_holds("buyer-a", _lines("buyer-a"))
        assert ledger.effective_available(unit_id, buyer_id="buyer-b") == 7

        current_domain.process(
            ChangeCartItemQuantity(buyer_id="buyer-a", unit_id=unit_id, quantity=1), asynchronous=False
        )
        manager.ensure_holds("buyer-a", _lines("buyer-a"))

        views = ledger.active_holds("buyer-a")
        assert [(v.unit_id, v.quantity) for v in views] == [(unit_id, 1)]
        ledger.reserve("buyer-b", [(unit_id, 9)])
        assert ledger.effective_available(unit_id) == 0

    def test_units_dropped_from_the_cart_are_released(self, manager, ledger, make_unit, add_to_cart):
        keep = make_unit(available=5)
        drop = make_unit(available=5)
        add_to_cart("buyer-a", keep)
        add_to_cart("buyer-a", drop, quantity=2)
        manager.ensure_holds("buyer-a", _lines("buyer-a"))

        current_domain.process(RemoveCartItem(buyer_id="buyer-a", unit_id=drop), asynchronous=False)
        manager.ensure_holds("buyer-a", _lines("buyer-a"))

        assert ledger.units_held_by("buyer-a") == [keep]
        assert ledger.effective_available(drop) == 5

    def test_empty_cart_releases_everything(self, manager, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)])

        confirmation = manager.ensure_holds("buyer-a", [])

        assert confirmation.unit_ids == ()
        assert confirmation.expires_at is None
        assert ledger.has_active_holds("buyer-a") is False

    def test_shortfall_names_the_cart_lines(self, manager, ledger, make_unit, add_to_cart):
        unit_id = make_unit(available=1)
        add_to_cart("buyer-a", unit_id, quantity=3, name="Indigo Kurta")

        with pytest.raises(QuantityUnavailable) as exc:
            manager.ensure_holds("buyer-a", _lines("buyer-a"))

        issue = exc.value.issues[0]
        assert issue.name == "Indigo Kurta"
        assert issue.requested == 3
        assert issue.available == 1
        assert issue.shortfall == 2
        assert ledger.has_active_holds("buyer-a") is False

    def test_failed_ensure_keeps_previous_holds(self, manager, ledger, make_unit, add_to_cart):
        unit_id = make_unit(available=3)
        add_to_cart("buyer-a", unit_id, quantity=2)
        manager.ensure_holds("buyer-a", _lines("buyer-a"))

        current_domain.process(
            ChangeCartItemQuantity(buyer_id="buyer-a", unit_id=unit_id, quantity=5), asynchronous=False
        )
        with pytest.raises(QuantityUnavailable):
            manager.ensure_holds("buyer-a", _lines("buyer-a"))

        assert [v.quantity for v in ledger.active_holds("buyer-a")] == [2]


class TestConfirmHolds:
    def test_live_holds_confirm(self, manager, make_unit, add_to_cart):
        unit_id = make_unit(available=5)
        add_to_cart("buyer-a", unit_id, quantity=2)
        manager.ensure_holds("buyer-a", _lines("buyer-a"), checkout_id="chk-1")

        manager.confirm_holds("buyer-a", _lines("buyer-a"), checkout_id="chk-1")

    def test_lapsed_holds_raise(self, manager, make_unit, add_to_cart):
        unit_id = make_unit(available=5)
        add_to_cart("buyer-a", unit_id, quantity=2)
        manager.ensure_holds("buyer-a", _lines("buyer-a"), as_of=datetime.now(UTC) - timedelta(minutes=10))

        with pytest.raises(HoldExpired) as exc:
            manager.confirm_holds("buyer-a", _lines("buyer-a"))
        assert exc.value.unit_ids == [unit_id]

    def test_holds_from_another_checkout_do_not_count(self, manager, make_unit, add_to_cart):
        unit_id = make_unit(available=5)
        add_to_cart("buyer-a", unit_id)
        manager.ensure_holds("buyer-a", _lines("buyer-a"), checkout_id="chk-1")

        with pytest.raises(HoldExpired):
            manager.confirm_holds("buyer-a", _lines("buyer-a"), checkout_id="chk-2")


class TestRevalidate:
    def test_browsing_buyers_are_left_alone(self, manager, make_unit, add_to_cart):
        unit_id = make_unit(available=5)
        add_to_cart("buyer-a", unit_id)
        assert manager.revalidate("buyer-a") is None

    def test_buyers_mid_checkout_are_revalidated(self, manager, ledger, make_unit, add_to_cart):
        unit_id = make_unit(available=5)
        add_to_cart("buyer-a", unit_id)
        manager.ensure_holds("buyer-a", _lines("buyer-a"))

        add_to_cart("buyer-a", unit_id, quantity=2)
        confirmation = manager.revalidate("buyer-a")

        assert confirmation.unit_ids == (unit_id,)
        assert [v.quantity for v in ledger.active_holds("buyer-a")] == [3]


def test_requested_quantities_sums_lines(make_unit, add_to_cart):
    unit_id = make_unit()
    add_to_cart("buyer-a", unit_id, quantity=2)
    assert requested_quantities(_lines("buyer-a")) == {unit_id: 2}
