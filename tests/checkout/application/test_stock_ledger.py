"""Application tests for the StockLedger service.

Covers:
- Registration and restocking through commands
- All-or-nothing reservation batches
- Hold replacement and stock returned on re-reserve
- Concurrent reservations on one unit never oversell
- Finalize / release scoped by buyer, order and checkout attempt
- Finalizing exactly what an order contains, all units or none
- Bounded retries when a stock write loses a version race
- Stock commitment on shipment
"""

import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from checkout.errors import HoldExpired, QuantityUnavailable
from checkout.ledger.stock_unit import HoldState, StockUnit
from protean import current_domain
from protean.exceptions import ExpectedVersionError


def _unit(unit_id) -> StockUnit:
    return current_domain.repository_for(StockUnit).get(unit_id)


def _holds(unit_id, state=HoldState.ACTIVE):
    return [h for h in _unit(unit_id).holds if h.state == state.value]


class TestRegistration:
    def test_register_and_receive(self, ledger, make_unit):
        unit_id = make_unit(available=4)
        ledger.receive(unit_id, 6, reference="PO-1")

        unit = _unit(unit_id)
        assert unit.available_quantity == 10
        assert ledger.effective_available(unit_id) == 10


class TestReserve:
    def test_reserve_places_holds_and_returns_expiry(self, ledger, make_unit, settings):
        unit_id = make_unit(available=10)
        before = datetime.now(UTC)

        expires_at = ledger.reserve("buyer-a", [(unit_id, 3)])

        assert expires_at >= before + timedelta(seconds=settings.hold_window_seconds)
        assert ledger.effective_available(unit_id) == 7
        assert ledger.effective_available(unit_id, buyer_id="buyer-a") == 10

    def test_custom_hold_window(self, ledger, make_unit):
        unit_id = make_unit()
        as_of = datetime.now(UTC)
        expires_at = ledger.reserve("buyer-a", [(unit_id, 1)], hold_window_seconds=30, as_of=as_of)
        assert expires_at == as_of + timedelta(seconds=30)

    def test_requests_can_be_dicts(self, ledger, make_unit):
        unit_id = make_unit()
        ledger.reserve("buyer-a", [{"unit_id": unit_id, "quantity": 2}])
        assert ledger.effective_available(unit_id) == 8

    def test_duplicate_units_in_a_batch_are_merged(self, ledger, make_unit):
        unit_id = make_unit(available=10)
        ledger.reserve("buyer-a", [(unit_id, 2), (unit_id, 3)])

        holds = _holds(unit_id)
        assert len(holds) == 1
        assert holds[0].quantity == 5

    def test_failed_batch_changes_nothing(self, ledger, make_unit):
        plenty = make_unit(available=10)
        scarce = make_unit(available=1, name="Scarce Item")
        ledger.reserve("buyer-a", [(plenty, 1)])

        with pytest.raises(QuantityUnavailable) as exc:
            ledger.reserve("buyer-a", [(plenty, 4), (scarce, 2)])

        assert [issue.unit_id for issue in exc.value.issues] == [scarce]
        assert exc.value.issues[0].available == 1
        # The buyer's earlier hold is untouched and nothing was placed on the scarce unit
        assert _holds(plenty)[0].quantity == 1
        assert _holds(scarce) == []

    def test_every_failing_unit_is_reported(self, ledger, make_unit):
        first = make_unit(available=1)
        second = make_unit(available=0)

        with pytest.raises(QuantityUnavailable) as exc:
            ledger.reserve("buyer-a", [(first, 2), (second, 1)])

        assert sorted(issue.unit_id for issue in exc.value.issues) == sorted([first, second])

    def test_unknown_unit_fails_the_batch(self, ledger, make_unit):
        unit_id = make_unit()
        with pytest.raises(QuantityUnavailable) as exc:
            ledger.reserve("buyer-a", [(unit_id, 1), ("no-such-unit", 1)])

        assert exc.value.issues[0].unit_id == "no-such-unit"
        assert exc.value.issues[0].available == 0
        assert _holds(unit_id) == []

    def test_non_positive_quantity_fails_the_batch(self, ledger, make_unit):
        unit_id = make_unit()
        with pytest.raises(QuantityUnavailable):
            ledger.reserve("buyer-a", [(unit_id, 0)])


class TestHoldReplacement:
    def test_reserve_twice_keeps_one_hold(self, ledger, make_unit):
        unit_id = make_unit(available=10)
        ledger.reserve("buyer-a", [(unit_id, 2)])
        ledger.reserve("buyer-a", [(unit_id, 5)])

        holds = _holds(unit_id)
        assert len(holds) == 1
        assert holds[0].quantity == 5
        assert ledger.effective_available(unit_id) == 5

    def test_lowering_a_hold_returns_stock_to_others(self, ledger, make_unit):
        """Buyer A drops from 3 to 1 of 10; buyer B can then hold 9."""
        unit_id = make_unit(available=10)
        ledger.reserve("buyer-a", [(unit_id, 3)])
        assert ledger.effective_available(unit_id, buyer_id="buyer-b") == 7

        ledger.reserve("buyer-a", [(unit_id, 1)])
        ledger.reserve("buyer-b", [(unit_id, 9)])

        assert [h.quantity for h in _holds(unit_id) if h.buyer_id == "buyer-a"] == [1]
        assert ledger.effective_available(unit_id) == 0


class TestConcurrency:
    def test_last_unit_goes_to_exactly_one_buyer(self, _checkout_domain, ledger, make_unit):
        unit_id = make_unit(available=1)
        barrier = threading.Barrier(2)
        outcomes = {}

        def attempt(buyer_id):
            with _checkout_domain.domain_context():
                barrier.wait()
                try:
                    ledger.reserve(buyer_id, [(unit_id, 1)])
                    outcomes[buyer_id] = "held"
                except QuantityUnavailable:
                    outcomes[buyer_id] = "unavailable"

        threads = [threading.Thread(target=attempt, args=(buyer,)) for buyer in ("buyer-a", "buyer-b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(outcomes.values()) == ["held", "unavailable"]
        assert _unit(unit_id).held_quantity() == 1

    def test_many_buyers_never_oversell(self, _checkout_domain, ledger, make_unit):
        unit_id = make_unit(available=5)
        buyers = [f"buyer-{n}" for n in range(12)]
        barrier = threading.Barrier(len(buyers))
        held = []

        def attempt(buyer_id):
            with _checkout_domain.domain_context():
                barrier.wait()
                try:
                    ledger.reserve(buyer_id, [(unit_id, 1)])
                    held.append(buyer_id)
                except QuantityUnavailable:
                    pass

        threads = [threading.Thread(target=attempt, args=(buyer,)) for buyer in buyers]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(held) == 5
        unit = _unit(unit_id)
        assert unit.held_quantity() == unit.available_quantity == 5


class TestFinalizeAndRelease:
    def test_finalize_links_holds(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)])

        assert ledger.finalize("buyer-a", "ord-001") == 2
        finalized = _holds(unit_id, HoldState.FINALIZED)
        assert [str(h.order_id) for h in finalized] == ["ord-001"]
        assert ledger.effective_available(unit_id, buyer_id="buyer-b") == 3

    def test_finalize_without_holds(self, ledger):
        assert ledger.finalize("buyer-a", "ord-001") == 0

    def test_release_returns_stock(self, ledger, make_unit):
        first = make_unit(available=5)
        second = make_unit(available=5)
        ledger.reserve("buyer-a", [(first, 2), (second, 1)])

        assert ledger.release("buyer-a", reason="cart_emptied") == 3
        assert ledger.effective_available(first) == 5
        assert ledger.has_active_holds("buyer-a") is False

    def test_release_is_scoped_to_a_checkout(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)], checkout_id="chk-1")

        assert ledger.release("buyer-a", checkout_id="chk-2") == 0
        assert ledger.release("buyer-a", checkout_id="chk-1") == 2

    def test_release_never_undoes_a_finalize(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)])
        ledger.finalize("buyer-a", "ord-001")

        assert ledger.release("buyer-a", order_id="ord-001", unit_ids=[unit_id]) == 0
        assert len(_holds(unit_id, HoldState.FINALIZED)) == 1

    def test_active_holds_view(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)], checkout_id="chk-1")

        views = ledger.active_holds("buyer-a")
        assert len(views) == 1
        assert views[0].unit_id == unit_id
        assert views[0].quantity == 2
        assert views[0].checkout_id == "chk-1"
        assert ledger.units_held_by("buyer-a") == [unit_id]

    def test_lapsed_holds_are_not_active(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)], as_of=datetime.now(UTC) - timedelta(minutes=10))
        assert ledger.active_holds("buyer-a") == []


class TestFinalizeOrderQuantities:
    PAST = timedelta(minutes=10)

    def test_a_larger_hold_gives_back_the_excess(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 3)])

        assert ledger.finalize("buyer-a", "ord-001", quantities={unit_id: 1}) == 1
        finalized = _holds(unit_id, HoldState.FINALIZED)
        assert [h.quantity for h in finalized] == [1]
        assert ledger.effective_available(unit_id, buyer_id="buyer-b") == 4

    def test_a_smaller_hold_is_topped_up_from_free_stock(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 1)])

        assert ledger.finalize("buyer-a", "ord-001", quantities={unit_id: 3}) == 3
        assert ledger.effective_available(unit_id, buyer_id="buyer-b") == 2

    def test_a_lapsed_hold_is_renewed_while_stock_is_free(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)], as_of=datetime.now(UTC) - self.PAST)

        assert ledger.finalize("buyer-a", "ord-001", quantities={unit_id: 2}) == 2
        assert [h.quantity for h in _holds(unit_id, HoldState.FINALIZED)] == [2]
        assert ledger.effective_available(unit_id, buyer_id="buyer-b") == 3

    def test_stock_taken_after_a_lapse_is_not_finalized(self, ledger, make_unit):
        unit_id = make_unit(available=1)
        ledger.reserve("buyer-a", [(unit_id, 1)], as_of=datetime.now(UTC) - self.PAST)
        ledger.reserve("buyer-b", [(unit_id, 1)])

        with pytest.raises(HoldExpired) as exc:
            ledger.finalize("buyer-a", "ord-001", quantities={unit_id: 1})

        assert exc.value.unit_ids == [unit_id]
        assert _holds(unit_id, HoldState.FINALIZED) == []
        assert [str(h.buyer_id) for h in _holds(unit_id) if h.is_live(datetime.now(UTC))] == ["buyer-b"]

    def test_an_uncovered_unit_finalizes_nothing(self, ledger, make_unit):
        plenty = make_unit(available=5)
        scarce = make_unit(available=1)
        ledger.reserve("buyer-a", [(plenty, 2), (scarce, 1)])

        with pytest.raises(HoldExpired) as exc:
            ledger.finalize("buyer-a", "ord-001", quantities={plenty: 2, scarce: 2})

        assert exc.value.unit_ids == [scarce]
        assert _holds(plenty, HoldState.FINALIZED) == []
        assert [h.quantity for h in _holds(plenty)] == [2]
        assert ledger.effective_available(plenty, buyer_id="buyer-b") == 3


class TestCommitShipment:
    def test_shipment_deducts_stock(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)])
        ledger.finalize("buyer-a", "ord-001")

        assert ledger.commit_shipment("ord-001") == 2
        unit = _unit(unit_id)
        assert unit.available_quantity == 3
        assert len(unit.holds) == 0
        assert ledger.effective_available(unit_id) == 3

    def test_shipment_is_idempotent(self, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)])
        ledger.finalize("buyer-a", "ord-001")
        ledger.commit_shipment("ord-001", unit_ids=[unit_id])

        assert ledger.commit_shipment("ord-001", unit_ids=[unit_id]) == 0
        assert _unit(unit_id).available_quantity == 3


class TestVersionConflicts:
    @staticmethod
    def _conflicting(domain, failures):
        calls = []

        def process(command, asynchronous=False):
            calls.append(type(command).__name__)
            if len(calls) <= failures:
                raise ExpectedVersionError("StockUnit was modified by another writer")
            return domain.process(command, asynchronous=asynchronous)

        return calls, process

    def test_a_conflicting_reserve_is_retried(self, _checkout_domain, ledger, make_unit):
        unit_id = make_unit(available=5)
        calls, process = self._conflicting(_checkout_domain, failures=1)

        with patch("checkout.ledger.service.current_domain", new_callable=MagicMock) as domain:
            domain.process.side_effect = process
            ledger.reserve("buyer-a", [(unit_id, 2)])

        assert calls == ["ReserveStock", "ReserveStock"]
        assert ledger.effective_available(unit_id) == 3

    def test_finalize_and_release_are_retried(self, _checkout_domain, ledger, make_unit):
        unit_id = make_unit(available=5)
        ledger.reserve("buyer-a", [(unit_id, 2)], checkout_id="chk-1")
        ledger.reserve("buyer-b", [(unit_id, 1)])

        calls, process = self._conflicting(_checkout_domain, failures=2)
        with patch("checkout.ledger.service.current_domain", new_callable=MagicMock) as domain:
            domain.process.side_effect = process
            assert ledger.finalize("buyer-a", "ord-001", checkout_id="chk-1", quantities={unit_id: 2}) == 2

        assert calls == ["FinalizeHolds"] * 3

        calls, process = self._conflicting(_checkout_domain, failures=1)
        with patch("checkout.ledger.service.current_domain", new_callable=MagicMock) as domain:
            domain.process.side_effect = process
            assert ledger.release("buyer-b", unit_ids=[unit_id]) == 1

        assert calls == ["ReleaseHolds"] * 2
        assert ledger.effective_available(unit_id) == 3

    def test_conflict_surfaces_after_bounded_retries(self, _checkout_domain, ledger, make_unit):
        unit_id = make_unit(available=5)
        calls, process = self._conflicting(_checkout_domain, failures=100)

        with patch("checkout.ledger.service.current_domain", new_callable=MagicMock) as domain:
            domain.process.side_effect = process
            with pytest.raises(ExpectedVersionError):
                ledger.reserve("buyer-a", [(unit_id, 2)])

        assert len(calls) == 3
        assert ledger.effective_available(unit_id) == 5
