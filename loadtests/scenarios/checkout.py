"""Checkout load test scenarios.

Two stateful SequentialTaskSet journeys through a whole checkout (cash on
delivery, online with a payment callback) and one contention user that
swarms a single low-stock unit to check that it is never oversold.
"""

import random
import threading

import requests
from locust import HttpUser, SequentialTaskSet, between, events, task

from loadtests.data_generators import (
    buyer_id,
    cart_item_data,
    commit_data,
    payment_outcome_data,
    stock_unit_data,
)
from loadtests.helpers.response import extract_error_detail, is_stock_conflict
from loadtests.helpers.state import BuyerState, ContentionState

CALLBACK_HEADERS = {"X-Gateway-Signature": "test-signature"}


class _CheckoutJourney(SequentialTaskSet):
    payment_method = "Cash_On_Delivery"

    def on_start(self):
        self.state = BuyerState(buyer_id=buyer_id())

    @task
    def register_stock(self):
        for _ in range(random.randint(1, 3)):
            with self.client.post(
                "/stock-units",
                json=stock_unit_data(),
                catch_response=True,
                name="POST /stock-units",
            ) as resp:
                if resp.status_code == 201:
                    self.state.unit_ids.append(resp.json()["unit_id"])
                else:
                    resp.failure(f"Register stock failed: {resp.status_code} — {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def fill_cart(self):
        for unit_id in self.state.unit_ids:
            with self.client.post(
                f"/carts/{self.state.buyer_id}/items",
                json=cart_item_data(unit_id, quantity=random.randint(1, 3)),
                catch_response=True,
                name="POST /carts/{buyer_id}/items",
            ) as resp:
                if resp.status_code != 200:
                    resp.failure(f"Add to cart failed: {resp.status_code} — {extract_error_detail(resp)}")
                    self.interrupt()

    @task
    def preview(self):
        with self.client.get(
            f"/checkout/{self.state.buyer_id}/preview",
            catch_response=True,
            name="GET /checkout/{buyer_id}/preview",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Preview failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def commit(self):
        with self.client.post(
            f"/checkout/{self.state.buyer_id}/commit",
            json=commit_data(self.payment_method),
            catch_response=True,
            name="POST /checkout/{buyer_id}/commit",
        ) as resp:
            if resp.status_code == 201:
                body = resp.json()
                self.state.checkout_id = body["checkout_id"]
                self.state.order_id = body["order_id"]
                self.state.checkout_state = body["state"]
            else:
                resp.failure(f"Commit failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()


class CashOnDeliveryJourney(_CheckoutJourney):
    """Register stock -> Fill cart -> Preview -> Commit (COD) -> Read order."""

    payment_method = "Cash_On_Delivery"

    @task
    def read_order(self):
        with self.client.get(
            f"/orders/{self.state.order_id}",
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code != 200 or resp.json()["status"] != "Confirmed":
                resp.failure(f"COD order not confirmed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class OnlinePaymentJourney(_CheckoutJourney):
    """Register stock -> Fill cart -> Preview -> Commit (online) -> Callback -> Duplicate callback."""

    payment_method = "Online"

    @task
    def payment_callback(self):
        self.outcome = payment_outcome_data()
        with self.client.post(
            f"/checkout/payments/{self.state.order_id}/callback",
            json=self.outcome,
            headers=CALLBACK_HEADERS,
            catch_response=True,
            name="POST /checkout/payments/{order_id}/callback",
        ) as resp:
            if resp.status_code != 200 or not resp.json()["applied"]:
                resp.failure(f"Callback not applied: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def duplicate_callback(self):
        with self.client.post(
            f"/checkout/payments/{self.state.order_id}/callback",
            json=self.outcome,
            headers=CALLBACK_HEADERS,
            catch_response=True,
            name="POST /checkout/payments/{order_id}/callback [duplicate]",
        ) as resp:
            if resp.status_code != 200 or resp.json()["applied"]:
                resp.failure("Duplicate callback was applied twice")

    @task
    def done(self):
        self.interrupt()


class CheckoutUser(HttpUser):
    """Buyers completing checkouts; most pay online."""

    wait_time = between(0.5, 2)
    tasks = {OnlinePaymentJourney: 3, CashOnDeliveryJourney: 2}


# ---------------------------------------------------------------------------
# Contention
# ---------------------------------------------------------------------------
_contention = ContentionState()
_contention_lock = threading.Lock()


class LastUnitContentionUser(HttpUser):
    """Many buyers reserving the same scarce unit at once.

    409 responses are the expected outcome for the losers. At test stop the
    unit's held quantity is read back and must never exceed its stock.
    """

    wait_time = between(0.05, 0.3)

    def on_start(self):
        self.buyer_id = buyer_id()
        with _contention_lock:
            if _contention.unit_id is None:
                payload = stock_unit_data(available_quantity=5)
                resp = self.client.post("/stock-units", json=payload, name="POST /stock-units [contention]")
                _contention.unit_id = resp.json()["unit_id"]
                _contention.initial_quantity = payload["available_quantity"]

    @task(5)
    def reserve_last_units(self):
        with self.client.post(
            "/holds/reserve",
            json={"buyer_id": self.buyer_id, "items": [{"unit_id": _contention.unit_id, "quantity": 1}]},
            catch_response=True,
            name="POST /holds/reserve [contention]",
        ) as resp:
            if resp.status_code == 200 or is_stock_conflict(resp):
                resp.success()
            else:
                resp.failure(f"Reserve failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task(1)
    def give_back(self):
        with self.client.post(
            "/holds/release",
            json={"buyer_id": self.buyer_id, "reason": "cart_emptied"},
            catch_response=True,
            name="POST /holds/release [contention]",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Release failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task(2)
    def check_availability(self):
        with self.client.get(
            f"/stock-units/{_contention.unit_id}/availability",
            catch_response=True,
            name="GET /stock-units/{id}/availability [contention]",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Availability failed: {resp.status_code} — {extract_error_detail(resp)}")
                return
            body = resp.json()
            if body["held_quantity"] > body["available_quantity"]:
                resp.failure(f"Oversold: {body['held_quantity']} held of {body['available_quantity']}")


@events.test_stop.add_listener
def report_contention(environment, **_kwargs):
    if _contention.unit_id is None or environment.host is None:
        return
    body = requests.get(f"{environment.host}/stock-units/{_contention.unit_id}/availability", timeout=5).json()
    print(
        f"[LOADTEST] Contention unit {_contention.unit_id}: "
        f"{body['held_quantity']} held of {body['available_quantity']} available"
    )
