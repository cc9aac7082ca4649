"""Dispatch load test scenarios.

Stateful SequentialTaskSet journeys for the delivery happy path and for
cancellation of an assigned order, a courier fleet that keeps sending
heartbeats, and a weighted mix of all three.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    cancellation_reason,
    courier_data,
    heartbeat_data,
    order_data,
)
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import CourierState, DeliveryState


def _register_online_courier(client, near) -> str | None:
    payload = courier_data()
    resp = client.post("/couriers", json=payload, name="POST /couriers")
    if resp.status_code != 201:
        return None
    client.put(
        f"/couriers/{payload['courier_id']}/heartbeat",
        json=heartbeat_data(near),
        name="PUT /couriers/{id}/heartbeat",
    )
    return payload["courier_id"]


class _OrderJourney(SequentialTaskSet):
    """Shared first steps: put a courier online, place and pay an order."""

    def on_start(self):
        self.state = DeliveryState()
        self.order = order_data()
        self.state.seller_id = self.order["seller_id"]

    @task
    def courier_goes_online(self):
        near = (self.order["seller_latitude"], self.order["seller_longitude"])
        if _register_online_courier(self.client, near) is None:
            self.interrupt()

    @task
    def place_order(self):
        with self.client.post("/orders", json=self.order, catch_response=True, name="POST /orders") as resp:
            if resp.status_code == 201:
                self.state.order_id = resp.json()["data"]["order_id"]
            else:
                resp.failure(f"Place order failed: {resp.status_code} - {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def confirm_payment(self):
        with self.client.put(
            f"/orders/{self.state.order_id}/payment",
            json={"payment_status": "Paid"},
            catch_response=True,
            name="PUT /orders/{id}/payment",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Confirm payment failed: {resp.status_code} - {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def check_assignment(self):
        with self.client.get(
            f"/orders/{self.state.order_id}",
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            order = resp.json() if resp.status_code == 200 else {}
            if order.get("status") != "Assigned":
                # Couriers from other users may all be busy; the sweep will retry
                resp.success()
                self.interrupt()
            self.state.courier_id = order["assigned_courier_id"]
            self.state.delivery_id = order["delivery_id"]
            self.state.current_status = "Assigned"


class DeliveryJourney(_OrderJourney):
    """Courier online -> Place -> Pay (auto-assign) -> Pickup -> Deliver.

    Fresh OTPs are issued over the API because the codes handed out on
    assignment only reach the seller and buyer.
    """

    def _issue_code(self, step: str) -> str | None:
        with self.client.post(
            "/verification/codes",
            json={
                "delivery_id": self.state.delivery_id,
                "order_id": self.state.order_id,
                "step": step,
                "method": "otp",
            },
            catch_response=True,
            name="POST /verification/codes",
        ) as resp:
            if resp.status_code == 201:
                return resp.json()["data"]["secret"]
            resp.failure(f"Issue {step} code failed: {resp.status_code} - {extract_error_detail(resp)}")
            return None

    def _present(self, step: str, path: str):
        secret = self._issue_code(step)
        if secret is None:
            self.interrupt()
        with self.client.put(
            f"/orders/{self.state.order_id}/{path}",
            json={"secret": secret},
            catch_response=True,
            name=f"PUT /orders/{{id}}/{path}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"{step.title()} failed: {resp.status_code} - {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def pickup(self):
        self._present("pickup", "pickup")
        self.state.current_status = "In_Transit"

    @task
    def deliver(self):
        self._present("delivery", "deliver")
        self.state.current_status = "Delivered"

    @task
    def rate_courier(self):
        self.client.put(
            f"/orders/{self.state.order_id}/rating",
            json={"score": random.randint(3, 5)},
            name="PUT /orders/{id}/rating",
        )
        self.interrupt()


class CancellationJourney(_OrderJourney):
    """Courier online -> Place -> Pay (auto-assign) -> Cancel.

    Cancelling an assigned order releases the courier's slot and closes
    the outstanding codes in one step.
    """

    @task
    def cancel(self):
        with self.client.put(
            f"/orders/{self.state.order_id}/cancel",
            json={"reason": cancellation_reason()},
            catch_response=True,
            name="PUT /orders/{id}/cancel",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = "Cancelled"
            else:
                resp.failure(f"Cancel failed: {resp.status_code} - {extract_error_detail(resp)}")
        self.interrupt()


class CourierFleetUser(HttpUser):
    """A courier that registers once and then reports its position.

    Heartbeats take the courier's lock, so a large fleet contends with the
    matcher for the same records.
    """

    wait_time = between(1.0, 5.0)

    def on_start(self):
        self.state = CourierState()
        payload = courier_data()
        resp = self.client.post("/couriers", json=payload, name="POST /couriers")
        if resp.status_code == 201:
            self.state.courier_id = payload["courier_id"]

    @task(10)
    def heartbeat(self):
        if not self.state.courier_id:
            return
        is_online = random.random() > 0.1
        resp = self.client.put(
            f"/couriers/{self.state.courier_id}/heartbeat",
            json=heartbeat_data(is_online=is_online),
            name="PUT /couriers/{id}/heartbeat",
        )
        if resp.status_code == 200:
            self.state.is_online = is_online

    @task(2)
    def look_around(self):
        position = heartbeat_data()
        self.client.get(
            "/couriers/nearby",
            params={"latitude": position["latitude"], "longitude": position["longitude"], "radius_km": 5.0},
            name="GET /couriers/nearby",
        )

    @task(1)
    def check_earnings(self):
        if self.state.courier_id:
            self.client.get(f"/earnings/{self.state.courier_id}", name="GET /earnings/{payee_id}")


class DispatchWorkloadUser(HttpUser):
    """Realistic mix: mostly deliveries, some cancellations, periodic sweeps."""

    wait_time = between(0.5, 3.0)
    tasks = {
        DeliveryJourney: 8,
        CancellationJourney: 2,
    }

    @task(1)
    def run_dispatch_sweep(self):
        self.client.post("/maintenance/dispatch-sweep", json={}, name="POST /maintenance/dispatch-sweep")
