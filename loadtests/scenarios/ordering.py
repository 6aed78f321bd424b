"""Order fulfillment load test scenarios.

Two stateful SequentialTaskSet journeys walk an order through the
fulfillment lifecycle; a read-only user hammers the listing and expedition
views that warehouse staff poll.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import actor_headers, organization_id, patient_order_data, tracking_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import OrderState


class _OrderJourney(SequentialTaskSet):
    """Shared plumbing: one patient and one operator of the same organization."""

    def on_start(self):
        self.state = OrderState()
        self.organization = organization_id()
        self.patient = actor_headers("patient", self.organization)
        self.operator = actor_headers("organization_operator", self.organization)

    def _move(self, status: str, **extra) -> bool:
        with self.client.patch(
            f"/organization/orders/{self.state.order_id}/status",
            json={"status": status, **extra},
            headers=self.operator,
            catch_response=True,
            name=f"PATCH /organization/orders/{{id}}/status [{status}]",
        ) as resp:
            if resp.status_code == 200:
                self.state.current_status = status
                self.state.visited.append(status)
                return True
            resp.failure(f"Move to {status} failed: {resp.status_code} — {extract_error_detail(resp)}")
            self.interrupt()
            return False

    @task
    def create_order(self):
        with self.client.post(
            "/patient/orders",
            json=patient_order_data(num_items=random.randint(1, 3)),
            headers=self.patient,
            catch_response=True,
            name="POST /patient/orders",
        ) as resp:
            if resp.status_code == 201:
                body = resp.json()
                self.state.order_id = body["order_id"]
                self.state.order_number = body["order_number"]
            else:
                resp.failure(f"Create order failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def approve(self):
        self._move("approved", reason="prescription verified")

    @task
    def pay(self):
        with self.client.post(
            f"/orders/{self.state.order_id}/payment",
            json={"payment_method": random.choice(["pix", "card"])},
            headers=self.operator,
            catch_response=True,
            name="POST /orders/{id}/payment",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Payment failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def confirm_payment(self):
        self._move("payment_confirmed")


class FulfillmentJourney(_OrderJourney):
    """Create -> Approve -> Pay -> Confirm -> Prepare -> Track -> Ship -> Deliver."""

    @task
    def prepare(self):
        self._move("in_preparation")

    @task
    def attach_tracking(self):
        with self.client.put(
            f"/orders/{self.state.order_id}/tracking",
            json=tracking_data(),
            headers=self.operator,
            catch_response=True,
            name="PUT /orders/{id}/tracking",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Attach tracking failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def ship(self):
        self._move("shipped")

    @task
    def deliver(self):
        self._move("delivered")

    @task
    def done(self):
        self.interrupt()


class CancellationJourney(_OrderJourney):
    """Create -> Approve -> Pay -> Confirm -> Cancel, releasing the reservation."""

    @task
    def cancel(self):
        self._move("cancelled", reason="patient withdrew the request")

    @task
    def done(self):
        self.interrupt()


class FulfillmentUser(HttpUser):
    """Drives orders through the lifecycle, mostly to delivery."""

    wait_time = between(1, 3)
    tasks = {FulfillmentJourney: 3, CancellationJourney: 1}


class OrganizationReadsUser(HttpUser):
    """Polls the organization listing and the expedition queue."""

    wait_time = between(1, 2)

    def on_start(self):
        self.operator = actor_headers("organization_operator", organization_id())

    @task(3)
    def list_orders(self):
        self.client.get(
            "/organization/orders",
            params={"status": random.choice(["all", "pending", "approved", "shipped"]), "limit": 20},
            headers=self.operator,
            name="GET /organization/orders",
        )

    @task(2)
    def expedition(self):
        self.client.get("/organization/orders/expedition", headers=self.operator, name="GET /organization/orders/expedition")
