"""Tests for the side-effect dispatcher."""

import pytest
from ordering.order.effects import SideEffectDispatcher, TransitionRequest
from ordering.order.failures import InsufficientStock, InvalidState
from ordering.order.order import Order, OrderAmounts, Tracking
from ordering.order.status import OrderOrigin, OrderStatus, PaymentStatus, TransitionOutcome
from ordering.stock.fake_adapter import FakeStockLedger
from shared.actor import Actor, ActorRole

OPERATOR = Actor(id="op-1", role=ActorRole.ORGANIZATION_OPERATOR, organization_id="org-1")


@pytest.fixture()
def ledger():
    ledger = FakeStockLedger()
    ledger.set_level("oil-cbd-10", 10)
    ledger.set_level("flower-a", 3)
    return ledger


@pytest.fixture()
def dispatcher(ledger):
    return SideEffectDispatcher(ledger)


def _approved_order(paid=True, items=None):
    order = Order.place(
        order_number="ORD-1-0002",
        origin=OrderOrigin.PATIENT_PURCHASE,
        organization_id="org-1",
        created_by="patient-1",
        actor_role="patient",
        items_data=items
        or [
            {"product_ref": "oil-cbd-10", "quantity": 2, "unit_price": 12.5},
            {"product_ref": "flower-a", "quantity": 3, "unit_price": 10.0},
        ],
        amounts=OrderAmounts(subtotal=55.0, total=55.0),
    )
    order.advance(OrderStatus.APPROVED, OPERATOR.id, OPERATOR.role.value)
    if paid:
        order.record_payment(approved=True, method="pix", transaction_id="txn-1")
    return order


def _request(order, target, **kwargs):
    return TransitionRequest(order=order, target=target, actor=OPERATOR, **kwargs)


class TestPaymentConfirmation:
    def test_reserves_every_line(self, dispatcher, ledger):
        order = _approved_order()
        outcome = dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))

        assert outcome.applied
        assert outcome.reservation_created
        assert order.stock_reserved is True
        assert ledger.available("oil-cbd-10") == 8
        assert ledger.available("flower-a") == 0

    def test_unpaid_order_is_rejected_without_touching_stock(self, dispatcher, ledger):
        order = _approved_order(paid=False)
        outcome = dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))

        assert not outcome.applied
        assert isinstance(outcome.failure, InvalidState)
        assert outcome.failure.reason == "payment_not_captured"
        assert ledger.calls == []
        assert order.status == OrderStatus.APPROVED.value

    def test_shortage_reserves_nothing(self, dispatcher, ledger):
        order = _approved_order(
            items=[
                {"product_ref": "oil-cbd-10", "quantity": 2, "unit_price": 12.5},
                {"product_ref": "flower-a", "quantity": 4, "unit_price": 7.5},
            ]
        )
        outcome = dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))

        assert isinstance(outcome.failure, InsufficientStock)
        assert [(s.product_ref, s.requested, s.available) for s in outcome.failure.shortages] == [("flower-a", 4, 3)]
        assert ledger.available("oil-cbd-10") == 10
        assert ledger.available("flower-a") == 3
        assert order.stock_reserved is False
        assert order.status == OrderStatus.APPROVED.value

    def test_refusal_appends_a_rejected_entry(self, dispatcher):
        order = _approved_order(paid=False)
        before = len(order.history)
        dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))

        assert len(order.history) == before + 1
        last = order.history[-1]
        assert last.outcome == TransitionOutcome.REJECTED.value
        assert last.to_status == OrderStatus.APPROVED.value


class TestShipping:
    def _preparing(self, dispatcher):
        order = _approved_order()
        dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))
        dispatcher.dispatch(_request(order, OrderStatus.IN_PREPARATION))
        return order

    def test_requires_tracking(self, dispatcher):
        order = self._preparing(dispatcher)
        outcome = dispatcher.dispatch(_request(order, OrderStatus.SHIPPED))

        assert isinstance(outcome.failure, InvalidState)
        assert outcome.failure.reason == "tracking_required"
        assert order.status == OrderStatus.IN_PREPARATION.value

    def test_uses_staged_tracking(self, dispatcher):
        order = self._preparing(dispatcher)
        order.stage_tracking(Tracking(carrier_code="correios", tracking_number="BR1"))
        outcome = dispatcher.dispatch(_request(order, OrderStatus.SHIPPED))

        assert outcome.applied
        assert order.tracking.tracking_number == "BR1"

    def test_tracking_supplied_with_the_request_wins(self, dispatcher):
        order = self._preparing(dispatcher)
        order.stage_tracking(Tracking(tracking_number="OLD"))
        dispatcher.dispatch(_request(order, OrderStatus.SHIPPED, tracking=Tracking(tracking_number="NEW")))

        assert order.tracking.tracking_number == "NEW"


class TestCancellation:
    def test_releases_reserved_stock(self, dispatcher, ledger):
        order = _approved_order()
        dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))
        outcome = dispatcher.dispatch(_request(order, OrderStatus.CANCELLED, reason="patient request"))

        assert outcome.applied
        assert outcome.stock_released
        assert order.stock_reserved is False
        assert ledger.available("oil-cbd-10") == 10
        assert ledger.available("flower-a") == 3

    def test_nothing_to_release_before_confirmation(self, dispatcher, ledger):
        order = _approved_order()
        outcome = dispatcher.dispatch(_request(order, OrderStatus.CANCELLED))

        assert outcome.applied
        assert not outcome.stock_released
        assert ledger.calls == []


class TestRefund:
    def test_marks_payment_refunded(self, dispatcher):
        order = _approved_order()
        dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))
        outcome = dispatcher.dispatch(_request(order, OrderStatus.REFUNDED))

        assert outcome.applied
        assert order.payment_status == PaymentStatus.REFUNDED.value

    def test_audit_only_transitions(self, dispatcher):
        order = _approved_order()
        dispatcher.dispatch(_request(order, OrderStatus.PAYMENT_CONFIRMED))
        outcome = dispatcher.dispatch(_request(order, OrderStatus.IN_PREPARATION))

        assert outcome.applied
        assert order.history[-1].to_status == OrderStatus.IN_PREPARATION.value
