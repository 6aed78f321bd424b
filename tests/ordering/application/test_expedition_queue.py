"""Application tests for the expedition queue."""

from ordering.order.failures import Forbidden
from ordering.projections.expedition_queue import list_expedition_ready


def _create(engine, actor, product_ref="oil-cbd-10", quantity=1, **kwargs):
    result = engine.create_order(
        "patient_purchase",
        organization_id=actor.organization_id,
        items=[{"product_ref": product_ref, "quantity": quantity, "unit_price": 10.0}],
        actor=actor,
        **kwargs,
    )
    assert result.ok, result.failure
    return str(result.order.id)


def _confirm(engine, drive, order_id, operator):
    drive(order_id, operator, "approved")
    assert engine.record_payment(order_id, "pix", operator).ok
    drive(order_id, operator, "payment_confirmed")


class TestExpeditionQueue:
    def test_lists_only_confirmed_and_preparing_orders(self, engine, drive, store, patient, operator):
        pending = _create(engine, patient)
        confirmed = _create(engine, patient)
        preparing = _create(engine, patient)
        _confirm(engine, drive, confirmed, operator)
        _confirm(engine, drive, preparing, operator)
        drive(preparing, operator, "in_preparation")

        queue = list_expedition_ready(store, operator)

        assert queue.ok
        ids = [entry.order_id for entry in queue.entries]
        assert set(ids) == {confirmed, preparing}
        assert pending not in ids

    def test_oldest_first(self, engine, drive, store, patient, operator):
        first = _create(engine, patient)
        second = _create(engine, patient)
        _confirm(engine, drive, second, operator)
        _confirm(engine, drive, first, operator)

        queue = list_expedition_ready(store, operator)

        created = [entry.created_at for entry in queue.entries]
        assert created == sorted(created)
        assert {entry.order_id for entry in queue.entries} == {first, second}

    def test_entry_details(self, engine, drive, store, patient, operator):
        order_id = _create(engine, patient, quantity=3, customer_name="Maria Souza")
        _confirm(engine, drive, order_id, operator)
        drive(order_id, operator, "in_preparation")
        engine.attach_tracking(order_id, {"carrier_code": "correios", "tracking_number": "BR7"}, operator)

        entry = list_expedition_ready(store, operator).entries[0]

        assert entry.is_patient_order is True
        assert entry.has_staged_tracking is True
        assert entry.item_count == 3
        assert entry.total == 30.0
        assert entry.customer_name == "Maria Souza"
        assert entry.to_dict()["status"] == "in_preparation"

    def test_cancelled_orders_leave_the_queue(self, engine, drive, store, patient, operator):
        order_id = _create(engine, patient)
        _confirm(engine, drive, order_id, operator)
        drive(order_id, operator, "cancelled")

        assert list_expedition_ready(store, operator).entries == []

    def test_other_organizations_are_not_listed(self, engine, drive, store, patient, operator, outside_operator):
        order_id = _create(engine, patient)
        _confirm(engine, drive, order_id, operator)

        assert list_expedition_ready(store, outside_operator).entries == []

    def test_supplier_does_not_see_buyer_orders(self, engine, drive, store, operator, supplier_operator, admin):
        result = engine.create_order(
            "marketplace",
            organization_id=operator.organization_id,
            items=[{"product_ref": "flower-a", "quantity": 5, "unit_price": 18.0}],
            actor=operator,
            counterparty_id=supplier_operator.organization_id,
        )
        order_id = str(result.order.id)
        drive(order_id, operator, "pending")
        _confirm(engine, drive, order_id, operator)

        assert list_expedition_ready(store, supplier_operator).entries == []
        assert list_expedition_ready(store, admin, organization_id=supplier_operator.organization_id).entries == []
        assert len(list_expedition_ready(store, operator).entries) == 1

    def test_admin_sees_every_organization(self, engine, drive, store, patient, operator, admin):
        order_id = _create(engine, patient)
        _confirm(engine, drive, order_id, operator)

        queue = list_expedition_ready(store, admin)
        assert [entry.order_id for entry in queue.entries] == [order_id]

    def test_admin_can_narrow_to_an_organization(self, engine, drive, store, patient, operator, admin):
        order_id = _create(engine, patient)
        _confirm(engine, drive, order_id, operator)

        assert list_expedition_ready(store, admin, organization_id="org-elsewhere").entries == []
        assert len(list_expedition_ready(store, admin, organization_id=operator.organization_id).entries) == 1

    def test_patients_are_refused(self, store, patient):
        queue = list_expedition_ready(store, patient)
        assert isinstance(queue.failure, Forbidden)
        assert queue.failure.reason == "operator_role_required"

    def test_operators_cannot_ask_for_another_organization(self, store, operator, outside_operator):
        queue = list_expedition_ready(store, operator, organization_id=outside_operator.organization_id)
        assert isinstance(queue.failure, Forbidden)
        assert queue.failure.reason == "outside_organization_scope"

    def test_reading_the_queue_changes_nothing(self, engine, drive, store, patient, operator):
        order_id = _create(engine, patient)
        _confirm(engine, drive, order_id, operator)
        before = store.get(order_id)

        list_expedition_ready(store, operator)

        after = store.get(order_id)
        assert after.status == before.status
        assert len(after.history) == len(before.history)
        assert after.updated_at == before.updated_at
