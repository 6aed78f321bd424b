"""Shared BDD fixtures and step definitions for order fulfillment."""

import pytest
from ordering.order.status import TransitionOutcome
from pytest_bdd import given, parsers, then, when

SUPPLIER_ID = "org-supplier-labs"


@pytest.fixture()
def actors(patient, other_patient, operator, outside_operator, admin):
    """Actors addressed by how the feature files name them."""
    return {
        "the patient": patient,
        "another patient": other_patient,
        "the operator": operator,
        "an outside operator": outside_operator,
        "the admin": admin,
    }


def _fresh(store, order):
    return store.get(str(order.id))


def _move(engine, order, actor, status, tracking=None):
    return engine.transition_status(str(order.id), status, actor, tracking=tracking)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the stock ledger holds {quantity:d} units of "{product_ref}"'))
def _(ledger, quantity, product_ref):
    ledger.set_level(product_ref, quantity)


@given(
    parsers.cfparse(
        'a marketplace order for {first_qty:d} units of "{first_ref}" at {first_price:f} '
        'and {second_qty:d} units of "{second_ref}" at {second_price:f}'
    ),
    target_fixture="order",
)
def _(engine, operator, first_qty, first_ref, first_price, second_qty, second_ref, second_price):
    result = engine.create_order(
        "marketplace",
        organization_id=operator.organization_id,
        items=[
            {"product_ref": first_ref, "quantity": first_qty, "unit_price": first_price},
            {"product_ref": second_ref, "quantity": second_qty, "unit_price": second_price},
        ],
        actor=operator,
        counterparty_id=SUPPLIER_ID,
    )
    assert result.ok, result.failure
    return result.order


@given(parsers.cfparse('a patient order for {quantity:d} units of "{product_ref}"'), target_fixture="order")
def _(engine, patient, quantity, product_ref):
    result = engine.create_order(
        "patient_purchase",
        organization_id=patient.organization_id,
        items=[{"product_ref": product_ref, "quantity": quantity, "unit_price": 12.5}],
        actor=patient,
    )
    assert result.ok, result.failure
    return result.order


@given("the operator has approved the order")
def _(engine, order, operator):
    assert _move(engine, order, operator, "approved").ok


@given(parsers.cfparse('the operator has moved the order to "{status}"'))
def _(engine, order, operator, status):
    result = _move(engine, order, operator, status)
    assert result.ok, result.failure


@given(parsers.cfparse('the operator has attached tracking "{number}" from "{carrier}"'))
def _(engine, order, operator, number, carrier):
    result = engine.attach_tracking(str(order.id), {"carrier_code": carrier, "tracking_number": number}, operator)
    assert result.ok, result.failure


@given(parsers.cfparse('the order is paid with "{method}"'), target_fixture="result")
@when(parsers.cfparse('the order is paid with "{method}"'), target_fixture="result")
def _(engine, order, operator, method):
    result = engine.record_payment(str(order.id), method, operator)
    assert result.ok, result.failure
    return result


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('{who} moves the order to "{status}"'), target_fixture="result")
def _(engine, order, actors, who, status):
    return _move(engine, order, actors[who], status)


@when(parsers.cfparse('the operator attaches tracking "{number}" from "{carrier}"'), target_fixture="result")
def _(engine, order, operator, number, carrier):
    return engine.attach_tracking(str(order.id), {"carrier_code": carrier, "tracking_number": number}, operator)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(store, order, status):
    assert _fresh(store, order).status == status


@then(parsers.cfparse("the order subtotal is {amount:f}"))
def _(store, order, amount):
    assert _fresh(store, order).amounts.subtotal == amount


@then("stock is reserved for the order")
def _(store, ledger, order):
    assert _fresh(store, order).stock_reserved is True
    assert str(order.id) in ledger.reservations


@then("stock is not reserved for the order")
def _(store, ledger, order):
    assert _fresh(store, order).stock_reserved is False
    assert str(order.id) not in ledger.reservations


@then(parsers.cfparse("the order history has {count:d} entries"))
def _(store, order, count):
    assert len(_fresh(store, order).history) == count


@then("the latest history entry is rejected")
def _(store, order):
    assert _fresh(store, order).history[-1].outcome == TransitionOutcome.REJECTED.value


@then(parsers.cfparse('the order is tracked as "{number}"'))
def _(store, order, number):
    assert _fresh(store, order).tracking.tracking_number == number


@then("the request succeeds")
def _(result):
    assert result.ok, result.failure


@then(parsers.cfparse('the request fails with "{code}"'))
def _(result, code):
    assert not result.ok
    assert result.failure.code == code


@then(parsers.cfparse('the ledger holds {quantity:d} units of "{product_ref}"'))
def _(ledger, quantity, product_ref):
    assert ledger.available(product_ref) == quantity
