import pytest
from ordering.engine import FulfillmentEngine
from ordering.payment import reset_gateway, set_gateway
from ordering.payment.fake_adapter import FakeGateway
from ordering.stock import reset_stock_ledger, set_stock_ledger
from ordering.stock.fake_adapter import FakeStockLedger
from ordering.store import reset_order_store
from ordering.store.repository_adapter import RepositoryOrderStore
from protean.integrations.pytest import DomainFixture
from shared.actor import Actor, ActorRole

ORG_ID = "org-green-valley"
OTHER_ORG_ID = "org-hill-side"
SUPPLIER_ID = "org-supplier-labs"


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield

        from protean import current_domain

        for _, provider in current_domain.providers.items():
            provider._data_reset()

        current_domain.event_store.store._data_reset()


@pytest.fixture(autouse=True)
def _reset_adapters():
    yield
    reset_order_store()
    reset_stock_ledger()
    reset_gateway()


@pytest.fixture()
def store():
    return RepositoryOrderStore(default_timeout=1.0)


@pytest.fixture()
def ledger():
    ledger = FakeStockLedger()
    ledger.set_level("oil-cbd-10", 100)
    ledger.set_level("flower-a", 50)
    set_stock_ledger(ledger)
    return ledger


@pytest.fixture()
def gateway():
    gateway = FakeGateway()
    set_gateway(gateway)
    return gateway


@pytest.fixture()
def engine(store, ledger, gateway):
    return FulfillmentEngine(store=store, stock_ledger=ledger, gateway=gateway)


@pytest.fixture()
def patient():
    return Actor(id="patient-1", role=ActorRole.PATIENT, organization_id=ORG_ID)


@pytest.fixture()
def other_patient():
    return Actor(id="patient-2", role=ActorRole.PATIENT, organization_id=ORG_ID)


@pytest.fixture()
def operator():
    return Actor(id="operator-1", role=ActorRole.ORGANIZATION_OPERATOR, organization_id=ORG_ID)


@pytest.fixture()
def outside_operator():
    return Actor(id="operator-9", role=ActorRole.ORGANIZATION_OPERATOR, organization_id=OTHER_ORG_ID)


@pytest.fixture()
def supplier_operator():
    return Actor(id="operator-s", role=ActorRole.ORGANIZATION_OPERATOR, organization_id=SUPPLIER_ID)


@pytest.fixture()
def admin():
    return Actor(id="admin-1", role=ActorRole.PLATFORM_ADMIN)


@pytest.fixture()
def patient_order(engine, patient):
    """A pending patient purchase: 2 x oil-cbd-10 at 12.50."""
    result = engine.create_order(
        "patient_purchase",
        organization_id=ORG_ID,
        items=[{"product_ref": "oil-cbd-10", "quantity": 2, "unit_price": 12.5}],
        actor=patient,
        customer_name="Maria Souza",
        description="Monthly CBD oil",
    )
    assert result.ok
    return result.order


@pytest.fixture()
def drive(engine):
    """Move an order through several statuses, failing the test on any refusal."""

    def _drive(order_id, actor, *statuses, **kwargs):
        result = None
        for status in statuses:
            result = engine.transition_status(order_id, status, actor, **kwargs)
            assert result.ok, result.failure
        return result.order

    return _drive


@pytest.fixture()
def paid_order(engine, drive, patient_order, operator):
    """The patient order approved and paid, still ``approved``."""
    drive(str(patient_order.id), operator, "approved")
    result = engine.record_payment(str(patient_order.id), "pix", operator)
    assert result.ok, result.failure
    return result.order


@pytest.fixture()
def confirmed_order(drive, paid_order, operator):
    return drive(str(paid_order.id), operator, "payment_confirmed")


@pytest.fixture()
def preparing_order(drive, confirmed_order, operator):
    return drive(str(confirmed_order.id), operator, "in_preparation")
