"""Application tests for compare-and-set commits, retries and store timeouts."""

import pytest
from ordering.engine import FulfillmentEngine
from ordering.order.failures import Conflict, InvalidTransition
from ordering.order.status import OrderStatus
from ordering.store.port import ConflictError, StorageError
from ordering.store.repository_adapter import RepositoryOrderStore


class InterleavingStore(RepositoryOrderStore):
    """Runs ``before_commit`` once, just ahead of the next compare-and-set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.before_commit = None

    def compare_and_set(self, order, expected_status, timeout=None):
        hook, self.before_commit = self.before_commit, None
        if hook is not None:
            hook()
        super().compare_and_set(order, expected_status, timeout=timeout)


class ContestedStore(RepositoryOrderStore):
    """Loses the first ``losses`` compare-and-sets."""

    def __init__(self, losses=1000, **kwargs):
        super().__init__(**kwargs)
        self.losses = losses
        self.attempts = 0

    def compare_and_set(self, order, expected_status, timeout=None):
        self.attempts += 1
        if self.attempts <= self.losses:
            raise ConflictError(str(order.id), expected_status, "unknown")
        super().compare_and_set(order, expected_status, timeout=timeout)


@pytest.fixture()
def interleaving_store():
    return InterleavingStore(default_timeout=1.0)


@pytest.fixture()
def racing_engine(interleaving_store, ledger, gateway):
    return FulfillmentEngine(store=interleaving_store, stock_ledger=ledger, gateway=gateway)


class TestInterleavedWriters:
    def test_cancel_wins_over_payment_confirmation(
        self, racing_engine, paid_order, operator, admin, ledger, interleaving_store
    ):
        order_id = str(paid_order.id)
        interleaving_store.before_commit = lambda: racing_engine.transition_status(order_id, "cancelled", admin)

        result = racing_engine.transition_status(order_id, "payment_confirmed", operator)

        assert isinstance(result.failure, InvalidTransition)
        assert result.failure.reason == "terminal_status"
        order = interleaving_store.get(order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.stock_reserved is False
        assert ledger.available("oil-cbd-10") == 100
        assert order_id not in ledger.reservations

    def test_concurrent_same_target_applies_once(
        self, racing_engine, patient_order, operator, admin, interleaving_store
    ):
        order_id = str(patient_order.id)
        interleaving_store.before_commit = lambda: racing_engine.transition_status(order_id, "approved", admin)

        result = racing_engine.transition_status(order_id, "approved", operator)

        assert result.ok
        history = interleaving_store.get(order_id).history
        assert [e.to_status for e in history] == ["pending", "approved"]
        assert history[-1].actor_id == admin.id


class TestSingleLostCommit:
    def test_retry_succeeds(self, patient_order, operator, ledger, gateway):
        store = ContestedStore(losses=1, default_timeout=1.0)
        engine = FulfillmentEngine(store=store, stock_ledger=ledger, gateway=gateway)

        result = engine.transition_status(str(patient_order.id), "approved", operator)

        assert result.ok
        assert store.attempts == 2
        assert store.get(str(patient_order.id)).status == OrderStatus.APPROVED.value

    def test_confirmation_reserves_exactly_once(self, paid_order, operator, ledger, gateway):
        store = ContestedStore(losses=1, default_timeout=1.0)
        engine = FulfillmentEngine(store=store, stock_ledger=ledger, gateway=gateway)
        order_id = str(paid_order.id)

        result = engine.transition_status(order_id, "payment_confirmed", operator)

        assert result.ok
        assert ledger.available("oil-cbd-10") == 98
        assert store.get(order_id).stock_reserved is True
        assert order_id in ledger.reservations


class TestExhaustedRetries:
    def test_conflict_after_retry(self, paid_order, operator, ledger, gateway):
        store = ContestedStore(default_timeout=1.0)
        engine = FulfillmentEngine(store=store, stock_ledger=ledger, gateway=gateway)

        result = engine.transition_status(str(paid_order.id), "payment_confirmed", operator)

        assert isinstance(result.failure, Conflict)
        assert store.attempts == 2

    def test_reservations_from_lost_commits_are_released(self, paid_order, operator, ledger, gateway):
        store = ContestedStore(default_timeout=1.0)
        engine = FulfillmentEngine(store=store, stock_ledger=ledger, gateway=gateway)
        order_id = str(paid_order.id)

        engine.transition_status(order_id, "payment_confirmed", operator)

        assert ledger.available("oil-cbd-10") == 100
        assert order_id not in ledger.reservations
        assert store.get(order_id).status == OrderStatus.APPROVED.value


class TestStoreTimeouts:
    def test_blocked_store_raises_storage_error(self, engine, store, patient_order, operator):
        store._lock.acquire()
        try:
            with pytest.raises(StorageError):
                engine.transition_status(str(patient_order.id), "approved", operator, timeout=0.05)
        finally:
            store._lock.release()

    def test_order_is_untouched_after_a_timeout(self, engine, store, patient_order, operator):
        store._lock.acquire()
        try:
            with pytest.raises(StorageError):
                engine.get_order(str(patient_order.id), operator, timeout=0.05)
        finally:
            store._lock.release()

        assert store.get(str(patient_order.id)).status == OrderStatus.PENDING.value
