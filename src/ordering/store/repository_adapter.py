"""Order store backed by the domain's Protean repository.

Writes for the whole process go through one lock so the status check and
the write of ``compare_and_set`` cannot interleave with another writer.
The lock is acquired with the caller's timeout; waiting longer raises
``StorageError``.
"""

import threading
from contextlib import contextmanager

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.order.order import Order
from ordering.store.port import ConflictError, OrderStore, StorageError

logger = structlog.get_logger(__name__)


class RepositoryOrderStore(OrderStore):
    def __init__(self, default_timeout: float = 2.0, scan_batch_size: int = 500) -> None:
        self.default_timeout = default_timeout
        self.scan_batch_size = scan_batch_size
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self, timeout: float | None):
        wait = self.default_timeout if timeout is None else timeout
        if not self._lock.acquire(timeout=wait):
            logger.warning("Order store lock timed out", timeout=wait)
            raise StorageError(f"Order store did not respond within {wait}s")
        try:
            yield
        finally:
            self._lock.release()

    def _repository(self):
        return current_domain.repository_for(Order)

    def get(self, order_id: str, timeout: float | None = None) -> Order | None:
        with self._locked(timeout):
            return self._load(order_id)

    def _load(self, order_id: str) -> Order | None:
        try:
            return self._repository().get(order_id)
        except ObjectNotFoundError:
            return None
        except Exception as exc:
            raise StorageError(f"Could not read order {order_id}: {exc}") from exc

    def add(self, order: Order, timeout: float | None = None) -> None:
        with self._locked(timeout):
            self._persist(order)

    def compare_and_set(self, order: Order, expected_status: str, timeout: float | None = None) -> None:
        with self._locked(timeout):
            stored = self._load(str(order.id))
            actual = stored.status if stored is not None else None
            if actual != expected_status:
                raise ConflictError(str(order.id), expected_status, actual)
            self._persist(order)

    def _persist(self, order: Order) -> None:
        try:
            self._repository().add(order)
        except ExpectedVersionError as exc:
            raise ConflictError(str(order.id), order.status, None) from exc
        except Exception as exc:
            logger.error("Order write failed", order_id=str(order.id), error=str(exc))
            raise StorageError(f"Could not persist order {order.id}: {exc}") from exc

    def find(
        self,
        organization_id: str | None = None,
        statuses: list[str] | None = None,
        counterparty_id: str | None = None,
        timeout: float | None = None,
    ) -> list[Order]:
        criteria = {}
        if organization_id is not None:
            criteria["organization_id"] = str(organization_id)
        if counterparty_id is not None:
            criteria["counterparty_id"] = str(counterparty_id)
        if statuses:
            criteria["status__in"] = list(statuses)

        with self._locked(timeout):
            try:
                query = self._repository()._dao.query
                if criteria:
                    query = query.filter(**criteria)
                return self._scan(query.order_by("created_at"))
            except Exception as exc:
                raise StorageError(f"Could not scan orders: {exc}") from exc

    def _scan(self, query) -> list[Order]:
        """Read every match in batches so no order is left out of a listing."""
        orders: list[Order] = []
        offset = 0
        while True:
            result = query.offset(offset).limit(self.scan_batch_size).all()
            orders.extend(result.items)
            if not result.has_next:
                return orders
            offset += self.scan_batch_size
