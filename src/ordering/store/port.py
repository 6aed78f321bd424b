"""Order store port (abstract interface).

Durable record of orders keyed by id. Every call carries a timeout; an
adapter that cannot finish in time raises ``StorageError`` instead of
blocking the caller.
"""

from abc import ABC, abstractmethod


class StorageError(Exception):
    """The order store is unreachable, timed out, or rejected a write."""


class ConflictError(Exception):
    """Compare-and-set lost: the stored status no longer matches the expected one."""

    def __init__(self, order_id: str, expected_status: str, actual_status: str | None) -> None:
        super().__init__(f"Order {order_id} is {actual_status}, expected {expected_status}")
        self.order_id = order_id
        self.expected_status = expected_status
        self.actual_status = actual_status


class OrderStore(ABC):
    """Abstract order store interface."""

    @abstractmethod
    def get(self, order_id: str, timeout: float | None = None):
        """Return the order with ``order_id`` or None."""
        ...

    @abstractmethod
    def add(self, order, timeout: float | None = None) -> None:
        """Persist a newly created order."""
        ...

    @abstractmethod
    def compare_and_set(self, order, expected_status: str, timeout: float | None = None) -> None:
        """Persist ``order`` only if the stored status still equals ``expected_status``.

        Raises ``ConflictError`` when it does not.
        """
        ...

    @abstractmethod
    def find(
        self,
        organization_id: str | None = None,
        statuses: list[str] | None = None,
        counterparty_id: str | None = None,
        timeout: float | None = None,
    ) -> list:
        """Return orders, optionally narrowed by owner, supplier and a set of statuses."""
        ...
