"""Stock ledger port (abstract interface).

The inventory collaborator the fulfillment engine reserves against when
payment is confirmed and releases when an order is cancelled.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class StockLine:
    """Quantity of one product requested by an order."""

    product_ref: str
    quantity: int


@dataclass(frozen=True)
class ReservationResult:
    """Result of an all-or-nothing reservation attempt.

    ``created`` is False when the order already held a reservation and the
    call returned it unchanged.
    """

    success: bool
    reservation_id: str | None = None
    created: bool = False
    shortages: tuple = field(default_factory=tuple)  # tuple[Shortage, ...]


class StockLedger(ABC):
    """Abstract stock ledger interface."""

    @abstractmethod
    def reserve(self, order_id: str, lines: list[StockLine]) -> ReservationResult:
        """Reserve every line or none of them. Idempotent per order."""
        ...

    @abstractmethod
    def release(self, order_id: str) -> bool:
        """Release the order's reservation. Returns False when there was none."""
        ...

    @abstractmethod
    def available(self, product_ref: str) -> int:
        """Quantity of ``product_ref`` not held by any reservation."""
        ...
