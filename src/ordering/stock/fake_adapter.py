"""In-memory stock ledger for development and testing.

Keeps per-product availability in a dict guarded by a lock, so concurrent
reservations never oversell. Levels are seeded with ``set_level``.
"""

import threading
from uuid import uuid4

from ordering.order.failures import Shortage
from ordering.stock.port import ReservationResult, StockLedger, StockLine


class FakeStockLedger(StockLedger):
    """Configurable in-memory stock ledger."""

    def __init__(self, default_level: int = 0) -> None:
        self.default_level = default_level
        self.levels: dict[str, int] = {}
        self.reservations: dict[str, tuple[str, dict[str, int]]] = {}
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def set_level(self, product_ref: str, quantity: int) -> None:
        with self._lock:
            self.levels[product_ref] = quantity

    def available(self, product_ref: str) -> int:
        with self._lock:
            return self.levels.get(product_ref, self.default_level)

    def reserve(self, order_id: str, lines: list[StockLine]) -> ReservationResult:
        requested: dict[str, int] = {}
        for line in lines:
            requested[line.product_ref] = requested.get(line.product_ref, 0) + line.quantity

        with self._lock:
            self.calls.append({"method": "reserve", "order_id": order_id, "lines": dict(requested)})

            existing = self.reservations.get(order_id)
            if existing is not None:
                return ReservationResult(success=True, reservation_id=existing[0], created=False)

            shortages = tuple(
                Shortage(product_ref=ref, requested=qty, available=self.levels.get(ref, self.default_level))
                for ref, qty in requested.items()
                if self.levels.get(ref, self.default_level) < qty
            )
            if shortages:
                return ReservationResult(success=False, shortages=shortages)

            for ref, qty in requested.items():
                self.levels[ref] = self.levels.get(ref, self.default_level) - qty
            reservation_id = f"fake_res_{uuid4().hex[:12]}"
            self.reservations[order_id] = (reservation_id, requested)
            return ReservationResult(success=True, reservation_id=reservation_id, created=True)

    def release(self, order_id: str) -> bool:
        with self._lock:
            self.calls.append({"method": "release", "order_id": order_id})

            existing = self.reservations.pop(order_id, None)
            if existing is None:
                return False
            for ref, qty in existing[1].items():
                self.levels[ref] = self.levels.get(ref, self.default_level) + qty
            return True
