"""Stock ledger factory.

Provides get_stock_ledger() / set_stock_ledger() to swap implementations.
Only the in-memory ledger ships with this package; real inventory systems
plug in through ``set_stock_ledger`` at application start-up.
"""

import os

from ordering.stock.port import StockLedger

_current_ledger: StockLedger | None = None


def get_stock_ledger() -> StockLedger:
    """Return the current stock ledger. Defaults to FakeStockLedger."""
    global _current_ledger
    if _current_ledger is None:
        adapter = os.environ.get("STOCK_LEDGER_ADAPTER", "fake")
        if adapter == "fake":
            from ordering.stock.fake_adapter import FakeStockLedger

            _current_ledger = FakeStockLedger(default_level=int(os.environ.get("STOCK_DEFAULT_LEVEL", "0")))
        else:
            raise ValueError(f"Unknown stock ledger adapter: {adapter}")
    return _current_ledger


def set_stock_ledger(ledger: StockLedger) -> None:
    """Override the active stock ledger (useful for tests)."""
    global _current_ledger
    _current_ledger = ledger


def reset_stock_ledger() -> None:
    """Reset to default stock ledger."""
    global _current_ledger
    _current_ledger = None
