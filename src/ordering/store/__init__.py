"""Order store abstraction — pluggable persistence for orders."""

import os

_store_instance = None


def get_order_store():
    """Return the configured order store (singleton).

    Uses the Protean repository adapter by default. Configure via the
    ORDER_STORE_ADAPTER environment variable.
    """
    global _store_instance
    if _store_instance is None:
        adapter = os.environ.get("ORDER_STORE_ADAPTER", "repository")
        if adapter == "repository":
            from ordering.config import EngineSettings
            from ordering.store.repository_adapter import RepositoryOrderStore

            settings = EngineSettings.from_env()
            _store_instance = RepositoryOrderStore(
                default_timeout=settings.store_timeout,
                scan_batch_size=settings.scan_batch_size,
            )
        else:
            raise ValueError(f"Unknown order store adapter: {adapter}")
    return _store_instance


def set_order_store(store) -> None:
    """Replace the order store singleton (useful for testing)."""
    global _store_instance
    _store_instance = store


def reset_order_store():
    """Reset the order store singleton (useful for testing)."""
    global _store_instance
    _store_instance = None
