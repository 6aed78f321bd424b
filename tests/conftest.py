import os
from pathlib import Path

import pytest

_DIRECTORY_MARKERS = {
    "domain": "domain",
    "application": "application",
    "bdd": "bdd",
    "integration": "integration",
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Select the config environment and the in-memory adapters before any
    ordering module reads them.
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("ORDER_STORE_ADAPTER", "repository")
    os.environ.setdefault("STOCK_LEDGER_ADAPTER", "fake")
    os.environ.setdefault("PAYMENT_GATEWAY_ADAPTER", "fake")


def pytest_collection_modifyitems(config, items):
    """Mark tests by the layer directory they live in."""
    for item in items:
        parts = Path(item.fspath).parts
        for directory, marker in _DIRECTORY_MARKERS.items():
            if directory in parts:
                item.add_marker(getattr(pytest.mark, marker))

        # HTTP round trips are the slowest tests in the suite
        if "integration" in parts and not any(m.name == "fast" for m in item.iter_markers()):
            item.add_marker(pytest.mark.slow)
