"""Runtime settings for the order fulfillment engine.

Values come from environment variables so a deployment can tune storage
timeouts and scan sizes without code changes.
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class EngineSettings:
    store_timeout: float = 2.0
    conflict_retries: int = 1
    order_number_prefix: str = "ORD"
    scan_batch_size: int = 500
    currency: str = "BRL"
    default_page_size: int = 20
    max_page_size: int = 100

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            store_timeout=float(os.environ.get("ORDER_STORE_TIMEOUT", "2.0")),
            conflict_retries=int(os.environ.get("ORDER_CONFLICT_RETRIES", "1")),
            order_number_prefix=os.environ.get("ORDER_NUMBER_PREFIX", "ORD"),
            scan_batch_size=int(os.environ.get("ORDER_SCAN_BATCH_SIZE", "500")),
            currency=os.environ.get("ORDER_CURRENCY", "BRL"),
        )
