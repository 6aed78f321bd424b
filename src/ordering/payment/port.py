"""Payment gateway port (abstract interface).

The gateway is an opaque approve/decline service: the ordering context only
needs to know whether a charge went through and under which transaction id.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChargeResult:
    """Result of a payment charge attempt."""

    success: bool
    transaction_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def charge(
        self,
        amount: float,
        currency: str,
        payment_method: str,
        idempotency_key: str,
    ) -> ChargeResult:
        """Charge ``amount`` and report approval or decline."""
        ...
