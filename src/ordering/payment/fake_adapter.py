"""Configurable fake payment gateway for development and testing.

Simulates approve/decline answers without any external calls. Tests flip
it to decline with ``configure``.
"""

from uuid import uuid4

from ordering.payment.port import ChargeResult, PaymentGateway


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def charge(
        self,
        amount: float,
        currency: str,
        payment_method: str,
        idempotency_key: str,
    ) -> ChargeResult:
        self.calls.append(
            {
                "method": "charge",
                "amount": amount,
                "currency": currency,
                "payment_method": payment_method,
                "idempotency_key": idempotency_key,
            }
        )

        if self.should_succeed:
            return ChargeResult(success=True, transaction_id=f"fake_txn_{uuid4().hex[:12]}")
        return ChargeResult(success=False, failure_reason=self.failure_reason)
