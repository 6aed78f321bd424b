"""Closed vocabularies for the Order aggregate."""

from enum import Enum


class OrderStatus(Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    PAYMENT_CONFIRMED = "payment_confirmed"
    IN_PREPARATION = "in_preparation"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def parse(cls, value) -> "OrderStatus | None":
        """Return the member for ``value`` or None when it is not a known status."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

EXPEDITION_STATUSES = frozenset({OrderStatus.PAYMENT_CONFIRMED, OrderStatus.IN_PREPARATION})


class OrderOrigin(Enum):
    PATIENT_PURCHASE = "patient_purchase"
    MARKETPLACE = "marketplace"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class TransitionOutcome(Enum):
    APPLIED = "applied"
    REJECTED = "rejected"
