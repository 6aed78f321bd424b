"""Typed failure values returned by the fulfillment engine.

Business refusals are returned, not raised: callers branch on the failure
type and render it. Only infrastructure trouble (``StorageError``) is raised.
"""

from dataclasses import asdict, dataclass, field
from typing import ClassVar


@dataclass(frozen=True)
class OrderFailure:
    code: ClassVar[str] = "order_failure"

    def to_dict(self) -> dict:
        return {"error": self.code, **asdict(self)}


@dataclass(frozen=True)
class InvalidItems(OrderFailure):
    """Creation input was malformed. ``errors`` maps field names to messages."""

    code: ClassVar[str] = "invalid_items"

    errors: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class InvalidTransition(OrderFailure):
    code: ClassVar[str] = "invalid_transition"

    current_status: str
    requested_status: str
    reason: str
    allowed_targets: tuple[str, ...] = ()


@dataclass(frozen=True)
class Shortage:
    product_ref: str
    requested: int
    available: int


@dataclass(frozen=True)
class InsufficientStock(OrderFailure):
    code: ClassVar[str] = "insufficient_stock"

    order_id: str
    current_status: str
    shortages: tuple[Shortage, ...] = ()


@dataclass(frozen=True)
class InvalidState(OrderFailure):
    """The order is not in a state where the operation's precondition holds."""

    code: ClassVar[str] = "invalid_state"

    order_id: str
    current_status: str
    operation: str
    reason: str


@dataclass(frozen=True)
class NotFound(OrderFailure):
    code: ClassVar[str] = "not_found"

    order_id: str


@dataclass(frozen=True)
class Forbidden(OrderFailure):
    code: ClassVar[str] = "forbidden"

    reason: str


@dataclass(frozen=True)
class Conflict(OrderFailure):
    """Another writer changed the order's status between read and commit."""

    code: ClassVar[str] = "conflict"

    order_id: str


@dataclass(frozen=True)
class PaymentDeclined(OrderFailure):
    code: ClassVar[str] = "payment_declined"

    order_id: str
    reason: str


@dataclass(frozen=True)
class OrderResult:
    """Outcome of an engine call: an order, or the reason there is none."""

    order: object | None = None
    failure: OrderFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, order) -> "OrderResult":
        return cls(order=order)

    @classmethod
    def fail(cls, failure: OrderFailure, order=None) -> "OrderResult":
        return cls(order=order, failure=failure)
