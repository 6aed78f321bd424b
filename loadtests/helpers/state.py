"""Per-user state for the Locust order journeys."""

from dataclasses import dataclass, field


@dataclass
class OrderState:
    """The order one simulated user is walking through the lifecycle."""

    order_id: str | None = None
    order_number: str | None = None
    current_status: str = "pending"
    visited: list[str] = field(default_factory=list)
