"""Read-side helpers shared by order listings and the expedition queue.

Scope rules:
    platform admins see every order
    operators see orders of their own organization
    patients see only the orders they created
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time

from shared.actor import Actor

from ordering.order.order import Order

ALL_STATUSES = "all"


@dataclass(frozen=True)
class OrderFilter:
    status: str = ALL_STATUSES
    organization_id: str | None = None
    counterparty_id: str | None = None
    search: str | None = None
    created_from: date | datetime | None = None
    created_to: date | datetime | None = None
    page: int = 1
    limit: int = 20


@dataclass(frozen=True)
class OrderPage:
    items: list[dict] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> dict:
        return {
            "orders": self.items,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "total_pages": self.total_pages,
            },
        }


def can_view(order: Order, actor: Actor) -> bool:
    if actor.is_platform_admin:
        return True
    if actor.is_patient:
        return str(order.created_by) == str(actor.id) and actor.belongs_to(order.organization_id)
    return actor.belongs_to(order.organization_id)


def visible_orders(store, actor: Actor, statuses: list[str] | None = None, timeout: float | None = None) -> list[Order]:
    """Every order ``actor`` may see, optionally narrowed to ``statuses``."""
    if actor.is_platform_admin:
        return store.find(statuses=statuses, timeout=timeout)
    if actor.organization_id is None:
        return []

    orders = store.find(organization_id=actor.organization_id, statuses=statuses, timeout=timeout)
    return [order for order in orders if can_view(order, actor)]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _range_start(value: date | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return _as_utc(value)
    return datetime.combine(value, time.min, tzinfo=UTC)


def _range_end(value: date | datetime | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return _as_utc(value)
    return datetime.combine(value, time.max, tzinfo=UTC)


def matches(order: Order, order_filter: OrderFilter) -> bool:
    """Apply the in-memory part of a filter: status, parties, text and dates."""
    if order_filter.status and order_filter.status != ALL_STATUSES and order.status != order_filter.status:
        return False
    if order_filter.organization_id and str(order.organization_id) != str(order_filter.organization_id):
        return False
    if order_filter.counterparty_id and str(order.counterparty_id) != str(order_filter.counterparty_id):
        return False

    if order_filter.search:
        needle = order_filter.search.strip().lower()
        haystack = " ".join(filter(None, [order.customer_name, order.description, order.order_number])).lower()
        if needle not in haystack:
            return False

    created_at = _as_utc(order.created_at)
    start = _range_start(order_filter.created_from)
    end = _range_end(order_filter.created_to)
    if start is not None and (created_at is None or created_at < start):
        return False
    if end is not None and (created_at is None or created_at > end):
        return False
    return True


def newest_first(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: _as_utc(o.created_at) or datetime.min.replace(tzinfo=UTC), reverse=True)


def oldest_first(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: _as_utc(o.created_at) or datetime.min.replace(tzinfo=UTC))


def _tracking_to_dict(tracking) -> dict | None:
    if tracking is None:
        return None
    return {
        "carrier_code": tracking.carrier_code,
        "tracking_number": tracking.tracking_number,
        "url": tracking.url,
        "estimated_delivery": tracking.estimated_delivery.isoformat() if tracking.estimated_delivery else None,
    }


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_order(order: Order, names: dict[str, str] | None = None) -> dict:
    """Persisted order shape, plus display names when ``names`` is given."""
    amounts = order.amounts
    data = {
        "id": str(order.id),
        "order_number": order.order_number,
        "origin": order.origin,
        "organization_id": str(order.organization_id),
        "counterparty_id": str(order.counterparty_id) if order.counterparty_id else None,
        "created_by": str(order.created_by),
        "customer_name": order.customer_name,
        "description": order.description,
        "items": [
            {
                "line_number": item.line_number,
                "product_ref": item.product_ref,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
            }
            for item in order.ordered_items
        ],
        "amounts": {
            "subtotal": amounts.subtotal,
            "tax": amounts.tax,
            "shipping": amounts.shipping,
            "discount": amounts.discount,
            "total": amounts.total,
            "currency": amounts.currency,
        }
        if amounts
        else None,
        "status": order.status,
        "payment_status": order.payment_status,
        "stock_reserved": bool(order.stock_reserved),
        "tracking": _tracking_to_dict(order.tracking),
        "staged_tracking": _tracking_to_dict(order.staged_tracking),
        "status_history": [
            {
                "sequence": entry.sequence,
                "from_status": entry.from_status,
                "to_status": entry.to_status,
                "actor_id": str(entry.actor_id),
                "actor_role": entry.actor_role,
                "occurred_at": _isoformat(entry.occurred_at),
                "reason": entry.reason,
                "outcome": entry.outcome,
            }
            for entry in order.history
        ],
        "cancel_reason": order.cancel_reason,
        "created_at": _isoformat(order.created_at),
        "updated_at": _isoformat(order.updated_at),
    }
    if names is not None:
        data["organization_name"] = names.get(str(order.organization_id))
        data["counterparty_name"] = names.get(str(order.counterparty_id)) if order.counterparty_id else None
    return data

