"""Expedition queue — warehouse view of orders waiting to be prepared or shipped.

Read-only: it lists orders straight from the order store and never
mutates them. Oldest orders come first so the warehouse works in arrival
order.
"""

from dataclasses import dataclass
from datetime import datetime

from shared.actor import Actor, ActorRole

from ordering.order.failures import Forbidden
from ordering.order.queries import oldest_first, visible_orders
from ordering.order.status import EXPEDITION_STATUSES


@dataclass(frozen=True)
class ExpeditionEntry:
    order_id: str
    order_number: str
    status: str
    organization_id: str
    counterparty_id: str | None
    customer_name: str | None
    item_count: int
    total: float
    is_patient_order: bool
    has_staged_tracking: bool
    created_at: datetime | None

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "status": self.status,
            "organization_id": self.organization_id,
            "counterparty_id": self.counterparty_id,
            "customer_name": self.customer_name,
            "item_count": self.item_count,
            "total": self.total,
            "is_patient_order": self.is_patient_order,
            "has_staged_tracking": self.has_staged_tracking,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class ExpeditionQueue:
    entries: list[ExpeditionEntry]
    failure: Forbidden | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def list_expedition_ready(store, actor: Actor, organization_id: str | None = None, timeout: float | None = None):
    """Orders in ``payment_confirmed`` or ``in_preparation`` visible to ``actor``."""
    if actor.role is ActorRole.PATIENT:
        return ExpeditionQueue(entries=[], failure=Forbidden(reason="operator_role_required"))
    if organization_id is not None and not actor.belongs_to(organization_id):
        return ExpeditionQueue(entries=[], failure=Forbidden(reason="outside_organization_scope"))

    statuses = sorted(status.value for status in EXPEDITION_STATUSES)
    orders = visible_orders(store, actor, statuses=statuses, timeout=timeout)
    if organization_id is not None:
        orders = [o for o in orders if str(o.organization_id) == str(organization_id)]

    return ExpeditionQueue(
        entries=[
            ExpeditionEntry(
                order_id=str(order.id),
                order_number=order.order_number,
                status=order.status,
                organization_id=str(order.organization_id),
                counterparty_id=str(order.counterparty_id) if order.counterparty_id else None,
                customer_name=order.customer_name,
                item_count=sum(item.quantity for item in order.items or []),
                total=order.amounts.total if order.amounts else 0.0,
                is_patient_order=order.is_patient_order,
                has_staged_tracking=order.staged_tracking is not None,
                created_at=order.created_at,
            )
            for order in oldest_first(orders)
        ]
    )
