"""Order status transition table.

Pure lookup with no I/O: given the current status, the requested status
and who is asking, decide whether the move is legal.

Graph:
    draft → pending | cancelled
    pending → approved | cancelled
    approved → payment_confirmed | cancelled
    payment_confirmed → in_preparation | cancelled | refunded
    in_preparation → shipped | cancelled
    shipped → delivered | cancelled (platform admin override)
    delivered → refunded
    cancelled, refunded: terminal
"""

from dataclasses import dataclass

from shared.actor import ActorRole

from ordering.order.status import TERMINAL_STATUSES, OrderStatus

_OPERATORS = frozenset({ActorRole.ORGANIZATION_OPERATOR, ActorRole.PLATFORM_ADMIN})
_ORIGINATOR_OR_OPERATORS = _OPERATORS | {ActorRole.PATIENT}
_PLATFORM_ADMIN = frozenset({ActorRole.PLATFORM_ADMIN})

TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], frozenset[ActorRole]] = {
    (OrderStatus.DRAFT, OrderStatus.PENDING): _ORIGINATOR_OR_OPERATORS,
    (OrderStatus.DRAFT, OrderStatus.CANCELLED): _OPERATORS,
    (OrderStatus.PENDING, OrderStatus.APPROVED): _OPERATORS,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): _ORIGINATOR_OR_OPERATORS,
    (OrderStatus.APPROVED, OrderStatus.PAYMENT_CONFIRMED): _OPERATORS,
    (OrderStatus.APPROVED, OrderStatus.CANCELLED): _ORIGINATOR_OR_OPERATORS,
    (OrderStatus.PAYMENT_CONFIRMED, OrderStatus.IN_PREPARATION): _OPERATORS,
    (OrderStatus.PAYMENT_CONFIRMED, OrderStatus.CANCELLED): _OPERATORS,
    (OrderStatus.PAYMENT_CONFIRMED, OrderStatus.REFUNDED): _OPERATORS,
    (OrderStatus.IN_PREPARATION, OrderStatus.SHIPPED): _OPERATORS,
    (OrderStatus.IN_PREPARATION, OrderStatus.CANCELLED): _OPERATORS,
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED): _OPERATORS,
    (OrderStatus.SHIPPED, OrderStatus.CANCELLED): _PLATFORM_ADMIN,
    (OrderStatus.DELIVERED, OrderStatus.REFUNDED): _OPERATORS,
}

# Denial reasons
UNKNOWN_STATUS = "unknown_status"
SELF_TRANSITION = "self_transition"
TERMINAL_STATUS = "terminal_status"
TRANSITION_NOT_ALLOWED = "transition_not_allowed"
ROLE_NOT_PERMITTED = "role_not_permitted"
NOT_ORIGINATOR = "not_originator"

AUTHORIZATION_DENIALS = frozenset({ROLE_NOT_PERMITTED, NOT_ORIGINATOR})


@dataclass(frozen=True)
class Allowed:
    required_roles: frozenset[ActorRole]


@dataclass(frozen=True)
class Denied:
    reason: str

    @property
    def is_authorization_failure(self) -> bool:
        return self.reason in AUTHORIZATION_DENIALS


def lookup(current, requested) -> Allowed | Denied:
    """Decide whether ``current → requested`` is an edge of the graph.

    Accepts enum members or raw status strings.
    """
    current_status = OrderStatus.parse(current)
    requested_status = OrderStatus.parse(requested)
    if current_status is None or requested_status is None:
        return Denied(UNKNOWN_STATUS)
    if current_status == requested_status:
        return Denied(SELF_TRANSITION)
    if current_status in TERMINAL_STATUSES:
        return Denied(TERMINAL_STATUS)

    roles = TRANSITIONS.get((current_status, requested_status))
    if roles is None:
        return Denied(TRANSITION_NOT_ALLOWED)
    return Allowed(required_roles=roles)


def evaluate(current, requested, role: ActorRole, is_originator: bool = False) -> Allowed | Denied:
    """Check the graph edge and then the actor's right to take it.

    Patients may only move orders they originated.
    """
    decision = lookup(current, requested)
    if isinstance(decision, Denied):
        return decision
    if role not in decision.required_roles:
        return Denied(ROLE_NOT_PERMITTED)
    if role is ActorRole.PATIENT and not is_originator:
        return Denied(NOT_ORIGINATOR)
    return decision


def allowed_targets(current, role: ActorRole) -> list[str]:
    """Statuses ``role`` could request from ``current``, in graph order."""
    current_status = OrderStatus.parse(current)
    if current_status is None:
        return []
    return [
        target.value
        for (source, target), roles in TRANSITIONS.items()
        if source == current_status and role in roles
    ]
