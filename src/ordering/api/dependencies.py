"""Request dependencies for the Ordering API."""

from fastapi import Header, HTTPException
from shared.actor import Actor, ActorRole

from ordering.engine import FulfillmentEngine


def resolve_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    x_organization_id: str | None = Header(default=None),
) -> Actor:
    """Build the calling actor from headers set by the session layer."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Actor identity headers are required")
    try:
        role = ActorRole(x_actor_role)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=f"Unknown actor role: {x_actor_role}") from exc
    return Actor(id=x_actor_id, role=role, organization_id=x_organization_id or None)


def get_engine() -> FulfillmentEngine:
    """A fresh engine per request, wired to the configured adapters."""
    return FulfillmentEngine()
