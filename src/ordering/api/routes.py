"""FastAPI routes for the Ordering domain — patient purchases, marketplace
orders and the organization's fulfillment workflow.

Handlers resolve the actor, call the fulfillment engine directly and map
its typed failures to HTTP statuses. Handlers are plain functions so FastAPI
runs them in its threadpool while the order store waits on its lock.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from shared.actor import Actor

from ordering.api.dependencies import get_engine, resolve_actor
from ordering.api.errors import failure_response
from ordering.api.schemas import (
    CreatedOrderResponse,
    CreateMarketplaceOrderRequest,
    CreatePatientOrderRequest,
    OrderListQuery,
    OrderResponse,
    RecordPaymentRequest,
    TrackingSchema,
    TransitionStatusRequest,
)
from ordering.engine import FulfillmentEngine
from ordering.order.failures import Forbidden, OrderResult
from ordering.order.queries import OrderFilter, serialize_order
from ordering.order.status import OrderOrigin
from ordering.projections.expedition_queue import list_expedition_ready


def _order_response(result: OrderResult) -> OrderResponse | JSONResponse:
    if not result.ok:
        return failure_response(result.failure)
    return OrderResponse(order=serialize_order(result.order))


def _created_response(result: OrderResult) -> CreatedOrderResponse | JSONResponse:
    if not result.ok:
        return failure_response(result.failure)
    order = result.order
    return CreatedOrderResponse(order_id=str(order.id), order_number=order.order_number, order=serialize_order(order))


# ---------------------------------------------------------------------------
# Patient Router
# ---------------------------------------------------------------------------
patient_router = APIRouter(prefix="/patient/orders", tags=["patient-orders"])


@patient_router.post("", status_code=201, response_model=CreatedOrderResponse)
def create_patient_order(
    body: CreatePatientOrderRequest,
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    if not actor.is_patient:
        return failure_response(Forbidden(reason="patient_role_required"))

    result = engine.create_order(
        OrderOrigin.PATIENT_PURCHASE,
        organization_id=body.organization_id or actor.organization_id,
        items=[item.model_dump() for item in body.items],
        actor=actor,
        tax=body.tax,
        shipping=body.shipping,
        discount=body.discount,
        customer_name=body.customer_name,
        description=body.description,
        details={
            "prescription_reference": body.prescription_reference,
            "delivery_address": body.delivery_address.model_dump() if body.delivery_address else None,
        },
    )
    return _created_response(result)


# ---------------------------------------------------------------------------
# Organization Router
# ---------------------------------------------------------------------------
organization_router = APIRouter(prefix="/organization/orders", tags=["organization-orders"])


@organization_router.post("", status_code=201, response_model=CreatedOrderResponse)
def create_marketplace_order(
    body: CreateMarketplaceOrderRequest,
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    result = engine.create_order(
        OrderOrigin.MARKETPLACE,
        organization_id=body.organization_id or actor.organization_id,
        items=[item.model_dump() for item in body.items],
        actor=actor,
        counterparty_id=body.counterparty_id,
        tax=body.tax,
        shipping=body.shipping,
        discount=body.discount,
        customer_name=body.customer_name,
        description=body.description,
        details={
            "shipping_address": body.shipping_address.model_dump() if body.shipping_address else None,
            "billing_address": body.billing_address.model_dump() if body.billing_address else None,
        },
    )
    return _created_response(result)


@organization_router.get("")
def list_orders(
    query: OrderListQuery = Depends(),
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    page = engine.list_orders(
        OrderFilter(
            status=query.status,
            organization_id=query.organization_id,
            counterparty_id=query.counterparty_id,
            search=query.search,
            created_from=query.created_from,
            created_to=query.created_to,
            page=query.page,
            limit=query.limit,
        ),
        actor,
    )
    return page.to_dict()


@organization_router.get("/expedition")
def list_expedition(
    organization_id: str | None = Query(default=None),
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    queue = list_expedition_ready(engine.store, actor, organization_id=organization_id)
    if not queue.ok:
        return failure_response(queue.failure)
    return [entry.to_dict() for entry in queue.entries]


@organization_router.patch("/{order_id}/status", response_model=OrderResponse)
def transition_order_status(
    order_id: str,
    body: TransitionStatusRequest,
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    result = engine.transition_status(
        order_id,
        body.status,
        actor,
        reason=body.reason,
        tracking=body.tracking.model_dump() if body.tracking else None,
    )
    return _order_response(result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: str,
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    return _order_response(engine.get_order(order_id, actor))


@order_router.put("/{order_id}/tracking", response_model=OrderResponse)
def attach_tracking(
    order_id: str,
    body: TrackingSchema,
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    return _order_response(engine.attach_tracking(order_id, body.model_dump(), actor))


@order_router.post("/{order_id}/payment", response_model=OrderResponse)
def record_payment(
    order_id: str,
    body: RecordPaymentRequest,
    actor: Actor = Depends(resolve_actor),
    engine: FulfillmentEngine = Depends(get_engine),
):
    return _order_response(engine.record_payment(order_id, body.payment_method, actor))
