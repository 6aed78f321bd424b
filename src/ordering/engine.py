"""Order fulfillment engine — the single entry point for order mutations.

Route handlers resolve an actor and call one method here. The engine loads
the order, checks the actor's scope, consults the transition table, lets
the dispatcher run side effects and commits through the order store with a
compare-and-set on ``status``. A lost compare-and-set is retried once
against a fresh read before ``Conflict`` is returned.

Business refusals come back as ``OrderResult`` failures. ``StorageError``
is the only exception callers need to handle.
"""

import json
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

import structlog
from protean.exceptions import ValidationError
from shared.actor import Actor, ActorRole

from ordering.config import EngineSettings
from ordering.order import transitions
from ordering.order.effects import DispatchOutcome, SideEffectDispatcher, TransitionRequest, stock_lines
from ordering.order.failures import (
    Conflict,
    Forbidden,
    InvalidItems,
    InvalidState,
    InvalidTransition,
    NotFound,
    OrderResult,
    PaymentDeclined,
)
from ordering.order.order import MarketplaceDetails, Order, OrderAmounts, PatientDetails, Tracking
from ordering.order.queries import (
    OrderFilter,
    OrderPage,
    can_view,
    matches,
    newest_first,
    serialize_order,
    visible_orders,
)
from ordering.order.status import OrderOrigin, OrderStatus, PaymentStatus
from ordering.payment import get_gateway
from ordering.payment.port import PaymentGateway
from ordering.projections.organization_directory import display_names
from ordering.stock import get_stock_ledger
from ordering.stock.port import StockLedger
from ordering.store import get_order_store
from ordering.store.port import ConflictError, OrderStore

logger = structlog.get_logger(__name__)

_OPERATOR_ROLES = (ActorRole.ORGANIZATION_OPERATOR, ActorRole.PLATFORM_ADMIN)


@dataclass
class _Step:
    """What one attempt decided: answer now, or write and then answer."""

    answer: OrderResult | None = None
    on_commit: OrderResult | None = None
    on_conflict: Callable[[], None] | None = None


def _money(value) -> float:
    return round(float(value or 0), 2)


def _validate_items(items) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    if not items:
        errors["items"] = ["Order must contain at least one item"]
        return errors

    for index, item in enumerate(items):
        prefix = f"items[{index}]"
        if not isinstance(item, dict):
            errors[prefix] = ["Item must be an object"]
            continue
        product_ref = item.get("product_ref")
        if not isinstance(product_ref, str) or not product_ref.strip():
            errors[f"{prefix}.product_ref"] = ["Product reference is required"]
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors[f"{prefix}.quantity"] = ["Quantity must be a positive integer"]
        unit_price = item.get("unit_price")
        if isinstance(unit_price, bool) or not isinstance(unit_price, (int, float)) or unit_price < 0:
            errors[f"{prefix}.unit_price"] = ["Unit price must be a non-negative number"]
    return errors


def _build_tracking(data) -> Tracking:
    """Accept a ``Tracking`` value or a mapping of its fields."""
    if isinstance(data, Tracking):
        return data
    return Tracking(
        carrier_code=data.get("carrier_code"),
        tracking_number=data.get("tracking_number"),
        url=data.get("url"),
        estimated_delivery=data.get("estimated_delivery"),
    )


class FulfillmentEngine:
    def __init__(
        self,
        store: OrderStore | None = None,
        stock_ledger: StockLedger | None = None,
        gateway: PaymentGateway | None = None,
        settings: EngineSettings | None = None,
    ) -> None:
        self.settings = settings or EngineSettings.from_env()
        self.store = store or get_order_store()
        self.stock_ledger = stock_ledger or get_stock_ledger()
        self.gateway = gateway or get_gateway()
        self.dispatcher = SideEffectDispatcher(self.stock_ledger)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _next_order_number(self) -> str:
        millis = int(time.time() * 1000)
        return f"{self.settings.order_number_prefix}-{millis}-{random.randint(0, 0xFFFF):04X}"

    @staticmethod
    def _is_originator(order: Order, actor: Actor) -> bool:
        return str(order.created_by) == str(actor.id)

    @staticmethod
    def _scope_denial(order: Order, actor: Actor) -> Forbidden | None:
        if can_view(order, actor):
            return None
        if actor.is_patient and actor.belongs_to(order.organization_id):
            return Forbidden(reason=transitions.NOT_ORIGINATOR)
        return Forbidden(reason="outside_organization_scope")

    def _commit_with_retry(self, order_id: str, actor: Actor, timeout: float | None, step) -> OrderResult:
        """Run ``step`` against a fresh read and commit it, retrying a lost compare-and-set."""
        attempts = 1 + max(0, self.settings.conflict_retries)
        for attempt in range(1, attempts + 1):
            order = self.store.get(order_id, timeout=timeout)
            if order is None:
                return OrderResult.fail(NotFound(order_id=str(order_id)))
            denial = self._scope_denial(order, actor)
            if denial is not None:
                logger.info("Order access denied", order_id=str(order_id), actor_id=actor.id, reason=denial.reason)
                return OrderResult.fail(denial)

            expected_status = order.status
            planned = step(order)
            if planned.answer is not None:
                return planned.answer

            try:
                self.store.compare_and_set(order, expected_status, timeout=timeout)
            except ConflictError as exc:
                logger.info(
                    "Order changed concurrently",
                    order_id=str(order_id),
                    expected_status=exc.expected_status,
                    actual_status=exc.actual_status,
                    attempt=attempt,
                )
                if planned.on_conflict is not None:
                    planned.on_conflict()
                continue
            return planned.on_commit

        logger.warning("Giving up on order after repeated conflicts", order_id=str(order_id), attempts=attempts)
        return OrderResult.fail(Conflict(order_id=str(order_id)))

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    def create_order(
        self,
        origin,
        organization_id: str,
        items: list[dict],
        actor: Actor,
        counterparty_id: str | None = None,
        *,
        tax: float = 0.0,
        shipping: float = 0.0,
        discount: float = 0.0,
        customer_name: str | None = None,
        description: str | None = None,
        details: dict | None = None,
        timeout: float | None = None,
    ) -> OrderResult:
        """Validate and persist a new order."""
        try:
            order_origin = OrderOrigin(getattr(origin, "value", origin))
        except ValueError:
            return OrderResult.fail(InvalidItems(errors={"origin": [f"Unknown order origin: {origin}"]}))

        if order_origin == OrderOrigin.PATIENT_PURCHASE and not actor.is_patient:
            return OrderResult.fail(Forbidden(reason="patient_role_required"))
        if order_origin == OrderOrigin.MARKETPLACE and actor.role not in _OPERATOR_ROLES:
            return OrderResult.fail(Forbidden(reason="operator_role_required"))
        if not actor.belongs_to(organization_id):
            return OrderResult.fail(Forbidden(reason="outside_organization_scope"))

        errors = _validate_items(items)
        if order_origin == OrderOrigin.MARKETPLACE and not counterparty_id:
            errors["counterparty_id"] = ["Marketplace orders require a supplying organization"]
        if order_origin == OrderOrigin.PATIENT_PURCHASE and counterparty_id:
            errors["counterparty_id"] = ["Patient purchases have no counterparty"]
        for name, value in (("tax", tax), ("shipping", shipping), ("discount", discount)):
            if value is not None and value < 0:
                errors[name] = [f"{name.capitalize()} cannot be negative"]
        if errors:
            return OrderResult.fail(InvalidItems(errors=errors))

        items_data = [
            {
                "product_ref": item["product_ref"].strip(),
                "product_name": item.get("product_name"),
                "quantity": item["quantity"],
                "unit_price": _money(item["unit_price"]),
            }
            for item in items
        ]
        subtotal = _money(sum(item["quantity"] * item["unit_price"] for item in items_data))
        total = _money(subtotal + _money(tax) + _money(shipping) - _money(discount))
        if total < 0:
            return OrderResult.fail(InvalidItems(errors={"discount": ["Discount cannot exceed the order value"]}))

        details = details or {}
        try:
            amounts = OrderAmounts(
                subtotal=subtotal,
                tax=_money(tax),
                shipping=_money(shipping),
                discount=_money(discount),
                total=total,
                currency=self.settings.currency,
            )
            if order_origin == OrderOrigin.PATIENT_PURCHASE:
                origin_details = {
                    "patient": PatientDetails(
                        patient_id=actor.id,
                        prescription_reference=details.get("prescription_reference"),
                        delivery_address=json.dumps(details["delivery_address"])
                        if details.get("delivery_address")
                        else None,
                    )
                }
            else:
                origin_details = {
                    "marketplace": MarketplaceDetails(
                        requested_by=actor.id,
                        shipping_address=json.dumps(details["shipping_address"])
                        if details.get("shipping_address")
                        else None,
                        billing_address=json.dumps(details["billing_address"])
                        if details.get("billing_address")
                        else None,
                    )
                }
            order = Order.place(
                order_number=self._next_order_number(),
                origin=order_origin,
                organization_id=organization_id,
                counterparty_id=counterparty_id,
                created_by=actor.id,
                actor_role=actor.role.value,
                items_data=items_data,
                amounts=amounts,
                customer_name=customer_name,
                description=description,
                **origin_details,
            )
        except ValidationError as exc:
            return OrderResult.fail(InvalidItems(errors=exc.messages))

        self.store.add(order, timeout=timeout)
        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=order.order_number,
            origin=order.origin,
            organization_id=str(organization_id),
            actor_id=actor.id,
            total=total,
        )
        return OrderResult.success(order)

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def transition_status(
        self,
        order_id: str,
        requested_status,
        actor: Actor,
        reason: str | None = None,
        tracking=None,
        timeout: float | None = None,
    ) -> OrderResult:
        """Move an order to ``requested_status`` and run the bound side effect."""
        requested = OrderStatus.parse(requested_status)
        requested_value = getattr(requested_status, "value", requested_status)

        tracking_value = None
        if tracking is not None:
            try:
                tracking_value = _build_tracking(tracking)
            except ValidationError as exc:
                return OrderResult.fail(InvalidItems(errors=exc.messages))

        def step(order: Order) -> _Step:
            if requested is not None and order.status == requested.value:
                return _Step(answer=OrderResult.success(order))

            decision = transitions.evaluate(
                order.status,
                requested_value,
                actor.role,
                is_originator=self._is_originator(order, actor),
            )
            if isinstance(decision, transitions.Denied):
                logger.info(
                    "Transition denied",
                    order_id=str(order.id),
                    current_status=order.status,
                    requested_status=requested_value,
                    actor_id=actor.id,
                    reason=decision.reason,
                )
                if decision.is_authorization_failure:
                    return _Step(answer=OrderResult.fail(Forbidden(reason=decision.reason)))
                return _Step(
                    answer=OrderResult.fail(
                        InvalidTransition(
                            current_status=order.status,
                            requested_status=str(requested_value),
                            reason=decision.reason,
                            allowed_targets=tuple(transitions.allowed_targets(order.status, actor.role)),
                        )
                    )
                )

            previous_status = order.status
            outcome = self.dispatcher.dispatch(
                TransitionRequest(
                    order=order,
                    target=requested,
                    actor=actor,
                    reason=reason,
                    tracking=tracking_value,
                )
            )
            if outcome.applied:
                logger.info(
                    "Order status changed",
                    order_id=str(order.id),
                    from_status=previous_status,
                    to_status=order.status,
                    actor_id=actor.id,
                )
                result = OrderResult.success(order)
            else:
                result = OrderResult.fail(outcome.failure, order)
            return _Step(
                on_commit=result,
                on_conflict=lambda: self._compensate(order, outcome, timeout),
            )

        return self._commit_with_retry(order_id, actor, timeout, step)

    def _compensate(self, order: Order, outcome: DispatchOutcome, timeout: float | None) -> None:
        """Undo ledger work done by an attempt whose commit was lost."""
        if not (outcome.reservation_created or outcome.stock_released):
            return

        order_id = str(order.id)
        latest = self.store.get(order_id, timeout=timeout)
        if outcome.reservation_created and not (latest is not None and latest.stock_reserved):
            self.stock_ledger.release(order_id)
            logger.info("Released reservation from lost commit", order_id=order_id)
        if outcome.stock_released and latest is not None and latest.stock_reserved:
            self.stock_ledger.reserve(order_id, stock_lines(latest))
            logger.info("Restored reservation from lost commit", order_id=order_id)

    # -------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------
    def attach_tracking(self, order_id: str, tracking, actor: Actor, timeout: float | None = None) -> OrderResult:
        """Stage carrier tracking on an order that is being prepared."""
        if actor.role not in _OPERATOR_ROLES:
            return OrderResult.fail(Forbidden(reason=transitions.ROLE_NOT_PERMITTED))
        try:
            tracking_value = _build_tracking(tracking)
        except ValidationError as exc:
            return OrderResult.fail(InvalidItems(errors=exc.messages))

        def step(order: Order) -> _Step:
            if order.status != OrderStatus.IN_PREPARATION.value:
                return _Step(
                    answer=OrderResult.fail(
                        InvalidState(
                            order_id=str(order.id),
                            current_status=order.status,
                            operation="attach_tracking",
                            reason="not_in_preparation",
                        )
                    )
                )
            order.stage_tracking(tracking_value)
            logger.info(
                "Tracking staged",
                order_id=str(order.id),
                carrier_code=tracking_value.carrier_code,
                actor_id=actor.id,
            )
            return _Step(on_commit=OrderResult.success(order))

        return self._commit_with_retry(order_id, actor, timeout, step)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment(
        self,
        order_id: str,
        payment_method: str,
        actor: Actor,
        timeout: float | None = None,
    ) -> OrderResult:
        """Charge the order total through the gateway and store the answer."""

        def step(order: Order) -> _Step:
            if order.payment_status == PaymentStatus.PAID.value:
                return _Step(answer=OrderResult.success(order))
            if order.status != OrderStatus.APPROVED.value:
                return _Step(
                    answer=OrderResult.fail(
                        InvalidState(
                            order_id=str(order.id),
                            current_status=order.status,
                            operation="record_payment",
                            reason="order_not_approved",
                        )
                    )
                )

            charge = self.gateway.charge(
                amount=order.amounts.total,
                currency=order.amounts.currency,
                payment_method=payment_method,
                idempotency_key=f"order-{order.id}",
            )
            order.record_payment(
                approved=charge.success,
                method=payment_method,
                transaction_id=charge.transaction_id,
                failure_reason=charge.failure_reason,
            )
            if charge.success:
                logger.info("Payment captured", order_id=str(order.id), transaction_id=charge.transaction_id)
                return _Step(on_commit=OrderResult.success(order))

            logger.info("Payment declined", order_id=str(order.id), reason=charge.failure_reason)
            return _Step(
                on_commit=OrderResult.fail(
                    PaymentDeclined(order_id=str(order.id), reason=charge.failure_reason or "declined"),
                    order,
                )
            )

        return self._commit_with_retry(order_id, actor, timeout, step)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_order(self, order_id: str, actor: Actor, timeout: float | None = None) -> OrderResult:
        order = self.store.get(order_id, timeout=timeout)
        if order is None:
            return OrderResult.fail(NotFound(order_id=str(order_id)))
        denial = self._scope_denial(order, actor)
        if denial is not None:
            return OrderResult.fail(denial)
        return OrderResult.success(order)

    def list_orders(self, order_filter: OrderFilter, actor: Actor, timeout: float | None = None) -> OrderPage:
        """Scoped, filtered and paginated listing, newest first."""
        if not actor.is_platform_admin and order_filter.organization_id not in (None, actor.organization_id):
            # Non-admins always list within their own organization
            order_filter = replace(order_filter, organization_id=None)

        orders = [order for order in visible_orders(self.store, actor, timeout=timeout) if matches(order, order_filter)]
        orders = newest_first(orders)

        limit = max(1, min(order_filter.limit or self.settings.default_page_size, self.settings.max_page_size))
        page = max(1, order_filter.page or 1)
        window = orders[(page - 1) * limit : page * limit]

        names = display_names(
            [o.organization_id for o in window] + [o.counterparty_id for o in window if o.counterparty_id]
        )
        return OrderPage(
            items=[serialize_order(order, names) for order in window],
            total=len(orders),
            page=page,
            limit=limit,
        )
