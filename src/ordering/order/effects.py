"""Side effects bound to order status transitions.

The dispatcher runs after the transition table has allowed a move. Each
target status may carry an effect:

    payment_confirmed  reserve stock for every line, all or nothing
    shipped            promote staged (or supplied) tracking
    cancelled          release reserved stock, record cancellation details
    refunded           mark the payment refunded

External calls happen before the order is touched, so a refused effect
leaves the order exactly as it was apart from one ``rejected`` history
entry.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError
from shared.actor import Actor

from ordering.order.failures import InsufficientStock, InvalidState, OrderFailure
from ordering.order.order import Order, Tracking
from ordering.order.status import OrderStatus, PaymentStatus
from ordering.stock.port import StockLedger, StockLine

logger = structlog.get_logger(__name__)

PAYMENT_NOT_CAPTURED = "payment_not_captured"
TRACKING_REQUIRED = "tracking_required"


@dataclass
class TransitionRequest:
    order: Order
    target: OrderStatus
    actor: Actor
    reason: str | None = None
    tracking: Tracking | None = None


@dataclass(frozen=True)
class DispatchOutcome:
    applied: bool
    failure: OrderFailure | None = None
    reservation_created: bool = False
    stock_released: bool = False


class EffectRefused(Exception):
    """An effect's precondition failed; carries the failure to report."""

    def __init__(self, failure: OrderFailure, audit_reason: str) -> None:
        super().__init__(audit_reason)
        self.failure = failure
        self.audit_reason = audit_reason


def stock_lines(order: Order) -> list[StockLine]:
    return [StockLine(product_ref=item.product_ref, quantity=item.quantity) for item in order.ordered_items]


class SideEffectDispatcher:
    def __init__(self, stock_ledger: StockLedger) -> None:
        self.stock_ledger = stock_ledger

    def dispatch(self, request: TransitionRequest) -> DispatchOutcome:
        """Run the effect for ``request.target`` and record the result on the order."""
        handler = self._HANDLERS.get(request.target, SideEffectDispatcher._advance)
        try:
            return handler(self, request)
        except EffectRefused as exc:
            order = request.order
            order.reject_transition(
                requested_status=request.target.value,
                actor_id=request.actor.id,
                actor_role=request.actor.role.value,
                failure=exc.audit_reason,
            )
            logger.info(
                "Transition refused by side effect",
                order_id=str(order.id),
                current_status=order.status,
                requested_status=request.target.value,
                failure=exc.audit_reason,
            )
            return DispatchOutcome(applied=False, failure=exc.failure)

    # -------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------
    def _advance(self, request: TransitionRequest) -> DispatchOutcome:
        request.order.advance(request.target, request.actor.id, request.actor.role.value, request.reason)
        return DispatchOutcome(applied=True)

    def _confirm_payment(self, request: TransitionRequest) -> DispatchOutcome:
        order = request.order
        order_id = str(order.id)
        if order.payment_status != PaymentStatus.PAID.value:
            raise EffectRefused(
                InvalidState(
                    order_id=order_id,
                    current_status=order.status,
                    operation=f"transition:{request.target.value}",
                    reason=PAYMENT_NOT_CAPTURED,
                ),
                PAYMENT_NOT_CAPTURED,
            )

        reservation = self.stock_ledger.reserve(order_id, stock_lines(order))
        if not reservation.success:
            raise EffectRefused(
                InsufficientStock(
                    order_id=order_id,
                    current_status=order.status,
                    shortages=tuple(reservation.shortages),
                ),
                InsufficientStock.code,
            )

        try:
            order.confirm_payment(reservation.reservation_id, request.actor.id, request.actor.role.value, request.reason)
        except ValidationError:
            if reservation.created:
                self.stock_ledger.release(order_id)
            raise

        logger.info("Reserved stock for order", order_id=order_id, reservation_id=reservation.reservation_id)
        return DispatchOutcome(applied=True, reservation_created=reservation.created)

    def _ship(self, request: TransitionRequest) -> DispatchOutcome:
        order = request.order
        tracking = request.tracking or order.staged_tracking
        if tracking is None:
            raise EffectRefused(
                InvalidState(
                    order_id=str(order.id),
                    current_status=order.status,
                    operation=f"transition:{request.target.value}",
                    reason=TRACKING_REQUIRED,
                ),
                TRACKING_REQUIRED,
            )

        order.ship(tracking, request.actor.id, request.actor.role.value, request.reason)
        return DispatchOutcome(applied=True)

    def _cancel(self, request: TransitionRequest) -> DispatchOutcome:
        order = request.order
        released = False
        if order.stock_reserved:
            # Release is idempotent, so a ledger without a reservation is fine
            self.stock_ledger.release(str(order.id))
            released = True
            logger.info("Released stock for cancelled order", order_id=str(order.id))

        order.cancel(request.actor.id, request.actor.role.value, request.reason, stock_released=released)
        return DispatchOutcome(applied=True, stock_released=released)

    def _refund(self, request: TransitionRequest) -> DispatchOutcome:
        order = request.order
        if order.payment_status != PaymentStatus.PAID.value:
            raise EffectRefused(
                InvalidState(
                    order_id=str(order.id),
                    current_status=order.status,
                    operation=f"transition:{request.target.value}",
                    reason=PAYMENT_NOT_CAPTURED,
                ),
                PAYMENT_NOT_CAPTURED,
            )

        order.refund(request.actor.id, request.actor.role.value, request.reason)
        return DispatchOutcome(applied=True)

    _HANDLERS = {
        OrderStatus.PAYMENT_CONFIRMED: _confirm_payment,
        OrderStatus.SHIPPED: _ship,
        OrderStatus.CANCELLED: _cancel,
        OrderStatus.REFUNDED: _refund,
    }
