"""Order aggregate (CQRS) — the core of the ordering domain.

An order is placed either by a patient buying from their own association
(``patient_purchase``) or by an organization buying from a supplier on the
marketplace (``marketplace``). It is persisted as current state plus an
append-only status history; it is not event sourced.

State Machine:
    DRAFT → PENDING → APPROVED → PAYMENT_CONFIRMED → IN_PREPARATION → SHIPPED → DELIVERED
    DELIVERED → REFUNDED
    PAYMENT_CONFIRMED → REFUNDED
    {DRAFT, PENDING, APPROVED, PAYMENT_CONFIRMED, IN_PREPARATION} → CANCELLED
    SHIPPED → CANCELLED (platform admin override)

Who may request each move lives in ``ordering.order.transitions``; the
methods here only guard the graph itself and keep the history consistent.
"""

import json
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.domain import ordering
from ordering.order import transitions
from ordering.order.events import (
    OrderCreated,
    OrderStatusChanged,
    OrderTransitionRejected,
    PaymentRecorded,
    TrackingStaged,
)
from ordering.order.status import (
    OrderOrigin,
    OrderStatus,
    PaymentStatus,
    TransitionOutcome,
)

_TOLERANCE = 0.005

_TRACKED_STATUSES = frozenset(
    status.value for status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.REFUNDED)
)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class OrderAmounts:
    """Monetary breakdown, computed once at creation."""

    subtotal = Float(required=True, min_value=0.0)
    tax = Float(default=0.0, min_value=0.0)
    shipping = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    total = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="BRL")

    @invariant.post
    def total_matches_components(self):
        expected = (self.subtotal or 0.0) + (self.tax or 0.0) + (self.shipping or 0.0) - (self.discount or 0.0)
        if abs((self.total or 0.0) - expected) > _TOLERANCE:
            raise ValidationError({"total": ["Total must equal subtotal + tax + shipping - discount"]})


@ordering.value_object(part_of="Order")
class Tracking:
    """Carrier hand-off details. Tracking numbers are opaque strings."""

    carrier_code = String(max_length=50)
    tracking_number = String(required=True, max_length=255)
    url = String(max_length=500)
    estimated_delivery = DateTime()


@ordering.value_object(part_of="Order")
class PaymentDetails:
    """Last answer received from the payment gateway."""

    method = String(max_length=50)
    transaction_id = String(max_length=255)
    failure_reason = String(max_length=500)
    recorded_at = DateTime()


@ordering.value_object(part_of="Order")
class PatientDetails:
    """Details only a patient purchase carries."""

    patient_id = Identifier(required=True)
    prescription_reference = String(max_length=100)
    delivery_address = Text()  # JSON: address dict


@ordering.value_object(part_of="Order")
class MarketplaceDetails:
    """Details only a marketplace order carries."""

    requested_by = Identifier(required=True)
    shipping_address = Text()  # JSON: address dict
    billing_address = Text()  # JSON: address dict


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A single line of the order. Immutable once the order is placed."""

    line_number = Integer(required=True, min_value=1)
    product_ref = String(required=True, max_length=255)
    product_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


@ordering.entity(part_of="Order")
class StatusChange:
    """One entry of the order's audit trail."""

    sequence = Integer(required=True, min_value=1)
    from_status = String(max_length=50)
    to_status = String(required=True, max_length=50)
    actor_id = Identifier(required=True)
    actor_role = String(required=True, max_length=50)
    occurred_at = DateTime(required=True)
    reason = String(max_length=500)
    outcome = String(
        max_length=20,
        choices=TransitionOutcome,
        default=TransitionOutcome.APPLIED.value,
    )


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=50)
    origin = String(required=True, choices=OrderOrigin)
    organization_id = Identifier(required=True)
    counterparty_id = Identifier()
    created_by = Identifier(required=True)
    customer_name = String(max_length=255)
    description = String(max_length=1000)
    items = HasMany(OrderItem)
    amounts = ValueObject(OrderAmounts)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    payment = ValueObject(PaymentDetails)
    stock_reserved = Boolean(default=False)
    reservation_id = String(max_length=100)
    tracking = ValueObject(Tracking)
    staged_tracking = ValueObject(Tracking)
    status_history = HasMany(StatusChange)
    patient = ValueObject(PatientDetails)
    marketplace = ValueObject(MarketplaceDetails)
    approved_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    cancelled_by = Identifier()
    cancel_reason = String(max_length=500)
    refunded_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def history_ends_at_current_status(self):
        history = self.history
        if history and history[-1].to_status != self.status:
            raise ValidationError({"status_history": ["Latest history entry must match the current status"]})

    @invariant.post
    def stock_reserved_only_after_payment_confirmation(self):
        if self.stock_reserved and not self.has_passed_through(OrderStatus.PAYMENT_CONFIRMED):
            raise ValidationError({"stock_reserved": ["Stock can only be reserved once payment is confirmed"]})

    @invariant.post
    def tracking_only_after_shipment(self):
        if self.tracking is None:
            return
        if self.status not in _TRACKED_STATUSES or not self.has_passed_through(OrderStatus.SHIPPED):
            raise ValidationError({"tracking": ["Tracking is only recorded once the order has shipped"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        *,
        order_number: str,
        origin: OrderOrigin,
        organization_id: str,
        created_by: str,
        actor_role: str,
        items_data: list[dict],
        amounts: OrderAmounts,
        counterparty_id: str | None = None,
        customer_name: str | None = None,
        description: str | None = None,
        patient: PatientDetails | None = None,
        marketplace: MarketplaceDetails | None = None,
    ) -> "Order":
        """Place a new order with its initial history entry.

        Marketplace orders start as ``draft`` and are submitted later; patient
        purchases are submitted on creation and start as ``pending``.
        """
        now = datetime.now(UTC)
        initial = OrderStatus.DRAFT if origin == OrderOrigin.MARKETPLACE else OrderStatus.PENDING
        order = cls(
            order_number=order_number,
            origin=origin.value,
            organization_id=organization_id,
            counterparty_id=counterparty_id,
            created_by=created_by,
            customer_name=customer_name,
            description=description,
            amounts=amounts,
            status=initial.value,
            payment_status=PaymentStatus.PENDING.value,
            patient=patient,
            marketplace=marketplace,
            created_at=now,
            updated_at=now,
        )
        with atomic_change(order):
            for line_number, item_data in enumerate(items_data, start=1):
                order.add_items(OrderItem(line_number=line_number, **item_data))
            order._append_history(
                from_status=None,
                to_status=initial.value,
                actor_id=created_by,
                actor_role=actor_role,
                occurred_at=now,
                reason="order_created",
            )

        order.raise_(
            OrderCreated(
                order_id=str(order.id),
                order_number=order_number,
                origin=origin.value,
                organization_id=str(organization_id),
                counterparty_id=str(counterparty_id) if counterparty_id else None,
                created_by=str(created_by),
                status=initial.value,
                items=json.dumps(items_data),
                total=amounts.total,
                currency=amounts.currency,
                created_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # History helpers
    # -------------------------------------------------------------------
    @property
    def history(self) -> list[StatusChange]:
        """Status history in the order it was written."""
        return sorted(self.status_history or [], key=lambda entry: entry.sequence)

    @property
    def ordered_items(self) -> list[OrderItem]:
        return sorted(self.items or [], key=lambda item: item.line_number)

    @property
    def is_patient_order(self) -> bool:
        return self.origin == OrderOrigin.PATIENT_PURCHASE.value

    def has_passed_through(self, status: OrderStatus) -> bool:
        return any(
            entry.to_status == status.value and entry.outcome == TransitionOutcome.APPLIED.value
            for entry in self.status_history or []
        )

    def _append_history(
        self,
        from_status: str | None,
        to_status: str,
        actor_id: str,
        actor_role: str,
        occurred_at: datetime,
        reason: str | None = None,
        outcome: TransitionOutcome = TransitionOutcome.APPLIED,
    ) -> StatusChange:
        sequence = max((entry.sequence for entry in self.status_history or []), default=0) + 1
        entry = StatusChange(
            sequence=sequence,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            actor_role=actor_role,
            occurred_at=occurred_at,
            reason=reason,
            outcome=outcome.value,
        )
        self.add_status_history(entry)
        return entry

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        decision = transitions.lookup(self.status, target_status)
        if isinstance(decision, transitions.Denied):
            raise ValidationError(
                {"status": [f"Cannot transition from {self.status} to {target_status.value} ({decision.reason})"]}
            )

    def _move_to(
        self,
        target_status: OrderStatus,
        actor_id: str,
        actor_role: str,
        reason: str | None,
        now: datetime,
    ) -> None:
        """Set the new status and record it. Callers wrap this in ``atomic_change``."""
        previous = self.status
        self.status = target_status.value
        self.updated_at = now
        entry = self._append_history(
            from_status=previous,
            to_status=target_status.value,
            actor_id=actor_id,
            actor_role=actor_role,
            occurred_at=now,
            reason=reason,
        )
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                order_number=self.order_number,
                organization_id=str(self.organization_id),
                from_status=previous,
                to_status=target_status.value,
                actor_id=str(actor_id),
                actor_role=actor_role,
                reason=reason,
                sequence=entry.sequence,
                occurred_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def advance(self, target_status: OrderStatus, actor_id: str, actor_role: str, reason: str | None = None) -> None:
        """Move along an edge that carries no side effect beyond bookkeeping."""
        self._assert_can_transition(target_status)
        now = datetime.now(UTC)
        with atomic_change(self):
            if target_status == OrderStatus.APPROVED:
                self.approved_at = now
            elif target_status == OrderStatus.DELIVERED:
                self.delivered_at = now
            self._move_to(target_status, actor_id, actor_role, reason, now)

    def confirm_payment(self, reservation_id: str, actor_id: str, actor_role: str, reason: str | None = None) -> None:
        """Record confirmed payment together with the stock reservation backing it."""
        self._assert_can_transition(OrderStatus.PAYMENT_CONFIRMED)
        if self.payment_status != PaymentStatus.PAID.value:
            raise ValidationError({"payment_status": ["Payment must be captured before confirmation"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.stock_reserved = True
            self.reservation_id = reservation_id
            self._move_to(OrderStatus.PAYMENT_CONFIRMED, actor_id, actor_role, reason, now)

    def ship(self, tracking: Tracking, actor_id: str, actor_role: str, reason: str | None = None) -> None:
        """Hand the order to the carrier, promoting tracking details."""
        self._assert_can_transition(OrderStatus.SHIPPED)
        if tracking is None or not tracking.tracking_number:
            raise ValidationError({"tracking": ["Tracking details are required to ship an order"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.shipped_at = now
            self._move_to(OrderStatus.SHIPPED, actor_id, actor_role, reason, now)
            self.tracking = tracking
            self.staged_tracking = None

    def cancel(self, actor_id: str, actor_role: str, reason: str | None = None, stock_released: bool = False) -> None:
        """Cancel the order. ``stock_released`` reports that a reservation was let go."""
        self._assert_can_transition(OrderStatus.CANCELLED)
        if self.stock_reserved and not stock_released:
            raise ValidationError({"stock_reserved": ["Reserved stock must be released before cancelling"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.stock_reserved = False
            self.tracking = None
            self.staged_tracking = None
            self.cancelled_at = now
            self.cancelled_by = actor_id
            self.cancel_reason = reason or "cancelled_by_request"
            self._move_to(OrderStatus.CANCELLED, actor_id, actor_role, reason, now)

    def refund(self, actor_id: str, actor_role: str, reason: str | None = None) -> None:
        """Mark a paid order as refunded."""
        self._assert_can_transition(OrderStatus.REFUNDED)
        if self.payment_status != PaymentStatus.PAID.value:
            raise ValidationError({"payment_status": ["Only paid orders can be refunded"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            self.payment_status = PaymentStatus.REFUNDED.value
            self.refunded_at = now
            self._move_to(OrderStatus.REFUNDED, actor_id, actor_role, reason, now)

    def reject_transition(self, requested_status: str, actor_id: str, actor_role: str, failure: str) -> None:
        """Audit a transition whose side effect refused to run. Status is unchanged."""
        now = datetime.now(UTC)
        with atomic_change(self):
            self.updated_at = now
            entry = self._append_history(
                from_status=self.status,
                to_status=self.status,
                actor_id=actor_id,
                actor_role=actor_role,
                occurred_at=now,
                reason=f"{failure}: requested {requested_status}",
                outcome=TransitionOutcome.REJECTED,
            )
        self.raise_(
            OrderTransitionRejected(
                order_id=str(self.id),
                current_status=self.status,
                requested_status=requested_status,
                actor_id=str(actor_id),
                failure=failure,
                sequence=entry.sequence,
                occurred_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------
    def stage_tracking(self, tracking: Tracking) -> None:
        """Attach tracking ahead of shipping. Only valid while in preparation."""
        if self.status != OrderStatus.IN_PREPARATION.value:
            raise ValidationError({"status": ["Tracking can only be attached while the order is in preparation"]})

        now = datetime.now(UTC)
        self.staged_tracking = tracking
        self.updated_at = now
        self.raise_(
            TrackingStaged(
                order_id=str(self.id),
                carrier_code=tracking.carrier_code,
                tracking_number=tracking.tracking_number,
                staged_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def record_payment(
        self,
        approved: bool,
        method: str | None = None,
        transaction_id: str | None = None,
        failure_reason: str | None = None,
    ) -> None:
        """Store the gateway's answer for this order's charge."""
        if self.status != OrderStatus.APPROVED.value:
            raise ValidationError({"status": ["Payment can only be recorded for approved orders"]})
        if self.payment_status in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
            raise ValidationError({"payment_status": ["Order has already been paid"]})

        now = datetime.now(UTC)
        status = PaymentStatus.PAID if approved else PaymentStatus.FAILED
        self.payment_status = status.value
        self.payment = PaymentDetails(
            method=method,
            transaction_id=transaction_id,
            failure_reason=None if approved else failure_reason,
            recorded_at=now,
        )
        self.updated_at = now
        self.raise_(
            PaymentRecorded(
                order_id=str(self.id),
                payment_status=status.value,
                amount=self.amounts.total,
                payment_method=method,
                transaction_id=transaction_id,
                failure_reason=None if approved else failure_reason,
                recorded_at=now,
            )
        )
