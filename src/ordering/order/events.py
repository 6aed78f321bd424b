"""Domain events for the Order aggregate.

Events are raised alongside every committed state change and carry
enough data for downstream consumers (expedition dashboards, notification
senders) without re-reading the order.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderCreated:
    """A patient purchase or marketplace order was placed."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    origin = String(required=True)
    organization_id = Identifier(required=True)
    counterparty_id = Identifier()
    created_by = Identifier(required=True)
    status = String(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    total = Float(required=True)
    currency = String(default="BRL")
    created_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    """An order moved from one lifecycle status to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    organization_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    actor_id = Identifier(required=True)
    actor_role = String(required=True)
    reason = String()
    sequence = Integer(required=True)
    occurred_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderTransitionRejected:
    """A requested transition was refused by its side effect."""

    __version__ = 1

    order_id = Identifier(required=True)
    current_status = String(required=True)
    requested_status = String(required=True)
    actor_id = Identifier(required=True)
    failure = String(required=True)
    sequence = Integer(required=True)
    occurred_at = DateTime(required=True)


@ordering.event(part_of="Order")
class TrackingStaged:
    """Tracking details were attached while the order was in preparation."""

    __version__ = 1

    order_id = Identifier(required=True)
    carrier_code = String()
    tracking_number = String(required=True)
    staged_at = DateTime(required=True)


@ordering.event(part_of="Order")
class PaymentRecorded:
    """The payment gateway approved or declined a charge for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_status = String(required=True)
    amount = Float(required=True)
    payment_method = String()
    transaction_id = String()
    failure_reason = String()
    recorded_at = DateTime(required=True)
