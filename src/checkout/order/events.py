"""Domain events for the Order aggregate.

All events are versioned, immutable facts about an order's payment
lifecycle. They are raised on the aggregate and dispatched when the order is
persisted.
"""

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """A new order was placed at checkout."""

    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    shipping_fee = Integer(required=True)
    total = Integer(required=True)
    payment_method = String(required=True)
    status = String(required=True)
    placed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentSessionCreated:
    """A gateway session was opened (or replaced) for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = String(required=True)
    gross_amount = Integer(required=True)
    replaced = Boolean(default=False)
    created_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentSessionReused:
    """A retry found the outstanding gateway session still live and reused it."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = String()
    reused_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentReconciled:
    """A gateway notification moved the order to a new status."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = String()
    transaction_status = String(required=True)
    fraud_status = String()
    previous_status = String(required=True)
    status = String(required=True)
    payment_status = String(required=True)
    reconciled_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderStatusChanged:
    """The order status was changed by its owner or an administrator."""

    __version__ = 1

    order_id = Identifier(required=True)
    changed_by = Identifier(required=True)
    previous_status = String(required=True)
    status = String(required=True)
    payment_status = String(required=True)
    changed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderStatusOverridden:
    """An administrator forced a status outside the normal transition table."""

    __version__ = 1

    order_id = Identifier(required=True)
    overridden_by = Identifier(required=True)
    reason = String(required=True, max_length=500)
    previous_status = String(required=True)
    status = String(required=True)
    previous_payment_status = String(required=True)
    payment_status = String(required=True)
    reopened = Boolean(default=False)
    overridden_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentStatusChanged:
    """An administrator changed the payment status (e.g. recorded a refund)."""

    __version__ = 1

    order_id = Identifier(required=True)
    changed_by = Identifier(required=True)
    previous_payment_status = String(required=True)
    payment_status = String(required=True)
    changed_at = DateTime(required=True)
