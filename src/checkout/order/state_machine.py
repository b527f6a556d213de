"""Order state machine — the single source of truth for status transitions.

Maps (current status, event) to the next (status, payment status). Gateway
notifications and manual/admin updates both go through ``OrderStateMachine``;
the audited override path is separate and lives on the aggregate.

    AWAITING_PAYMENT --paid--> PROCESSING --ship--> SHIPPED --deliver--> DELIVERED
          |  +--challenged--> PENDING --review/manual--> PROCESSING ...
          +--failed/cancel--> CANCELLED

COMPLETED, DELIVERED and CANCELLED are terminal.
"""

from dataclasses import dataclass
from enum import Enum

from checkout.errors import StateConflictError
from checkout.gateway.port import FraudStatus, TransactionStatus


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class OrderEvent(Enum):
    # Gateway notifications
    GATEWAY_PAID = "gateway_paid"
    GATEWAY_CHALLENGED = "gateway_challenged"
    GATEWAY_FAILED = "gateway_failed"
    GATEWAY_PENDING = "gateway_pending"
    # Manual / admin
    MARK_PROCESSING = "mark_processing"
    MARK_COMPLETED = "mark_completed"
    MARK_SHIPPED = "mark_shipped"
    MARK_DELIVERED = "mark_delivered"
    CANCEL = "cancel"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Requested target status → manual event
MANUAL_EVENTS = {
    OrderStatus.PROCESSING: OrderEvent.MARK_PROCESSING,
    OrderStatus.COMPLETED: OrderEvent.MARK_COMPLETED,
    OrderStatus.SHIPPED: OrderEvent.MARK_SHIPPED,
    OrderStatus.DELIVERED: OrderEvent.MARK_DELIVERED,
    OrderStatus.CANCELLED: OrderEvent.CANCEL,
}

_PAID_STATUSES = frozenset(
    {OrderStatus.PROCESSING, OrderStatus.COMPLETED, OrderStatus.SHIPPED, OrderStatus.DELIVERED}
)

# Post-payment states absorb repeated or lagging gateway success signals.
_ABSORB_GATEWAY_SUCCESS = {
    OrderEvent.GATEWAY_PAID: None,
    OrderEvent.GATEWAY_CHALLENGED: None,
    OrderEvent.GATEWAY_PENDING: None,
}

# None means "status unchanged".
_TRANSITIONS: dict[OrderStatus, dict[OrderEvent, OrderStatus | None]] = {
    OrderStatus.AWAITING_PAYMENT: {
        OrderEvent.GATEWAY_PAID: OrderStatus.PROCESSING,
        OrderEvent.GATEWAY_CHALLENGED: OrderStatus.PENDING,
        OrderEvent.GATEWAY_FAILED: OrderStatus.CANCELLED,
        OrderEvent.GATEWAY_PENDING: None,
        OrderEvent.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.PENDING: {
        # Fraud review resolved at the gateway
        OrderEvent.GATEWAY_PAID: OrderStatus.PROCESSING,
        OrderEvent.GATEWAY_FAILED: OrderStatus.CANCELLED,
        OrderEvent.GATEWAY_CHALLENGED: None,
        OrderEvent.GATEWAY_PENDING: None,
        OrderEvent.MARK_PROCESSING: OrderStatus.PROCESSING,
        OrderEvent.MARK_COMPLETED: OrderStatus.COMPLETED,
        OrderEvent.MARK_SHIPPED: OrderStatus.SHIPPED,
        OrderEvent.MARK_DELIVERED: OrderStatus.DELIVERED,
        OrderEvent.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        **_ABSORB_GATEWAY_SUCCESS,
        OrderEvent.GATEWAY_FAILED: OrderStatus.CANCELLED,
        OrderEvent.MARK_COMPLETED: OrderStatus.COMPLETED,
        OrderEvent.MARK_SHIPPED: OrderStatus.SHIPPED,
        OrderEvent.MARK_DELIVERED: OrderStatus.DELIVERED,
        OrderEvent.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.SHIPPED: {
        **_ABSORB_GATEWAY_SUCCESS,
        OrderEvent.MARK_DELIVERED: OrderStatus.DELIVERED,
        OrderEvent.MARK_COMPLETED: OrderStatus.COMPLETED,
        OrderEvent.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.COMPLETED: {},  # Terminal
    OrderStatus.DELIVERED: {},  # Terminal
    OrderStatus.CANCELLED: {},  # Terminal
}


@dataclass(frozen=True)
class Transition:
    status: OrderStatus
    payment_status: PaymentStatus
    changed: bool


def event_for_notification(
    transaction_status: TransactionStatus,
    fraud_status: FraudStatus | None = None,
) -> OrderEvent:
    """Map a gateway (transaction_status, fraud_status) pair to an order event.

    A capture without a fraud verdict is treated as accepted.
    """
    if transaction_status == TransactionStatus.SETTLEMENT:
        return OrderEvent.GATEWAY_PAID
    if transaction_status == TransactionStatus.CAPTURE:
        if fraud_status == FraudStatus.CHALLENGE:
            return OrderEvent.GATEWAY_CHALLENGED
        if fraud_status == FraudStatus.DENY:
            return OrderEvent.GATEWAY_FAILED
        return OrderEvent.GATEWAY_PAID
    if transaction_status == TransactionStatus.PENDING:
        return OrderEvent.GATEWAY_PENDING
    return OrderEvent.GATEWAY_FAILED


def payment_status_for(target: OrderStatus, current: PaymentStatus) -> PaymentStatus:
    """Payment status implied by moving into ``target``."""
    if current == PaymentStatus.REFUNDED:
        return current
    if target in _PAID_STATUSES:
        return PaymentStatus.PAID
    if target in (OrderStatus.CANCELLED, OrderStatus.PENDING, OrderStatus.AWAITING_PAYMENT):
        return PaymentStatus.UNPAID
    return current


class OrderStateMachine:
    transitions = _TRANSITIONS

    def allowed_events(self, status: OrderStatus) -> frozenset[OrderEvent]:
        return frozenset(self.transitions[status])

    def is_terminal(self, status: OrderStatus) -> bool:
        return status in TERMINAL_STATUSES

    def next_state(
        self,
        status: OrderStatus,
        payment_status: PaymentStatus,
        event: OrderEvent,
    ) -> Transition:
        if event not in self.allowed_events(status):
            if self.is_terminal(status):
                raise StateConflictError(
                    f"Order is in terminal status '{status.value}' and cannot accept '{event.value}'",
                    current_status=status.value,
                )
            raise StateConflictError(
                f"Event '{event.value}' is not allowed from status '{status.value}'",
                current_status=status.value,
            )

        target = self.transitions[status][event]
        if target is None:
            return Transition(status=status, payment_status=payment_status, changed=False)
        return Transition(
            status=target,
            payment_status=payment_status_for(target, payment_status),
            changed=True,
        )

    def apply(self, order, event: OrderEvent) -> Transition:
        """Compute the transition for ``order`` without mutating it."""
        return self.next_state(
            OrderStatus(order.status),
            PaymentStatus(order.payment_status),
            event,
        )


state_machine = OrderStateMachine()
