"""Gateway notification reconciliation — command and handler.

Turns an inbound gateway notification into an order status change:

    1. verify the notification signature against the gateway's shared secret
    2. parse it into a typed ``GatewayNotification``
    3. drop duplicates (same transaction id and status) and notifications
       older than the last applied one
    4. map it to an ``OrderEvent`` and run it through the state machine
    5. persist with the repository's revision check

Ordering uses the gateway's ``transaction_time`` plus a rank per event kind
(pending < challenge < final), never arrival order, so a late ``pending``
can never regress an order that has already been paid.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.errors import AmountMismatchError, InvalidSignatureError, StateConflictError
from checkout.gateway import get_gateway
from checkout.gateway.port import (
    FraudStatus,
    TransactionStatus,
    parse_gateway_time,
    parse_gross_amount,
)
from checkout.order.order import Order
from checkout.order.state_machine import OrderEvent, event_for_notification, state_machine

logger = structlog.get_logger(__name__)

_EVENT_RANK = {
    OrderEvent.GATEWAY_PENDING: 0,
    OrderEvent.GATEWAY_CHALLENGED: 1,
    OrderEvent.GATEWAY_PAID: 2,
    OrderEvent.GATEWAY_FAILED: 2,
}


class ReconciliationOutcome(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DUPLICATE = "duplicate"
    STALE = "stale"


@dataclass(frozen=True)
class GatewayNotification:
    order_id: str
    transaction_status: TransactionStatus
    fraud_status: FraudStatus | None = None
    transaction_id: str | None = None
    transaction_time: datetime | None = None
    gross_amount: int | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "GatewayNotification":
        if not isinstance(payload, dict):
            raise ValidationError({"notification": ["Notification must be a JSON object"]})

        errors: dict[str, list[str]] = {}
        order_id = payload.get("order_id")
        if not order_id:
            errors["order_id"] = ["order_id is required"]

        transaction_status = fraud_status = transaction_time = None
        try:
            transaction_status = TransactionStatus(payload.get("transaction_status"))
        except ValueError:
            errors["transaction_status"] = [f"Unknown transaction status '{payload.get('transaction_status')}'"]
        if payload.get("fraud_status"):
            try:
                fraud_status = FraudStatus(payload["fraud_status"])
            except ValueError:
                errors["fraud_status"] = [f"Unknown fraud status '{payload['fraud_status']}'"]
        if not payload.get("transaction_time"):
            errors["transaction_time"] = ["transaction_time is required"]
        else:
            try:
                transaction_time = parse_gateway_time(payload["transaction_time"])
            except (TypeError, ValueError):
                errors["transaction_time"] = ["transaction_time is not a valid timestamp"]

        if errors:
            raise ValidationError(errors)

        return cls(
            order_id=str(order_id),
            transaction_status=transaction_status,
            fraud_status=fraud_status,
            transaction_id=payload.get("transaction_id") or None,
            transaction_time=transaction_time,
            gross_amount=parse_gross_amount(payload.get("gross_amount")),
        )

    @property
    def event(self) -> OrderEvent:
        return event_for_notification(self.transaction_status, self.fraud_status)

    @property
    def rank(self) -> int:
        return _EVENT_RANK[self.event]


@dataclass(frozen=True)
class ReconciliationResult:
    order_id: str
    outcome: ReconciliationOutcome
    status: str
    payment_status: str


@checkout.command(part_of="Order")
class ProcessGatewayNotification:
    """Reconcile a gateway payment notification with the order it refers to."""

    body = Text(required=True)  # JSON: raw notification body
    signature = String(max_length=512)


def _is_duplicate(order: Order, notification: GatewayNotification) -> bool:
    if not order.last_transaction_status:
        return False
    fraud = notification.fraud_status.value if notification.fraud_status else None
    return (
        (order.last_transaction_id or None) == notification.transaction_id
        and order.last_transaction_status == notification.transaction_status.value
        and (order.last_fraud_status or None) == fraud
    )


def _is_stale(order: Order, notification: GatewayNotification) -> bool:
    last_at, last_rank = order.notification_key()
    if last_rank is None:
        return False
    if notification.transaction_time is None or last_at is None:
        return notification.rank < last_rank
    return (notification.transaction_time, notification.rank) < (last_at, last_rank)


def _result(order: Order, outcome: ReconciliationOutcome) -> ReconciliationResult:
    return ReconciliationResult(
        order_id=str(order.id),
        outcome=outcome,
        status=order.status,
        payment_status=order.payment_status,
    )


@checkout.command_handler(part_of=Order)
class GatewayNotificationHandler:
    @handle(ProcessGatewayNotification)
    def reconcile(self, command):
        try:
            payload = json.loads(command.body) if isinstance(command.body, str) else command.body
        except ValueError:
            raise ValidationError({"notification": ["Notification body is not valid JSON"]}) from None
        signature = command.signature or (payload.get("signature_key") if isinstance(payload, dict) else None)

        if not isinstance(payload, dict) or not get_gateway().verify_notification_signature(payload, signature or ""):
            logger.warning(
                "Rejected notification with invalid signature",
                order_id=payload.get("order_id") if isinstance(payload, dict) else None,
            )
            raise InvalidSignatureError("Notification signature verification failed")

        notification = GatewayNotification.from_payload(payload)

        repo = current_domain.repository_for(Order)
        try:
            order = repo.get(notification.order_id)
        except ObjectNotFoundError:
            logger.warning("Notification for unknown order", order_id=notification.order_id)
            raise

        log = logger.bind(
            order_id=notification.order_id,
            transaction_id=notification.transaction_id,
            transaction_status=notification.transaction_status.value,
            fraud_status=notification.fraud_status.value if notification.fraud_status else None,
        )

        if _is_duplicate(order, notification):
            log.info("Duplicate notification ignored", status=order.status)
            return _result(order, ReconciliationOutcome.DUPLICATE)
        if _is_stale(order, notification):
            log.info(
                "Stale notification ignored",
                status=order.status,
                last_transaction_status=order.last_transaction_status,
            )
            return _result(order, ReconciliationOutcome.STALE)

        if notification.gross_amount is not None and notification.gross_amount != order.total:
            log.warning(
                "Notification amount does not match order total",
                gross_amount=notification.gross_amount,
                total=order.total,
            )
            raise AmountMismatchError(
                f"Notification gross amount {notification.gross_amount} does not match order total {order.total}",
                order_id=str(order.id),
            )

        try:
            transition = state_machine.apply(order, notification.event)
        except StateConflictError:
            log.warning("Notification rejected by state machine", status=order.status)
            raise

        expected_revision = order.revision
        order.reconcile_payment(
            transition,
            transaction_id=notification.transaction_id,
            transaction_status=notification.transaction_status.value,
            fraud_status=notification.fraud_status.value if notification.fraud_status else None,
            transaction_time=notification.transaction_time,
            rank=notification.rank,
        )
        repo.save_conditionally(order, expected_revision)

        outcome = ReconciliationOutcome.APPLIED if transition.changed else ReconciliationOutcome.UNCHANGED
        log.info(
            "Notification reconciled",
            outcome=outcome.value,
            status=order.status,
            payment_status=order.payment_status,
        )
        return _result(order, outcome)
