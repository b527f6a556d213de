"""Manual status changes — owner/admin updates, audited override, payment status."""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.errors import AuthorizationError, StateConflictError
from checkout.order.access import Requester, ensure_admin, ensure_can_access
from checkout.order.order import Order
from checkout.order.state_machine import MANUAL_EVENTS, OrderStatus, PaymentStatus, state_machine

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    requester_id = Identifier(required=True)
    requester_role = String(max_length=20, default="customer")
    status = String(required=True, max_length=50)
    payment_details = Text()  # JSON: gateway result, transaction_id becomes payment id
    expected_revision = Integer()


@checkout.command(part_of="Order")
class OverrideOrderStatus:
    order_id = Identifier(required=True)
    requester_id = Identifier(required=True)
    requester_role = String(max_length=20, default="customer")
    status = String(required=True, max_length=50)
    reason = String(required=True, max_length=500)
    reopen = Boolean(default=False)


@checkout.command(part_of="Order")
class UpdatePaymentStatus:
    order_id = Identifier(required=True)
    requester_id = Identifier(required=True)
    requester_role = String(max_length=20, default="customer")
    payment_status = String(required=True, max_length=50)


def _order_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError({"status": [f"Unknown order status '{value}'"]}) from None


def _check_revision(order: Order, expected_revision) -> None:
    if expected_revision is not None and expected_revision != order.revision:
        raise StateConflictError(
            "Order was modified since it was read; reload and try again",
            expected_revision=expected_revision,
            current_revision=order.revision,
        )


@checkout.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        requester = Requester.of(command.requester_id, command.requester_role)
        target = _order_status(command.status)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        ensure_can_access(order, requester)
        _check_revision(order, command.expected_revision)

        if not requester.is_admin:
            if target != OrderStatus.CANCELLED:
                raise AuthorizationError("Customers may only cancel their orders")
            if order.payment_status != PaymentStatus.UNPAID.value:
                raise StateConflictError(
                    "Paid orders cannot be cancelled by the customer",
                    payment_status=order.payment_status,
                )

        event = MANUAL_EVENTS.get(target)
        if event is None:
            raise StateConflictError(
                f"Status '{target.value}' can only be set through an override",
                current_status=order.status,
            )
        transition = state_machine.apply(order, event)

        payment_id = None
        if command.payment_details:
            details = json.loads(command.payment_details)
            payment_id = details.get("transaction_id") or details.get("order_id")

        expected_revision = order.revision
        previous = order.status
        order.change_status(transition, changed_by=requester.user_id, payment_id=payment_id)
        repo.save_conditionally(order, expected_revision)

        logger.info(
            "Order status changed",
            order_id=str(order.id),
            previous_status=previous,
            status=order.status,
            payment_status=order.payment_status,
            changed_by=requester.user_id,
        )
        return order.status

    @handle(OverrideOrderStatus)
    def override_status(self, command):
        requester = Requester.of(command.requester_id, command.requester_role)
        ensure_admin(requester, "override an order status")
        target = _order_status(command.status)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        expected_revision = order.revision
        previous = order.status
        order.override_status(target, overridden_by=requester.user_id, reason=command.reason, reopen=command.reopen)
        repo.save_conditionally(order, expected_revision)

        logger.warning(
            "Order status overridden",
            order_id=str(order.id),
            previous_status=previous,
            status=order.status,
            payment_status=order.payment_status,
            overridden_by=requester.user_id,
            reason=command.reason,
            reopened=bool(command.reopen),
        )
        return order.status

    @handle(UpdatePaymentStatus)
    def update_payment_status(self, command):
        requester = Requester.of(command.requester_id, command.requester_role)
        ensure_admin(requester, "change a payment status")
        try:
            target = PaymentStatus(command.payment_status)
        except ValueError:
            raise ValidationError(
                {"payment_status": [f"Unknown payment status '{command.payment_status}'"]}
            ) from None

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        expected_revision = order.revision
        previous = order.payment_status
        order.change_payment_status(target, changed_by=requester.user_id)
        if previous != order.payment_status:
            repo.save_conditionally(order, expected_revision)
            logger.info(
                "Payment status changed",
                order_id=str(order.id),
                previous_payment_status=previous,
                payment_status=order.payment_status,
                changed_by=requester.user_id,
            )
        return order.payment_status
