"""Payment retry — command and handler.

Decides whether an order still awaiting payment can reuse its outstanding
gateway session or needs a new one. The same order id is always sent to the
gateway, which is what keeps a retried payment from being charged twice.

Decision table for an order that already holds a token:

    gateway status            decision
    ------------------------  -----------------------------------------
    pending, age < window     reuse the token (no gateway session call)
    pending, age >= window    replace (stale session)
    deny/cancel/expire/failure replace
    settlement, capture       AlreadyPaidError
    capture + challenge       StateConflictError (under fraud review)
    no transaction yet        reuse while the session is young, else replace

``force_retry`` (admins only) skips the pending/age rules but never the
already-paid check.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from checkout.config import get_settings
from checkout.domain import checkout
from checkout.errors import AlreadyPaidError, StateConflictError, TransactionNotFoundError
from checkout.gateway import get_gateway_client
from checkout.gateway.port import GatewayTransactionStatus
from checkout.order.access import Requester, ensure_admin, ensure_can_access
from checkout.order.order import Order
from checkout.order.session import PaymentSessionResult, open_session
from checkout.order.state_machine import OrderStatus

logger = structlog.get_logger(__name__)


class RetryDecision(Enum):
    CREATE = "create"
    REUSE = "reuse"
    REPLACE = "replace"


@checkout.command(part_of="Order")
class RetryPayment:
    order_id = Identifier(required=True)
    requester_id = Identifier(required=True)
    requester_role = String(max_length=20, default="customer")
    force_retry = Boolean(default=False)


def _is_young(started_at: datetime | None, now: datetime, stale_after: timedelta) -> bool:
    return started_at is not None and now - started_at < stale_after


def decide_retry(
    order: Order,
    gateway_status: GatewayTransactionStatus | None,
    now: datetime,
    stale_after: timedelta,
    force: bool = False,
) -> RetryDecision:
    """Pick what to do with the order's outstanding session.

    ``gateway_status`` is None when the gateway has no transaction for the
    stored token yet.
    """
    if not order.payment_token:
        return RetryDecision.CREATE

    if gateway_status is None:
        if not force and _is_young(order.payment_session_created_at, now, stale_after):
            return RetryDecision.REUSE
        return RetryDecision.REPLACE

    if gateway_status.is_paid:
        raise AlreadyPaidError(
            "Payment for this order has already been completed",
            order_id=str(order.id),
            transaction_status=gateway_status.transaction_status.value,
        )
    if gateway_status.is_under_review:
        raise StateConflictError(
            "Payment for this order is under fraud review",
            order_id=str(order.id),
        )
    if gateway_status.is_failed or force:
        return RetryDecision.REPLACE

    started_at = gateway_status.transaction_time or order.payment_session_created_at
    if _is_young(started_at, now, stale_after):
        return RetryDecision.REUSE
    return RetryDecision.REPLACE


@checkout.command_handler(part_of=Order)
class RetryPaymentHandler:
    @handle(RetryPayment)
    def retry_payment(self, command):
        requester = Requester.of(command.requester_id, command.requester_role)
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        ensure_can_access(order, requester)
        if command.force_retry:
            ensure_admin(requester, "force a payment retry")
        if order.status != OrderStatus.AWAITING_PAYMENT.value:
            raise StateConflictError(
                f"Cannot retry payment for order in '{order.status}' status",
                current_status=order.status,
            )

        client = get_gateway_client()
        gateway_status = None
        if order.payment_token:
            try:
                gateway_status = client.query_status(order.payment_id or str(order.id))
            except TransactionNotFoundError:
                logger.info("No gateway transaction for outstanding session", order_id=str(order.id))

        stale_after = timedelta(hours=get_settings().stale_after_hours)
        try:
            decision = decide_retry(
                order,
                gateway_status,
                now=datetime.now(UTC),
                stale_after=stale_after,
                force=bool(command.force_retry),
            )
        except AlreadyPaidError:
            logger.info("Retry refused, payment already completed", order_id=str(order.id))
            raise
        logger.info(
            "Payment retry decision",
            order_id=str(order.id),
            decision=decision.value,
            forced=bool(command.force_retry),
            requested_by=requester.user_id,
        )

        if decision == RetryDecision.REUSE:
            expected_revision = order.revision
            order.record_session_reuse()
            repo.save_conditionally(order, expected_revision)
            return PaymentSessionResult(
                order_id=str(order.id),
                token=order.payment_token,
                redirect_url=order.payment_redirect_url or "",
                transaction_id=order.payment_id or str(order.id),
                reused=True,
            )

        return open_session(order, repo)
