"""Payment session creation — command and handler.

Opens the first gateway session for an order that is awaiting payment. The
token and transaction id are written onto the order only after the gateway
call succeeds.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.errors import StateConflictError
from checkout.gateway import get_gateway_client
from checkout.order.access import Requester, ensure_can_access
from checkout.order.order import Order
from checkout.order.state_machine import OrderStatus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentSessionResult:
    order_id: str
    token: str
    redirect_url: str
    transaction_id: str
    reused: bool = False


@checkout.command(part_of="Order")
class CreatePaymentSession:
    order_id = Identifier(required=True)
    requester_id = Identifier(required=True)
    requester_role = String(max_length=20, default="customer")


def open_session(order: Order, repo) -> PaymentSessionResult:
    """Create a gateway session for ``order`` and persist it conditionally."""
    expected_revision = order.revision
    session = get_gateway_client().create_session(order)

    order.record_payment_session(session)
    repo.save_conditionally(order, expected_revision)
    return PaymentSessionResult(
        order_id=str(order.id),
        token=session.token,
        redirect_url=session.redirect_url,
        transaction_id=session.transaction_id,
    )


@checkout.command_handler(part_of=Order)
class CreatePaymentSessionHandler:
    @handle(CreatePaymentSession)
    def create_payment_session(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        ensure_can_access(order, Requester.of(command.requester_id, command.requester_role))

        if order.is_cash_on_delivery:
            raise StateConflictError(
                "Cash-on-delivery orders do not use the payment gateway",
                order_id=str(order.id),
            )
        if order.status != OrderStatus.AWAITING_PAYMENT.value:
            raise StateConflictError(
                f"Cannot create a payment session for order in '{order.status}' status",
                current_status=order.status,
            )
        if order.payment_token:
            raise StateConflictError(
                "Order already has a payment session; use retry instead",
                order_id=str(order.id),
            )

        return open_session(order, repo)
