"""FastAPI routes for the Checkout domain — orders, payment sessions and gateway callbacks.

The caller's identity arrives in ``X-User-Id`` / ``X-User-Role`` headers set
by the authentication layer in front of this service.

Routes that take the per-order lock or call the gateway are plain ``def`` so
FastAPI runs them in its threadpool instead of on the event loop.
"""

import json
import os

from fastapi import APIRouter, Header, HTTPException, Query
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    ConfigureGatewayRequest,
    GatewayConfigResponse,
    GatewayNotificationRequest,
    OrderIdResponse,
    OrderListResponse,
    OrderResponse,
    OverrideOrderStatusRequest,
    PaymentSessionResponse,
    PaymentStatusResponse,
    PlaceOrderRequest,
    ReconciliationResponse,
    RetryPaymentRequest,
    StatusResponse,
    UpdateOrderStatusRequest,
    UpdatePaymentStatusRequest,
)
from checkout.gateway import get_gateway
from checkout.gateway.fake_adapter import FakeGateway
from checkout.order.access import Requester
from checkout.order.placement import PlaceOrder
from checkout.order.queries import get_order, list_orders
from checkout.order.retry import RetryPayment
from checkout.order.serialization import process_for_order
from checkout.order.session import CreatePaymentSession
from checkout.order.status import OverrideOrderStatus, UpdateOrderStatus, UpdatePaymentStatus
from checkout.order.webhook import ProcessGatewayNotification


def _session_response(result) -> PaymentSessionResponse:
    return PaymentSessionResponse(
        order_id=result.order_id,
        token=result.token,
        redirect_url=result.redirect_url,
        transaction_id=result.transaction_id,
        reused=result.reused,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(
    body: PlaceOrderRequest,
    x_user_id: str = Header(),
) -> OrderIdResponse:
    """Place a new order. Gateway orders then need a payment session."""
    command = PlaceOrder(
        user_id=x_user_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        shipping_fee=body.shipping_fee,
        declared_total=body.total,
        payment_method=body.payment_method,
        customer=json.dumps(body.customer.model_dump()) if body.customer else None,
        shipping_address=json.dumps(body.shipping_address.model_dump()) if body.shipping_address else None,
    )
    order_id = current_domain.process(command, asynchronous=False)
    order = get_order(order_id, Requester.of(x_user_id))
    return OrderIdResponse(order_id=order_id, status=order.status, total=order.total)


@order_router.get("", response_model=OrderListResponse)
async def my_orders(
    x_user_id: str = Header(),
    limit: int | None = Query(default=None, gt=0),
) -> OrderListResponse:
    """List the caller's orders, newest first."""
    orders = list_orders(Requester.of(x_user_id), limit=limit)
    return OrderListResponse(orders=[OrderResponse.from_order(order) for order in orders])


@order_router.get("/{order_id}", response_model=OrderResponse)
async def fetch_order(
    order_id: str,
    x_user_id: str = Header(),
    x_user_role: str = Header(default="customer"),
) -> OrderResponse:
    """Fetch one order (owner or admin)."""
    order = get_order(order_id, Requester.of(x_user_id, x_user_role))
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/payment-session", status_code=201, response_model=PaymentSessionResponse)
def create_payment_session(
    order_id: str,
    x_user_id: str = Header(),
    x_user_role: str = Header(default="customer"),
) -> PaymentSessionResponse:
    """Open the first gateway session for an order awaiting payment."""
    command = CreatePaymentSession(order_id=order_id, requester_id=x_user_id, requester_role=x_user_role)
    return _session_response(process_for_order(order_id, command))


@order_router.post("/{order_id}/payment-retry", response_model=PaymentSessionResponse)
def retry_payment(
    order_id: str,
    body: RetryPaymentRequest | None = None,
    x_user_id: str = Header(),
    x_user_role: str = Header(default="customer"),
) -> PaymentSessionResponse:
    """Reuse the outstanding gateway session or open a replacement."""
    command = RetryPayment(
        order_id=order_id,
        requester_id=x_user_id,
        requester_role=x_user_role,
        force_retry=body.force_retry if body else False,
    )
    return _session_response(process_for_order(order_id, command))


@order_router.put("/{order_id}/status", response_model=StatusResponse)
def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    x_user_id: str = Header(),
    x_user_role: str = Header(default="customer"),
) -> StatusResponse:
    """Move an order along the transition table."""
    command = UpdateOrderStatus(
        order_id=order_id,
        requester_id=x_user_id,
        requester_role=x_user_role,
        status=body.status,
        payment_details=json.dumps(body.payment_details) if body.payment_details else None,
        expected_revision=body.expected_revision,
    )
    return StatusResponse(status=process_for_order(order_id, command))


@order_router.post("/{order_id}/status-override", response_model=StatusResponse)
def override_order_status(
    order_id: str,
    body: OverrideOrderStatusRequest,
    x_user_id: str = Header(),
    x_user_role: str = Header(default="customer"),
) -> StatusResponse:
    """Force a status outside the transition table (admin, audited)."""
    command = OverrideOrderStatus(
        order_id=order_id,
        requester_id=x_user_id,
        requester_role=x_user_role,
        status=body.status,
        reason=body.reason,
        reopen=body.reopen,
    )
    return StatusResponse(status=process_for_order(order_id, command))


@order_router.put("/{order_id}/payment-status", response_model=PaymentStatusResponse)
def update_payment_status(
    order_id: str,
    body: UpdatePaymentStatusRequest,
    x_user_id: str = Header(),
    x_user_role: str = Header(default="customer"),
) -> PaymentStatusResponse:
    """Set the payment status (admin)."""
    command = UpdatePaymentStatus(
        order_id=order_id,
        requester_id=x_user_id,
        requester_role=x_user_role,
        payment_status=body.payment_status,
    )
    return PaymentStatusResponse(payment_status=process_for_order(order_id, command))


# ---------------------------------------------------------------------------
# Gateway Router
# ---------------------------------------------------------------------------
gateway_router = APIRouter(prefix="/payments", tags=["payments"])


@gateway_router.post("/notification", response_model=ReconciliationResponse)
def gateway_notification(
    body: GatewayNotificationRequest,
    x_gateway_signature: str = Header(default=""),
) -> ReconciliationResponse:
    """Reconcile a payment notification sent by the gateway."""
    payload = body.model_dump(exclude_none=True)
    command = ProcessGatewayNotification(
        body=json.dumps(payload),
        signature=x_gateway_signature or body.signature_key or "",
    )
    result = process_for_order(body.order_id, command)
    return ReconciliationResponse(
        order_id=result.order_id,
        outcome=result.outcome.value,
        status=result.status,
        payment_status=result.payment_status,
    )


@gateway_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    This endpoint is only available when PROTEAN_ENV is not 'production'.
    """
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )
