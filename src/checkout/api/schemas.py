"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. Malformed payloads are rejected here, before
anything reaches a command handler.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PaymentMethodName = Literal["cod", "midtrans"]
OrderStatusName = Literal[
    "pending", "awaiting_payment", "processing", "completed", "shipped", "delivered", "cancelled"
]
PaymentStatusName = Literal["unpaid", "paid", "refunded"]
TransactionStatusName = Literal["pending", "capture", "settlement", "deny", "cancel", "expire", "failure"]


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    unit_price: int = Field(ge=0)  # minor currency units
    selected_color: str | None = None
    selected_size: str | None = None


class CustomerSchema(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class ShippingAddressSchema(BaseModel):
    full_name: str
    phone: str | None = None
    address: str
    city: str
    postal_code: str
    country_code: str = "IDN"


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    items: list[OrderItemSchema] = Field(min_length=1)
    shipping_fee: int = Field(default=0, ge=0)
    total: int | None = Field(default=None, gt=0)
    payment_method: PaymentMethodName
    customer: CustomerSchema | None = None
    shipping_address: ShippingAddressSchema | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {"product_id": "prod-001", "name": "Linen Shirt", "quantity": 3, "unit_price": 33333},
                    ],
                    "shipping_fee": 1,
                    "total": 100000,
                    "payment_method": "midtrans",
                    "customer": {"name": "Sari Dewi", "email": "sari@example.com", "phone": "0812000000"},
                    "shipping_address": {
                        "full_name": "Sari Dewi",
                        "address": "Jl. Merdeka 1",
                        "city": "Bandung",
                        "postal_code": "40111",
                    },
                }
            ]
        }
    }


class RetryPaymentRequest(BaseModel):
    force_retry: bool = False


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatusName
    payment_details: dict | None = None
    expected_revision: int | None = Field(default=None, ge=0)


class OverrideOrderStatusRequest(BaseModel):
    status: OrderStatusName
    reason: str = Field(min_length=1, max_length=500)
    reopen: bool = False


class UpdatePaymentStatusRequest(BaseModel):
    payment_status: PaymentStatusName


class GatewayNotificationRequest(BaseModel):
    """Gateway HTTP notification. Unknown fields are kept for signature checks."""

    model_config = ConfigDict(extra="allow")

    order_id: str = Field(min_length=1)
    transaction_status: TransactionStatusName
    fraud_status: Literal["accept", "challenge", "deny"] | None = None
    transaction_id: str | None = None
    transaction_time: str | None = None
    gross_amount: str | int | None = None
    status_code: str | None = None
    signature_key: str | None = None


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Gateway unavailable"


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str
    status: str
    total: int


class OrderItemResponse(BaseModel):
    product_id: str
    name: str
    quantity: int
    unit_price: int
    selected_color: str | None = None
    selected_size: str | None = None


class OrderResponse(BaseModel):
    id: str
    user_id: str
    items: list[OrderItemResponse]
    shipping_fee: int
    total: int
    status: str
    payment_status: str
    payment_method: str
    payment_id: str | None = None
    has_payment_session: bool = False
    revision: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        return cls(
            id=str(order.id),
            user_id=str(order.user_id),
            items=[
                OrderItemResponse(
                    product_id=str(item.product_id),
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    selected_color=item.selected_color,
                    selected_size=item.selected_size,
                )
                for item in order.items
            ],
            shipping_fee=order.shipping_fee or 0,
            total=order.total,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_id=order.payment_id,
            has_payment_session=bool(order.payment_token),
            revision=order.revision or 0,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]


class PaymentSessionResponse(BaseModel):
    order_id: str
    token: str
    redirect_url: str
    transaction_id: str
    reused: bool = False


class ReconciliationResponse(BaseModel):
    order_id: str
    outcome: str
    status: str
    payment_status: str


class StatusResponse(BaseModel):
    status: str


class PaymentStatusResponse(BaseModel):
    payment_status: str


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
