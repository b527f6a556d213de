"""Order aggregate (CQRS) — the unit of consistency for the payment lifecycle.

The order is a standard (non event-sourced) aggregate. Every write goes
through ``OrderRepository.save_conditionally`` which compares the stored
``revision`` with the one the writer loaded, so concurrent writers can never
blind-overwrite each other.

Status changes come from three places only:
    - gateway notifications (``reconcile_payment``)
    - owner/admin updates that follow the transition table (``change_status``)
    - the audited admin override (``override_status``)
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, ValueObject

from checkout.domain import checkout
from checkout.errors import StateConflictError
from checkout.order.events import (
    OrderPlaced,
    OrderStatusChanged,
    OrderStatusOverridden,
    PaymentReconciled,
    PaymentSessionCreated,
    PaymentSessionReused,
    PaymentStatusChanged,
)
from checkout.order.state_machine import (
    TERMINAL_STATUSES,
    OrderStatus,
    PaymentStatus,
    Transition,
    payment_status_for,
)


class PaymentMethod(Enum):
    COD = "cod"
    MIDTRANS = "midtrans"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="Order")
class CustomerContact:
    """Contact details sent to the gateway with every session request."""

    name = String(max_length=255)
    email = String(max_length=255)
    phone = String(max_length=50)


@checkout.value_object(part_of="Order")
class ShippingAddress:
    """Delivery address captured at checkout time."""

    full_name = String(required=True, max_length=255)
    phone = String(max_length=50)
    address = String(required=True, max_length=500)
    city = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)
    country_code = String(max_length=3, default="IDN")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)  # minor currency units
    selected_color = String(max_length=50)
    selected_size = String(max_length=50)

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@checkout.aggregate
class Order:
    user_id = Identifier(required=True)
    items = HasMany(OrderItem)
    shipping_fee = Integer(default=0, min_value=0)
    total = Integer(required=True, min_value=1)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.UNPAID.value)
    payment_method = String(choices=PaymentMethod, required=True)
    customer = ValueObject(CustomerContact)
    shipping_address = ValueObject(ShippingAddress)

    # Gateway session
    payment_id = String(max_length=255)
    payment_token = String(max_length=255)
    payment_redirect_url = String(max_length=1000)
    payment_session_created_at = DateTime()

    # Last applied gateway notification
    last_transaction_id = String(max_length=255)
    last_transaction_status = String(max_length=50)
    last_fraud_status = String(max_length=50)
    last_notification_at = DateTime()
    last_notification_rank = Integer()

    revision = Integer(default=0)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        user_id,
        items_data: list[dict],
        shipping_fee: int,
        payment_method: str,
        customer: dict | None = None,
        shipping_address: dict | None = None,
    ):
        """Create an order from validated checkout data.

        COD orders start ``pending``; gateway orders start ``awaiting_payment``.
        """
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        method = PaymentMethod(payment_method)
        status = OrderStatus.PENDING if method == PaymentMethod.COD else OrderStatus.AWAITING_PAYMENT
        items = [
            OrderItem(
                product_id=data["product_id"],
                name=data["name"],
                quantity=data["quantity"],
                unit_price=data["unit_price"],
                selected_color=data.get("selected_color"),
                selected_size=data.get("selected_size"),
            )
            for data in items_data
        ]
        total = sum(item.subtotal for item in items) + shipping_fee

        now = datetime.now(UTC)
        order = cls(
            user_id=user_id,
            shipping_fee=shipping_fee,
            total=total,
            status=status.value,
            payment_status=PaymentStatus.UNPAID.value,
            payment_method=method.value,
            customer=CustomerContact(**customer) if customer else None,
            shipping_address=ShippingAddress(**shipping_address) if shipping_address else None,
            revision=0,
            created_at=now,
            updated_at=now,
        )
        for item in items:
            order.add_items(item)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                user_id=str(user_id),
                items=json.dumps(items_data),
                shipping_fee=shipping_fee,
                total=total,
                payment_method=method.value,
                status=status.value,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_cash_on_delivery(self) -> bool:
        return self.payment_method == PaymentMethod.COD.value

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    def notification_key(self) -> tuple[datetime | None, int | None]:
        return self.last_notification_at, self.last_notification_rank

    # -------------------------------------------------------------------
    # Gateway session
    # -------------------------------------------------------------------
    def record_payment_session(self, session) -> None:
        """Store a freshly created gateway session, replacing any previous one."""
        replaced = bool(self.payment_token)
        now = datetime.now(UTC)

        self.payment_token = session.token
        self.payment_id = session.transaction_id
        self.payment_redirect_url = session.redirect_url
        self.payment_session_created_at = now
        self.updated_at = now

        self.raise_(
            PaymentSessionCreated(
                order_id=str(self.id),
                transaction_id=session.transaction_id,
                gross_amount=session.gross_amount,
                replaced=replaced,
                created_at=now,
            )
        )

    def record_session_reuse(self) -> None:
        self.raise_(
            PaymentSessionReused(
                order_id=str(self.id),
                transaction_id=self.payment_id,
                reused_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------
    def reconcile_payment(
        self,
        transition: Transition,
        transaction_id: str | None,
        transaction_status: str,
        fraud_status: str | None,
        transaction_time: datetime | None,
        rank: int,
    ) -> None:
        """Apply a gateway notification's transition and remember it as the latest."""
        previous = self.status
        now = datetime.now(UTC)

        self.status = transition.status.value
        self.payment_status = transition.payment_status.value
        if transaction_id:
            self.payment_id = transaction_id
        self.last_transaction_id = transaction_id
        self.last_transaction_status = transaction_status
        self.last_fraud_status = fraud_status
        self.last_notification_at = transaction_time
        self.last_notification_rank = rank
        self.updated_at = now

        if transition.changed:
            self.raise_(
                PaymentReconciled(
                    order_id=str(self.id),
                    transaction_id=transaction_id,
                    transaction_status=transaction_status,
                    fraud_status=fraud_status,
                    previous_status=previous,
                    status=self.status,
                    payment_status=self.payment_status,
                    reconciled_at=now,
                )
            )

    def change_status(self, transition: Transition, changed_by, payment_id: str | None = None) -> None:
        previous = self.status
        now = datetime.now(UTC)

        self.status = transition.status.value
        self.payment_status = transition.payment_status.value
        if payment_id:
            self.payment_id = payment_id
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                changed_by=str(changed_by),
                previous_status=previous,
                status=self.status,
                payment_status=self.payment_status,
                changed_at=now,
            )
        )

    def override_status(self, target: OrderStatus, overridden_by, reason: str, reopen: bool = False) -> None:
        """Force ``target`` regardless of the transition table.

        Leaving a terminal status additionally requires ``reopen``.
        """
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A reason is required to override an order status"]})

        current = OrderStatus(self.status)
        if current == target:
            raise StateConflictError(
                f"Order is already '{current.value}'",
                current_status=current.value,
            )
        if current in TERMINAL_STATUSES and not reopen:
            raise StateConflictError(
                f"Order is in terminal status '{current.value}'; set reopen to override it",
                current_status=current.value,
            )

        previous_payment = self.payment_status
        now = datetime.now(UTC)
        self.status = target.value
        self.payment_status = payment_status_for(target, PaymentStatus(previous_payment)).value
        self.updated_at = now

        self.raise_(
            OrderStatusOverridden(
                order_id=str(self.id),
                overridden_by=str(overridden_by),
                reason=reason.strip(),
                previous_status=current.value,
                status=self.status,
                previous_payment_status=previous_payment,
                payment_status=self.payment_status,
                reopened=current in TERMINAL_STATUSES,
                overridden_at=now,
            )
        )

    def change_payment_status(self, target: PaymentStatus, changed_by) -> None:
        current = PaymentStatus(self.payment_status)
        if current == target:
            return
        if current == PaymentStatus.REFUNDED:
            raise StateConflictError(
                "Payment was refunded; its status can no longer change",
                payment_status=current.value,
            )
        if target == PaymentStatus.REFUNDED and current != PaymentStatus.PAID:
            raise StateConflictError(
                f"Only a paid order can be refunded (payment status is '{current.value}')",
                payment_status=current.value,
            )

        now = datetime.now(UTC)
        self.payment_status = target.value
        self.updated_at = now

        self.raise_(
            PaymentStatusChanged(
                order_id=str(self.id),
                changed_by=str(changed_by),
                previous_payment_status=current.value,
                payment_status=target.value,
                changed_at=now,
            )
        )
