"""Payment gateway port (abstract interface).

Defines the contract every gateway adapter implements, plus the typed
request/response records that cross it. Swapping FakeGateway (dev/test) for
MidtransGateway (sandbox/production) requires no change to domain or
application code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum

# Midtrans reports transaction_time in Western Indonesia Time.
GATEWAY_TIMEZONE = timezone(timedelta(hours=7))
TRANSACTION_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_gateway_time(value) -> datetime | None:
    """Parse a gateway timestamp; naive values are taken as gateway-local time."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.strptime(value, TRANSACTION_TIME_FORMAT)
        except ValueError:
            parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=GATEWAY_TIMEZONE)
    return parsed


def parse_gross_amount(value) -> int | None:
    """Gateway amounts arrive as strings like ``"100000.00"``."""
    if value in (None, ""):
        return None
    try:
        return int(Decimal(str(value)))
    except InvalidOperation:
        return None


class TransactionStatus(Enum):
    PENDING = "pending"
    CAPTURE = "capture"
    SETTLEMENT = "settlement"
    DENY = "deny"
    CANCEL = "cancel"
    EXPIRE = "expire"
    FAILURE = "failure"


class FraudStatus(Enum):
    ACCEPT = "accept"
    CHALLENGE = "challenge"
    DENY = "deny"


FAILED_TRANSACTION_STATUSES = frozenset(
    {
        TransactionStatus.DENY,
        TransactionStatus.CANCEL,
        TransactionStatus.EXPIRE,
        TransactionStatus.FAILURE,
    }
)


@dataclass(frozen=True)
class ItemDetail:
    """One line of ``item_details`` as the gateway expects it."""

    id: str
    price: int
    quantity: int
    name: str
    category: str = ""
    merchant_name: str = ""

    def to_payload(self) -> dict:
        payload = {
            "id": self.id,
            "price": self.price,
            "quantity": self.quantity,
            "name": self.name,
        }
        if self.category:
            payload["category"] = self.category
        if self.merchant_name:
            payload["merchant_name"] = self.merchant_name
        return payload


@dataclass(frozen=True)
class SessionRequest:
    """Everything needed to open a payment session for one order."""

    order_id: str
    gross_amount: int
    items: tuple[ItemDetail, ...]
    customer_details: dict = field(default_factory=dict)
    callbacks: dict = field(default_factory=dict)

    def to_payload(self) -> dict:
        return {
            "transaction_details": {
                "order_id": self.order_id,
                "gross_amount": self.gross_amount,
            },
            "item_details": [item.to_payload() for item in self.items],
            "customer_details": self.customer_details,
            "credit_card": {"secure": True},
            "callbacks": self.callbacks,
        }


@dataclass(frozen=True)
class GatewaySession:
    """A payment session opened at the gateway."""

    token: str
    transaction_id: str
    redirect_url: str
    gross_amount: int


@dataclass(frozen=True)
class GatewayTransactionStatus:
    """Gateway-side view of a transaction, as returned by a status poll."""

    order_id: str
    transaction_status: TransactionStatus
    transaction_id: str | None = None
    fraud_status: FraudStatus | None = None
    transaction_time: datetime | None = None
    gross_amount: int | None = None
    status_code: str | None = None

    @property
    def is_paid(self) -> bool:
        if self.transaction_status == TransactionStatus.SETTLEMENT:
            return True
        return self.transaction_status == TransactionStatus.CAPTURE and self.fraud_status in (
            None,
            FraudStatus.ACCEPT,
        )

    @property
    def is_under_review(self) -> bool:
        return (
            self.transaction_status == TransactionStatus.CAPTURE
            and self.fraud_status == FraudStatus.CHALLENGE
        )

    @property
    def is_failed(self) -> bool:
        return self.transaction_status in FAILED_TRANSACTION_STATUSES


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name = "gateway"

    @abstractmethod
    def create_transaction(self, request: SessionRequest) -> GatewaySession:
        """Open a payment session for an order."""
        ...

    @abstractmethod
    def get_transaction_status(self, transaction_id: str) -> GatewayTransactionStatus:
        """Poll the current status of a transaction.

        Raises TransactionNotFoundError when the gateway has no such transaction.
        """
        ...

    @abstractmethod
    def verify_notification_signature(self, notification: dict, signature: str) -> bool:
        """Verify that a notification payload is authentically from the gateway."""
        ...
