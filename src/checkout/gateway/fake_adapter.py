"""Configurable fake payment gateway for development and testing.

This adapter simulates the gateway without any external calls. It can be
configured at runtime to fail session creation, and transaction statuses can
be seeded per order, making it useful for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials
"""

from datetime import UTC, datetime
from uuid import uuid4

from checkout.errors import GatewayError, TransactionNotFoundError
from checkout.gateway.port import (
    FraudStatus,
    GatewaySession,
    GatewayTransactionStatus,
    PaymentGateway,
    SessionRequest,
    TransactionStatus,
)

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []
        self._transactions: dict[str, GatewayTransactionStatus] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def set_transaction_status(
        self,
        transaction_id: str,
        transaction_status: TransactionStatus | str,
        fraud_status: FraudStatus | str | None = None,
        transaction_time: datetime | None = None,
    ) -> None:
        """Seed the status the next poll for ``transaction_id`` returns."""
        self._transactions[transaction_id] = GatewayTransactionStatus(
            order_id=transaction_id,
            transaction_id=transaction_id,
            transaction_status=TransactionStatus(transaction_status),
            fraud_status=FraudStatus(fraud_status) if fraud_status else None,
            transaction_time=transaction_time or datetime.now(UTC),
        )

    def forget_transaction(self, transaction_id: str) -> None:
        self._transactions.pop(transaction_id, None)

    def create_transaction(self, request: SessionRequest) -> GatewaySession:
        self.calls.append(
            {
                "method": "create_transaction",
                "order_id": request.order_id,
                "gross_amount": request.gross_amount,
                "payload": request.to_payload(),
            }
        )
        if not self.should_succeed:
            raise GatewayError(self.failure_reason, order_id=request.order_id)

        token = f"fake_tok_{uuid4().hex[:16]}"
        return GatewaySession(
            token=token,
            transaction_id=request.order_id,
            redirect_url=f"https://fake-gateway.local/snap/v2/vtweb/{token}",
            gross_amount=request.gross_amount,
        )

    def get_transaction_status(self, transaction_id: str) -> GatewayTransactionStatus:
        self.calls.append({"method": "get_transaction_status", "transaction_id": transaction_id})
        if not self.should_succeed:
            raise GatewayError(self.failure_reason, transaction_id=transaction_id)

        status = self._transactions.get(transaction_id)
        if status is None:
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                transaction_id=transaction_id,
            )
        return status

    def verify_notification_signature(self, notification: dict, signature: str) -> bool:  # noqa: ARG002
        return signature == TEST_SIGNATURE
