"""Tests for parsing gateway notifications into typed values."""

from datetime import UTC, datetime

import pytest
from checkout.gateway.port import FraudStatus, TransactionStatus
from checkout.order.state_machine import OrderEvent
from checkout.order.webhook import GatewayNotification
from protean.exceptions import ValidationError


class TestFromPayload:
    def test_full_payload(self):
        notification = GatewayNotification.from_payload(
            {
                "order_id": "ord-1",
                "transaction_status": "capture",
                "fraud_status": "challenge",
                "transaction_id": "txn-1",
                "transaction_time": "2024-06-01 19:00:00",
                "gross_amount": "100000.00",
            }
        )
        assert notification.transaction_status == TransactionStatus.CAPTURE
        assert notification.fraud_status == FraudStatus.CHALLENGE
        assert notification.gross_amount == 100000
        # Gateway time is UTC+7
        assert notification.transaction_time == datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        assert notification.event == OrderEvent.GATEWAY_CHALLENGED

    def test_iso_time_with_offset(self):
        notification = GatewayNotification.from_payload(
            {"order_id": "ord-1", "transaction_status": "settlement", "transaction_time": "2024-06-01T12:00:00+00:00"}
        )
        assert notification.transaction_time == datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def test_optional_fields_absent(self):
        notification = GatewayNotification.from_payload(
            {"order_id": "ord-1", "transaction_status": "pending", "transaction_time": "2024-06-01 19:00:00"}
        )
        assert notification.fraud_status is None
        assert notification.transaction_id is None
        assert notification.gross_amount is None

    def test_rank_orders_pending_before_final(self):
        def parse(**fields):
            return GatewayNotification.from_payload(
                {"order_id": "o", "transaction_time": "2024-06-01 19:00:00", **fields}
            )

        pending = parse(transaction_status="pending")
        challenged = parse(transaction_status="capture", fraud_status="challenge")
        settled = parse(transaction_status="settlement")
        expired = parse(transaction_status="expire")

        assert pending.rank < challenged.rank < settled.rank
        assert settled.rank == expired.rank


class TestMalformed:
    def test_missing_order_id(self):
        with pytest.raises(ValidationError) as exc_info:
            GatewayNotification.from_payload({"transaction_status": "settlement"})
        assert "order_id" in exc_info.value.messages

    def test_unknown_transaction_status(self):
        with pytest.raises(ValidationError) as exc_info:
            GatewayNotification.from_payload({"order_id": "o", "transaction_status": "refund"})
        assert "transaction_status" in exc_info.value.messages

    def test_unknown_fraud_status(self):
        with pytest.raises(ValidationError):
            GatewayNotification.from_payload({"order_id": "o", "transaction_status": "capture", "fraud_status": "maybe"})

    def test_bad_time(self):
        with pytest.raises(ValidationError):
            GatewayNotification.from_payload(
                {"order_id": "o", "transaction_status": "pending", "transaction_time": "yesterday"}
            )

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            GatewayNotification.from_payload(["order_id"])

    @pytest.mark.parametrize("transaction_time", [None, ""])
    def test_missing_time(self, transaction_time):
        payload = {"order_id": "o", "transaction_status": "pending"}
        if transaction_time is not None:
            payload["transaction_time"] = transaction_time
        with pytest.raises(ValidationError) as exc_info:
            GatewayNotification.from_payload(payload)
        assert exc_info.value.messages["transaction_time"] == ["transaction_time is required"]
