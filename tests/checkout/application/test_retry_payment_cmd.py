"""Application tests for payment retry (reuse vs. new session)."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from checkout.errors import AlreadyPaidError, AuthorizationError, GatewayError, StateConflictError
from checkout.order.order import Order
from checkout.order.placement import PlaceOrder
from checkout.order.retry import RetryPayment
from checkout.order.session import CreatePaymentSession
from checkout.order.status import OverrideOrderStatus
from protean import current_domain


def _create_order(with_session=True):
    order_id = current_domain.process(
        PlaceOrder(
            user_id="user-1",
            items=json.dumps([{"product_id": "prod-1", "name": "Silk Scarf", "quantity": 1, "unit_price": 250000}]),
            shipping_fee=0,
            payment_method="midtrans",
        ),
        asynchronous=False,
    )
    if with_session:
        current_domain.process(
            CreatePaymentSession(order_id=order_id, requester_id="user-1"),
            asynchronous=False,
        )
    return order_id


def _retry(order_id, requester_id="user-1", requester_role="customer", force_retry=False):
    command = RetryPayment(
        order_id=order_id,
        requester_id=requester_id,
        requester_role=requester_role,
        force_retry=force_retry,
    )
    return current_domain.process(command, asynchronous=False)


def _session_calls(fake_gateway):
    return [call for call in fake_gateway.calls if call["method"] == "create_transaction"]


def _ago(**delta):
    return datetime.now(UTC) - timedelta(**delta)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestReuse:
    def test_young_pending_transaction_reuses_token(self, fake_gateway):
        order_id = _create_order()
        token = _order(order_id).payment_token
        fake_gateway.set_transaction_status(order_id, "pending", transaction_time=_ago(hours=2))

        result = _retry(order_id)

        assert result.reused is True
        assert result.token == token
        assert len(_session_calls(fake_gateway)) == 1

    def test_pending_just_inside_window_is_reused(self, fake_gateway):
        order_id = _create_order()
        fake_gateway.set_transaction_status(order_id, "pending", transaction_time=_ago(hours=23, minutes=59))
        assert _retry(order_id).reused is True

    def test_young_session_without_gateway_transaction_is_reused(self, fake_gateway):
        order_id = _create_order()
        assert _retry(order_id).reused is True
        assert len(_session_calls(fake_gateway)) == 1


class TestReplace:
    def test_pending_past_window_gets_new_token(self, fake_gateway):
        order_id = _create_order()
        old_token = _order(order_id).payment_token
        fake_gateway.set_transaction_status(order_id, "pending", transaction_time=_ago(hours=24, minutes=1))

        result = _retry(order_id)

        assert result.reused is False
        assert result.token != old_token
        assert _order(order_id).payment_token == result.token
        assert len(_session_calls(fake_gateway)) == 2

    def test_expired_transaction_gets_new_token_for_same_order_id(self, fake_gateway):
        order_id = _create_order()
        old_token = _order(order_id).payment_token
        fake_gateway.set_transaction_status(order_id, "expire")

        result = _retry(order_id)

        assert result.token != old_token
        assert _session_calls(fake_gateway)[-1]["order_id"] == order_id

    def test_order_without_session_gets_first_session(self, fake_gateway):
        order_id = _create_order(with_session=False)
        result = _retry(order_id)

        assert result.reused is False
        assert _order(order_id).payment_token == result.token
        assert [call["method"] for call in fake_gateway.calls] == ["create_transaction"]

    def test_admin_force_replaces_young_pending(self, fake_gateway):
        order_id = _create_order()
        fake_gateway.set_transaction_status(order_id, "pending", transaction_time=_ago(minutes=10))

        result = _retry(order_id, requester_id="admin-1", requester_role="admin", force_retry=True)

        assert result.reused is False
        assert len(_session_calls(fake_gateway)) == 2


class TestRefusals:
    def test_settled_transaction_is_already_paid(self, fake_gateway):
        order_id = _create_order()
        fake_gateway.set_transaction_status(order_id, "settlement")

        with pytest.raises(AlreadyPaidError):
            _retry(order_id)
        assert len(_session_calls(fake_gateway)) == 1

    def test_challenged_transaction_conflicts(self, fake_gateway):
        order_id = _create_order()
        fake_gateway.set_transaction_status(order_id, "capture", fraud_status="challenge")
        with pytest.raises(StateConflictError):
            _retry(order_id)

    def test_order_not_awaiting_payment_conflicts(self, fake_gateway):
        order_id = _create_order()
        current_domain.process(
            OverrideOrderStatus(
                order_id=order_id,
                requester_id="admin-1",
                requester_role="admin",
                status="processing",
                reason="Paid by bank transfer",
            ),
            asynchronous=False,
        )

        with pytest.raises(StateConflictError) as exc_info:
            _retry(order_id)
        assert "processing" in exc_info.value.message
        assert fake_gateway.calls[1:] == []

    def test_other_customer_is_forbidden(self):
        order_id = _create_order()
        with pytest.raises(AuthorizationError):
            _retry(order_id, requester_id="user-2")

    def test_customer_cannot_force(self):
        order_id = _create_order()
        with pytest.raises(AuthorizationError):
            _retry(order_id, force_retry=True)

    def test_gateway_outage_surfaces_as_retryable(self, fake_gateway):
        order_id = _create_order()
        token = _order(order_id).payment_token
        fake_gateway.configure(should_succeed=False)

        with pytest.raises(GatewayError) as exc_info:
            _retry(order_id)
        assert exc_info.value.retryable is True
        assert _order(order_id).payment_token == token

