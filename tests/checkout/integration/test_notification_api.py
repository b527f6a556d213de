"""Integration tests for the gateway notification endpoint and gateway configuration."""

import pytest
from checkout.api import gateway_router, order_router, register_error_handlers
from checkout.gateway.fake_adapter import TEST_SIGNATURE
from checkout.order.order import Order
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain

OWNER = {"X-User-Id": "user-1"}
SIGNED = {"X-Gateway-Signature": TEST_SIGNATURE}


@pytest.fixture()
def client():
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(order_router)
    app.include_router(gateway_router)
    return TestClient(app)


def _order_with_session(client):
    response = client.post(
        "/orders",
        json={
            "items": [{"product_id": "prod-1", "name": "Sarong", "quantity": 2, "unit_price": 60000}],
            "shipping_fee": 10000,
            "payment_method": "midtrans",
        },
        headers=OWNER,
    )
    order_id = response.json()["order_id"]
    client.post(f"/orders/{order_id}/payment-session", headers=OWNER)
    return order_id


def _notification(order_id, transaction_status, **fields):
    body = {
        "order_id": order_id,
        "transaction_id": "txn-1",
        "transaction_status": transaction_status,
        "transaction_time": "2024-06-01 10:00:00",
        "gross_amount": "130000.00",
        "status_code": "200",
    }
    body.update(fields)
    return body


class TestNotificationEndpoint:
    def test_settlement_marks_order_paid(self, client):
        order_id = _order_with_session(client)
        response = client.post("/payments/notification", json=_notification(order_id, "settlement"), headers=SIGNED)

        assert response.status_code == 200
        data = response.json()
        assert data["outcome"] == "applied"
        assert data["status"] == "processing"
        assert data["payment_status"] == "paid"

    def test_signature_in_body_accepted(self, client):
        order_id = _order_with_session(client)
        body = _notification(order_id, "settlement", signature_key=TEST_SIGNATURE)
        assert client.post("/payments/notification", json=body).status_code == 200

    def test_duplicate_returns_200_without_change(self, client):
        order_id = _order_with_session(client)
        client.post("/payments/notification", json=_notification(order_id, "settlement"), headers=SIGNED)
        revision = current_domain.repository_for(Order).get(order_id).revision

        response = client.post("/payments/notification", json=_notification(order_id, "settlement"), headers=SIGNED)
        assert response.status_code == 200
        assert response.json()["outcome"] == "duplicate"
        assert current_domain.repository_for(Order).get(order_id).revision == revision

    def test_late_pending_is_ignored(self, client):
        order_id = _order_with_session(client)
        client.post(
            "/payments/notification",
            json=_notification(order_id, "settlement", transaction_time="2024-06-01 10:05:00"),
            headers=SIGNED,
        )
        response = client.post("/payments/notification", json=_notification(order_id, "pending"), headers=SIGNED)

        assert response.json()["outcome"] == "stale"
        assert response.json()["status"] == "processing"

    def test_invalid_signature_is_401(self, client):
        order_id = _order_with_session(client)
        response = client.post(
            "/payments/notification",
            json=_notification(order_id, "settlement"),
            headers={"X-Gateway-Signature": "forged"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_signature"

    def test_unknown_order_is_404(self, client):
        response = client.post("/payments/notification", json=_notification("ord-missing", "settlement"), headers=SIGNED)
        assert response.status_code == 404

    def test_missing_transaction_time_is_400(self, client):
        order_id = _order_with_session(client)
        body = _notification(order_id, "pending")
        del body["transaction_time"]

        response = client.post("/payments/notification", json=body, headers=SIGNED)

        assert response.status_code == 400
        assert current_domain.repository_for(Order).get(order_id).last_notification_rank is None

    def test_unknown_transaction_status_is_400(self, client):
        order_id = _order_with_session(client)
        response = client.post("/payments/notification", json=_notification(order_id, "refund"), headers=SIGNED)
        assert response.status_code == 400

    def test_amount_mismatch_is_400(self, client):
        order_id = _order_with_session(client)
        response = client.post(
            "/payments/notification",
            json=_notification(order_id, "settlement", gross_amount="1000.00"),
            headers=SIGNED,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "amount_mismatch"

    def test_notification_for_cancelled_order_is_409(self, client):
        order_id = _order_with_session(client)
        client.post("/payments/notification", json=_notification(order_id, "expire"), headers=SIGNED)
        response = client.post(
            "/payments/notification",
            json=_notification(order_id, "settlement", transaction_id="txn-2", transaction_time="2024-06-01 11:00:00"),
            headers=SIGNED,
        )
        assert response.status_code == 409


class TestConfigureGatewayEndpoint:
    def test_configure_fake_gateway(self, client, fake_gateway):
        response = client.post(
            "/payments/gateway/configure",
            json={"should_succeed": False, "failure_reason": "Maintenance"},
        )
        assert response.status_code == 200
        assert response.json()["should_succeed"] is False
        assert fake_gateway.failure_reason == "Maintenance"

    def test_configure_forbidden_in_production(self, client, monkeypatch):
        monkeypatch.setenv("PROTEAN_ENV", "production")
        response = client.post("/payments/gateway/configure", json={"should_succeed": False})
        assert response.status_code == 403
