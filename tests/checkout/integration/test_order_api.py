"""Integration tests for the orders API."""

import inspect

import pytest
from checkout.api import order_router, register_error_handlers, routes
from checkout.order.order import Order
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean import current_domain

OWNER = {"X-User-Id": "user-1"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture()
def client():
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(order_router)
    return TestClient(app)


def _order_body(**overrides):
    body = {
        "items": [{"product_id": "prod-1", "name": "Linen Shirt", "quantity": 3, "unit_price": 33333}],
        "shipping_fee": 1,
        "total": 100000,
        "payment_method": "midtrans",
        "customer": {"name": "Sari Dewi", "email": "sari@example.com", "phone": "0812000000"},
    }
    body.update(overrides)
    return body


def _place(client, **overrides):
    response = client.post("/orders", json=_order_body(**overrides), headers=OWNER)
    assert response.status_code == 201
    return response.json()["order_id"]


class TestPlaceOrderEndpoint:
    def test_place_order(self, client):
        response = client.post("/orders", json=_order_body(), headers=OWNER)
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "awaiting_payment"
        assert data["total"] == 100000

        order = current_domain.repository_for(Order).get(data["order_id"])
        assert order.user_id == "user-1"

    def test_total_mismatch_is_400(self, client):
        response = client.post("/orders", json=_order_body(total=99000), headers=OWNER)
        assert response.status_code == 400

    def test_empty_items_is_400(self, client):
        response = client.post("/orders", json=_order_body(items=[]), headers=OWNER)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_missing_user_header_is_400(self, client):
        response = client.post("/orders", json=_order_body())
        assert response.status_code == 400


class TestReadEndpoints:
    def test_fetch_own_order(self, client):
        order_id = _place(client)
        response = client.get(f"/orders/{order_id}", headers=OWNER)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == order_id
        assert data["items"][0]["unit_price"] == 33333
        assert data["has_payment_session"] is False

    def test_fetch_someone_elses_order_is_403(self, client):
        order_id = _place(client)
        response = client.get(f"/orders/{order_id}", headers={"X-User-Id": "user-2"})
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_admin_fetches_any_order(self, client):
        order_id = _place(client)
        assert client.get(f"/orders/{order_id}", headers=ADMIN).status_code == 200

    def test_unknown_order_is_404(self, client):
        assert client.get("/orders/missing", headers=OWNER).status_code == 404

    def test_list_my_orders(self, client):
        _place(client)
        _place(client)
        response = client.get("/orders", headers=OWNER)
        assert response.status_code == 200
        assert len(response.json()["orders"]) == 2

        limited = client.get("/orders?limit=1", headers=OWNER)
        assert len(limited.json()["orders"]) == 1


class TestPaymentSessionEndpoints:
    def test_create_session(self, client):
        order_id = _place(client)
        response = client.post(f"/orders/{order_id}/payment-session", headers=OWNER)
        assert response.status_code == 201
        data = response.json()
        assert data["token"].startswith("fake_tok_")
        assert data["transaction_id"] == order_id
        assert data["reused"] is False

    def test_second_session_is_409(self, client):
        order_id = _place(client)
        client.post(f"/orders/{order_id}/payment-session", headers=OWNER)
        response = client.post(f"/orders/{order_id}/payment-session", headers=OWNER)
        assert response.status_code == 409
        assert response.json()["error"] == "state_conflict"

    def test_gateway_failure_is_502_and_retryable(self, client, fake_gateway):
        order_id = _place(client)
        fake_gateway.configure(should_succeed=False)
        response = client.post(f"/orders/{order_id}/payment-session", headers=OWNER)
        assert response.status_code == 502
        assert response.json()["retryable"] is True

    def test_retry_reuses_young_session(self, client, fake_gateway):
        order_id = _place(client)
        token = client.post(f"/orders/{order_id}/payment-session", headers=OWNER).json()["token"]
        fake_gateway.set_transaction_status(order_id, "pending")

        response = client.post(f"/orders/{order_id}/payment-retry", headers=OWNER)
        assert response.status_code == 200
        assert response.json()["reused"] is True
        assert response.json()["token"] == token

    def test_retry_of_settled_payment_is_409(self, client, fake_gateway):
        order_id = _place(client)
        client.post(f"/orders/{order_id}/payment-session", headers=OWNER)
        fake_gateway.set_transaction_status(order_id, "settlement")

        response = client.post(f"/orders/{order_id}/payment-retry", headers=OWNER)
        assert response.status_code == 409
        assert response.json()["error"] == "already_paid"

    def test_customer_force_retry_is_403(self, client):
        order_id = _place(client)
        client.post(f"/orders/{order_id}/payment-session", headers=OWNER)
        response = client.post(f"/orders/{order_id}/payment-retry", json={"force_retry": True}, headers=OWNER)
        assert response.status_code == 403


class TestStatusEndpoints:
    def test_admin_updates_status(self, client):
        order_id = _place(client, payment_method="cod", total=None)
        response = client.put(f"/orders/{order_id}/status", json={"status": "processing"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["status"] == "processing"

    def test_illegal_transition_is_409(self, client):
        order_id = _place(client)
        response = client.put(f"/orders/{order_id}/status", json={"status": "delivered"}, headers=ADMIN)
        assert response.status_code == 409

    def test_unknown_status_is_400(self, client):
        order_id = _place(client)
        response = client.put(f"/orders/{order_id}/status", json={"status": "lost"}, headers=ADMIN)
        assert response.status_code == 400

    def test_override_with_reason(self, client):
        order_id = _place(client)
        response = client.post(
            f"/orders/{order_id}/status-override",
            json={"status": "processing", "reason": "Bank transfer confirmed"},
            headers=ADMIN,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "processing"

    def test_override_by_customer_is_403(self, client):
        order_id = _place(client)
        response = client.post(
            f"/orders/{order_id}/status-override",
            json={"status": "processing", "reason": "I paid"},
            headers=OWNER,
        )
        assert response.status_code == 403

    def test_payment_status_update(self, client):
        order_id = _place(client)
        response = client.put(f"/orders/{order_id}/payment-status", json={"payment_status": "paid"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["payment_status"] == "paid"


@pytest.mark.parametrize(
    "endpoint",
    [
        routes.create_payment_session,
        routes.retry_payment,
        routes.update_order_status,
        routes.override_order_status,
        routes.update_payment_status,
        routes.gateway_notification,
    ],
)
def test_locking_endpoints_run_in_threadpool(endpoint):
    assert not inspect.iscoroutinefunction(endpoint)
