"""Midtrans payment gateway adapter (Snap + Core status API).

Talks to Midtrans over HTTPS with ``requests``:
- Snap ``POST /snap/v1/transactions`` opens a payment session (token + redirect URL)
- Core ``GET /v2/{order_id}/status`` polls a transaction
- Notification signatures are ``sha512(order_id + status_code + gross_amount + server_key)``

Every call carries an explicit timeout; transport and protocol failures
surface as ``GatewayError`` so callers never record a half-created session.
"""

import hashlib
import hmac
from datetime import datetime

import requests
import structlog
from requests.auth import HTTPBasicAuth

from checkout.config import GatewaySettings
from checkout.errors import GatewayError, TransactionNotFoundError
from checkout.gateway.port import (
    FraudStatus,
    GatewaySession,
    GatewayTransactionStatus,
    PaymentGateway,
    SessionRequest,
    TransactionStatus,
    parse_gateway_time,
    parse_gross_amount,
)

logger = structlog.get_logger(__name__)

COMMON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def _parse_transaction_time(value: str | None) -> datetime | None:
    try:
        return parse_gateway_time(value)
    except ValueError:
        logger.warning("Unparseable transaction_time from gateway", transaction_time=value)
        return None


def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


class MidtransGateway(PaymentGateway):
    """Production/sandbox Midtrans adapter. Holds static configuration only."""

    name = "midtrans"

    def __init__(self, settings: GatewaySettings, session: requests.Session | None = None) -> None:
        if not settings.server_key:
            raise ValueError("Midtrans gateway requires CHECKOUT_SERVER_KEY")
        self.server_key = settings.server_key
        self.snap_base_url = settings.snap_base_url
        self.api_base_url = settings.api_base_url
        self.timeout = settings.request_timeout
        self.http = session or requests.Session()
        self.http.auth = HTTPBasicAuth(self.server_key, "")
        self.http.headers.update(COMMON_HEADERS)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            logger.error("Gateway request timed out", url=url, timeout=self.timeout, retryable=True)
            raise GatewayError(f"Gateway request timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            logger.error("Gateway request failed", url=url, error=str(exc), retryable=True)
            raise GatewayError(f"Gateway request failed: {exc}") from exc

    @staticmethod
    def _json(response: requests.Response) -> dict:
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(
                f"Gateway returned a non-JSON response (HTTP {response.status_code})"
            ) from exc

    def create_transaction(self, request: SessionRequest) -> GatewaySession:
        url = f"{self.snap_base_url}/snap/v1/transactions"
        response = self._request("POST", url, json=request.to_payload())
        body = self._json(response)

        if response.status_code >= 400 or "token" not in body:
            messages = body.get("error_messages") or [body.get("status_message", "unknown error")]
            logger.error(
                "Gateway rejected session creation",
                order_id=request.order_id,
                http_status=response.status_code,
                errors=messages,
                retryable=not 400 <= response.status_code < 500,
            )
            raise GatewayError(
                f"Gateway rejected session creation: {'; '.join(str(m) for m in messages)}",
                order_id=request.order_id,
                retryable=not 400 <= response.status_code < 500,
            )

        return GatewaySession(
            token=body["token"],
            transaction_id=body.get("transaction_id") or request.order_id,
            redirect_url=body.get("redirect_url", ""),
            gross_amount=request.gross_amount,
        )

    def get_transaction_status(self, transaction_id: str) -> GatewayTransactionStatus:
        url = f"{self.api_base_url}/v2/{transaction_id}/status"
        response = self._request("GET", url)
        body = self._json(response)

        # Core API reports "not found" in the body with an HTTP 200.
        status_code = str(body.get("status_code", response.status_code))
        if response.status_code == 404 or status_code == "404":
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                transaction_id=transaction_id,
            )
        if response.status_code >= 400 or "transaction_status" not in body:
            raise GatewayError(
                f"Gateway status query failed: {body.get('status_message', response.status_code)}",
                transaction_id=transaction_id,
                retryable=not 400 <= response.status_code < 500,
            )

        try:
            transaction_status = TransactionStatus(body["transaction_status"])
            fraud_status = FraudStatus(body["fraud_status"]) if body.get("fraud_status") else None
        except ValueError as exc:
            raise GatewayError(f"Unexpected gateway status: {exc}", transaction_id=transaction_id) from exc

        return GatewayTransactionStatus(
            order_id=body.get("order_id", transaction_id),
            transaction_id=body.get("transaction_id"),
            transaction_status=transaction_status,
            fraud_status=fraud_status,
            transaction_time=_parse_transaction_time(body.get("transaction_time")),
            gross_amount=parse_gross_amount(body.get("gross_amount")),
            status_code=status_code,
        )

    def verify_notification_signature(self, notification: dict, signature: str) -> bool:
        signature = signature or notification.get("signature_key") or ""
        parts = [notification.get(key) for key in ("order_id", "status_code", "gross_amount")]
        if not signature or any(part in (None, "") for part in parts):
            return False
        expected = notification_signature(*(str(part) for part in parts), self.server_key)
        return hmac.compare_digest(expected, signature)
