"""GatewayClient — builds session requests for orders and polls their status.

Pure request/response: the client never touches the order store. The caller
persists the returned token/transaction id only after a successful response.
"""

import structlog

from checkout.config import GatewaySettings
from checkout.errors import GatewayError
from checkout.gateway.port import (
    GatewaySession,
    GatewayTransactionStatus,
    ItemDetail,
    PaymentGateway,
    SessionRequest,
)
from checkout.money.adjustment import AmountAdjuster, LineAmount

logger = structlog.get_logger(__name__)

ITEM_NAME_LIMIT = 50
DEFAULT_COUNTRY_CODE = "IDN"


def mask_token(token: str | None) -> str:
    if not token:
        return ""
    return f"{token[:6]}…" if len(token) > 6 else "…"


def _split_name(full_name: str | None) -> tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class GatewayClient:
    def __init__(self, gateway: PaymentGateway, settings: GatewaySettings) -> None:
        self.gateway = gateway
        self.settings = settings
        self.adjuster = AmountAdjuster(tolerance=settings.amount_tolerance)

    # -------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------
    def create_session(self, order) -> GatewaySession:
        """Open a gateway session for ``order`` using its own id as the transaction key.

        Raises AmountMismatchError before any gateway call when the items
        cannot be reconciled with the order total, and GatewayError on any
        transport or protocol failure.
        """
        request = self.build_request(order)
        session = self.gateway.create_transaction(request)

        if not session.token:
            raise GatewayError("Gateway returned an empty session token", order_id=request.order_id)

        logger.info(
            "Payment session created",
            order_id=request.order_id,
            gateway=self.gateway.name,
            gross_amount=request.gross_amount,
            token=mask_token(session.token),
        )
        return session

    def query_status(self, transaction_id: str) -> GatewayTransactionStatus:
        status = self.gateway.get_transaction_status(transaction_id)
        logger.info(
            "Gateway transaction status",
            transaction_id=transaction_id,
            transaction_status=status.transaction_status.value,
            fraud_status=status.fraud_status.value if status.fraud_status else None,
        )
        return status

    # -------------------------------------------------------------------
    # Request building
    # -------------------------------------------------------------------
    def build_request(self, order) -> SessionRequest:
        order_id = str(order.id)
        lines = [
            LineAmount(
                item_id=str(item.product_id),
                price=item.unit_price,
                quantity=item.quantity,
                name=item.name,
            )
            for item in order.items
        ]
        adjusted = self.adjuster.reconcile(lines, order.shipping_fee, order.total)

        items = [
            ItemDetail(
                id=line.item_id,
                price=line.price,
                quantity=line.quantity,
                name=(line.name or "Item")[:ITEM_NAME_LIMIT],
                category=self.settings.default_item_category,
                merchant_name=self.settings.merchant_name,
            )
            for line in adjusted
        ]
        if order.shipping_fee:
            items.append(ItemDetail(id="shipping", price=order.shipping_fee, quantity=1, name="Shipping"))

        return SessionRequest(
            order_id=order_id,
            gross_amount=order.total,
            items=tuple(items),
            customer_details=self._customer_details(order),
            callbacks=self._callbacks(order_id),
        )

    def _callbacks(self, order_id: str) -> dict:
        base = self.settings.app_url.rstrip("/")
        return {
            "finish": f"{base}/checkout/success?orderId={order_id}&paymentMethod=midtrans",
            "error": f"{base}/checkout/error?orderId={order_id}",
            "pending": f"{base}/account/orders",
        }

    @staticmethod
    def _customer_details(order) -> dict:
        customer = order.customer
        first_name, last_name = _split_name(customer.name if customer else None)
        details = {
            "first_name": first_name or "Customer",
            "last_name": last_name,
            "email": (customer.email if customer else None) or "",
            "phone": (customer.phone if customer else None) or "",
        }

        address = order.shipping_address
        if address:
            addr_first, addr_last = _split_name(address.full_name)
            postal = {
                "first_name": addr_first,
                "last_name": addr_last,
                "phone": address.phone or "",
                "address": address.address or "",
                "city": address.city or "",
                "postal_code": address.postal_code or "",
                "country_code": address.country_code or DEFAULT_COUNTRY_CODE,
            }
            details["billing_address"] = postal
            details["shipping_address"] = dict(postal)
            if not details["phone"]:
                details["phone"] = postal["phone"]
        return details
