"""Order placement — command and handler."""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.domain import checkout
from checkout.order.order import Order, PaymentMethod

logger = structlog.get_logger(__name__)


@checkout.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of item dicts
    shipping_fee = Integer(default=0)
    declared_total = Integer()  # client-computed total, checked if given
    payment_method = String(required=True, max_length=50)
    customer = Text()  # JSON: contact dict
    shipping_address = Text()  # JSON: address dict


def _load(value):
    return json.loads(value) if isinstance(value, str) else value


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_items(items_data) -> list[dict]:
    if not isinstance(items_data, list) or not items_data:
        raise ValidationError({"items": ["An order needs at least one item"]})

    errors: dict[str, list[str]] = {}
    for index, item in enumerate(items_data):
        if not isinstance(item, dict):
            errors.setdefault("items", []).append(f"Item {index} is malformed")
            continue
        if not item.get("product_id"):
            errors.setdefault("product_id", []).append(f"Item {index} has no product id")
        if not item.get("name"):
            errors.setdefault("name", []).append(f"Item {index} has no name")
        if not _is_int(item.get("quantity")) or item["quantity"] <= 0:
            errors.setdefault("quantity", []).append(f"Item {index} quantity must be a positive integer")
        if not _is_int(item.get("unit_price")) or item["unit_price"] < 0:
            errors.setdefault("unit_price", []).append(f"Item {index} price must be a non-negative integer")
    if errors:
        raise ValidationError(errors)
    return items_data


@checkout.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = validate_items(_load(command.items))
        shipping_fee = command.shipping_fee or 0
        if shipping_fee < 0:
            raise ValidationError({"shipping_fee": ["Shipping fee cannot be negative"]})

        try:
            PaymentMethod(command.payment_method)
        except ValueError:
            raise ValidationError(
                {"payment_method": [f"Unsupported payment method '{command.payment_method}'"]}
            ) from None

        computed = sum(item["quantity"] * item["unit_price"] for item in items_data) + shipping_fee
        if computed <= 0:
            raise ValidationError({"total": ["Order total must be positive"]})
        if command.declared_total is not None and command.declared_total != computed:
            raise ValidationError(
                {"total": [f"Declared total {command.declared_total} does not match computed total {computed}"]}
            )

        order = Order.place(
            user_id=command.user_id,
            items_data=items_data,
            shipping_fee=shipping_fee,
            payment_method=command.payment_method,
            customer=_load(command.customer) if command.customer else None,
            shipping_address=_load(command.shipping_address) if command.shipping_address else None,
        )
        current_domain.repository_for(Order).save_conditionally(order, expected_revision=0)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            user_id=str(command.user_id),
            total=order.total,
            payment_method=order.payment_method,
            status=order.status,
        )
        return str(order.id)
