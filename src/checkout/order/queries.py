"""Read side — fetch a single order and list a customer's orders.

Reads are not serialized; they see whatever the last committed write left.
"""

from datetime import UTC, datetime

from protean.utils.globals import current_domain

from checkout.order.access import Requester, ensure_can_access
from checkout.order.order import Order

_EPOCH = datetime.min.replace(tzinfo=UTC)


def get_order(order_id: str, requester: Requester) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    ensure_can_access(order, requester)
    return order


def list_orders(requester: Requester, limit: int | None = None) -> list[Order]:
    """The requester's own orders, newest first."""
    orders = current_domain.repository_for(Order).for_user(requester.user_id)
    orders = sorted(orders, key=lambda o: o.created_at or _EPOCH, reverse=True)
    return orders[:limit] if limit else orders
