"""Order repository — conditional (compare-and-swap) persistence.

``save_conditionally`` is the only write path used by the checkout handlers.
It re-reads the stored revision and refuses the write if another writer got
there first, then bumps the revision and persists.
"""

import structlog
from protean.exceptions import ObjectNotFoundError

from checkout.domain import checkout
from checkout.errors import StateConflictError
from checkout.order.order import Order

logger = structlog.get_logger(__name__)


@checkout.repository(part_of=Order)
class OrderRepository:
    def save_conditionally(self, order: Order, expected_revision: int) -> Order:
        try:
            stored = self._dao.get(order.id)
        except ObjectNotFoundError:
            stored = None

        if stored is not None and stored.revision != expected_revision:
            logger.warning(
                "Concurrent order update rejected",
                order_id=str(order.id),
                expected_revision=expected_revision,
                stored_revision=stored.revision,
            )
            raise StateConflictError(
                "Order was modified concurrently; reload and try again",
                order_id=str(order.id),
                expected_revision=expected_revision,
                current_revision=stored.revision,
            )

        order.revision = (expected_revision or 0) + 1
        self.add(order)
        return order

    def for_user(self, user_id: str) -> list[Order]:
        return self._dao.query.filter(user_id=user_id).all().items
