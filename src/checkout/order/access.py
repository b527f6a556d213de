"""Who is asking — requester identity and ownership checks."""

from dataclasses import dataclass
from enum import Enum

from checkout.errors import AuthorizationError


class Role(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


@dataclass(frozen=True)
class Requester:
    user_id: str
    role: Role = Role.CUSTOMER

    @classmethod
    def of(cls, user_id, role: str | None = None) -> "Requester":
        try:
            parsed = Role((role or Role.CUSTOMER.value).lower())
        except ValueError:
            parsed = Role.CUSTOMER
        return cls(user_id=str(user_id), role=parsed)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def owns(self, order) -> bool:
        return str(order.user_id) == self.user_id


def ensure_can_access(order, requester: Requester) -> None:
    if requester.is_admin or requester.owns(order):
        return
    raise AuthorizationError(
        "You are not allowed to access this order",
        order_id=str(order.id),
    )


def ensure_admin(requester: Requester, action: str) -> None:
    if not requester.is_admin:
        raise AuthorizationError(f"Only administrators may {action}")
