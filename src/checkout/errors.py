"""Error taxonomy for the payment lifecycle.

Field-level validation problems are raised as Protean's ``ValidationError``
and missing orders as Protean's ``ObjectNotFoundError``. Everything else the
checkout context can refuse is a ``CheckoutError`` carrying the HTTP status it
maps to and whether the caller may simply try again.
"""


class CheckoutError(Exception):
    status_code = 500
    code = "checkout_error"
    retryable = False

    def __init__(self, message: str, retryable: bool | None = None, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
            **self.context,
        }


class AuthorizationError(CheckoutError):
    """Caller neither owns the order nor holds a privileged role."""

    status_code = 403
    code = "forbidden"


class InvalidSignatureError(CheckoutError):
    """A gateway notification failed signature verification."""

    status_code = 401
    code = "invalid_signature"


class StateConflictError(CheckoutError):
    """The order's current state does not permit the requested change."""

    status_code = 409
    code = "state_conflict"


class AlreadyPaidError(CheckoutError):
    """Retry requested for a transaction the gateway already settled."""

    status_code = 409
    code = "already_paid"


class AmountMismatchError(CheckoutError):
    """Line items cannot be reconciled with the gross amount within tolerance."""

    status_code = 400
    code = "amount_mismatch"


class GatewayError(CheckoutError):
    """Transport or protocol failure talking to the payment gateway."""

    status_code = 502
    code = "gateway_error"
    retryable = True


class TransactionNotFoundError(CheckoutError):
    """The gateway has no transaction for the given identifier."""

    status_code = 404
    code = "transaction_not_found"
