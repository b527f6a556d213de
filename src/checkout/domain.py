"""Checkout bounded context — Order Payment Lifecycle.

Handles order placement, payment session creation against the external
payment gateway, reconciliation of gateway notifications, and payment
retries for abandoned or failed attempts.
"""

import structlog
from protean.domain import Domain

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)
