"""Checkout domain API package."""

from checkout.api.errors import register_error_handlers
from checkout.api.routes import gateway_router, order_router

__all__ = ["order_router", "gateway_router", "register_error_handlers"]
