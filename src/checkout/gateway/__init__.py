"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (CHECKOUT_GATEWAY=fake)
- MidtransGateway for sandbox/production (CHECKOUT_GATEWAY=midtrans)

The adapter and the GatewayClient wrapping it are built once and shared by
every request.
"""

from checkout.config import get_settings
from checkout.gateway.client import GatewayClient
from checkout.gateway.fake_adapter import FakeGateway
from checkout.gateway.midtrans_adapter import MidtransGateway
from checkout.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None
_current_client: GatewayClient | None = None


def _build_gateway() -> PaymentGateway:
    settings = get_settings()
    if settings.gateway == "midtrans":
        return MidtransGateway(settings)
    if settings.gateway == "fake":
        return FakeGateway()
    raise ValueError(f"Unknown gateway '{settings.gateway}'")


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, built from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def get_gateway_client() -> GatewayClient:
    global _current_client
    if _current_client is None:
        _current_client = GatewayClient(get_gateway(), get_settings())
    return _current_client


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway, _current_client
    _current_gateway = gateway
    _current_client = None


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway, _current_client
    _current_gateway = None
    _current_client = None
