"""Checkout settings — gateway credentials and payment policy knobs.

Values are read from the environment (prefix ``CHECKOUT_``), e.g.
``CHECKOUT_SERVER_KEY`` or ``CHECKOUT_IS_PRODUCTION=true``.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SANDBOX_SNAP_URL = "https://app.sandbox.midtrans.com"
PRODUCTION_SNAP_URL = "https://app.midtrans.com"
SANDBOX_API_URL = "https://api.sandbox.midtrans.com"
PRODUCTION_API_URL = "https://api.midtrans.com"


class GatewaySettings(BaseSettings):
    """Static configuration shared by every gateway call."""

    model_config = SettingsConfigDict(env_prefix="CHECKOUT_", extra="ignore")

    # --- Gateway ---
    gateway: str = "fake"  # fake | midtrans
    server_key: str = ""
    client_key: str = ""
    is_production: bool = False
    request_timeout: float = Field(default=10.0, gt=0)

    # --- Callbacks ---
    app_url: str = "http://localhost:3000"

    # --- Payment policy ---
    amount_tolerance: int = Field(default=100, ge=0)  # minor currency units
    stale_after_hours: int = Field(default=24, gt=0)

    # --- Item details ---
    merchant_name: str = "Hikari Shop"
    default_item_category: str = "Fashion"

    @property
    def snap_base_url(self) -> str:
        return PRODUCTION_SNAP_URL if self.is_production else SANDBOX_SNAP_URL

    @property
    def api_base_url(self) -> str:
        return PRODUCTION_API_URL if self.is_production else SANDBOX_API_URL


@lru_cache
def get_settings() -> GatewaySettings:
    """Cached settings singleton."""
    return GatewaySettings()
