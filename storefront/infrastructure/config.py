"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic_settings import BaseSettings

from storefront.domain.pricing import ShippingPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # Persistence
    persistence_backend: Literal["memory", "database"] = "memory"
    database_url: str = "postgresql+asyncpg://storefront:storefront_dev_password@db:5432/storefront"

    # Payment gateway. The key id may be shown to browsers; the secret never leaves the server.
    razorpay_key_id: str = "rzp_test_dev_key_id"
    razorpay_key_secret: str = "dev-razorpay-secret-change-in-production"
    razorpay_webhook_secret: str | None = None
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    gateway_timeout_seconds: float = 10.0

    # Pricing, in minor units of the canonical currency
    currency: str = "INR"
    free_shipping_threshold: int = 250000
    flat_shipping_fee: int = 15000
    free_shipping_inclusive: bool = False

    # Checkout sessions
    session_ttl_hours: int = 24

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def shipping_policy(self) -> ShippingPolicy:
        return ShippingPolicy.from_minor_units(
            threshold=self.free_shipping_threshold,
            flat_fee=self.flat_shipping_fee,
            currency=self.currency,
            inclusive=self.free_shipping_inclusive,
        )


settings = Settings()
