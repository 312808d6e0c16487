"""Client-side glue for the checkout page.

An httpx client for the storefront API and the adapter that drives the
gateway's hosted checkout.
"""

from storefront.client.api_client import APIError, APIResponse, StorefrontAPIClient
from storefront.client.payment_widget import (
    CheckoutView,
    GatewayCallback,
    GatewayCheckoutOptions,
    HostedCheckout,
    HostedCheckoutError,
    PaymentOutcome,
    PaymentOutcomeStatus,
    PaymentWidgetAdapter,
    Prefill,
)

__all__ = [
    "APIError",
    "APIResponse",
    "StorefrontAPIClient",
    "CheckoutView",
    "GatewayCallback",
    "GatewayCheckoutOptions",
    "HostedCheckout",
    "HostedCheckoutError",
    "PaymentOutcome",
    "PaymentOutcomeStatus",
    "PaymentWidgetAdapter",
    "Prefill",
]
