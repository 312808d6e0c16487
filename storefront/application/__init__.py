"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from storefront.application.checkout_service import (
    CheckoutService,
    get_checkout_service,
)
from storefront.application.payment_service import (
    PaymentService,
    get_payment_service,
)
from storefront.application.webhook_service import (
    GatewayWebhookService,
    get_webhook_service,
)

__all__ = [
    "CheckoutService",
    "get_checkout_service",
    "PaymentService",
    "get_payment_service",
    "GatewayWebhookService",
    "get_webhook_service",
]
