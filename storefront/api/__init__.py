"""API layer module.

Contains FastAPI routers, request/response schemas and middleware.
"""

from storefront.api.checkout import router as checkout_router
from storefront.api.health import router as health_router
from storefront.api.payments import router as payments_router

__all__ = [
    "checkout_router",
    "health_router",
    "payments_router",
]
