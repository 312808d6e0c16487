"""Shared fixtures for API tests.

Routes get services built from in-memory stores and a mocked gateway
through FastAPI dependency overrides.
"""

from collections.abc import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from storefront.api.checkout import get_service
from storefront.api.payments import get_checkouts, get_payments, get_webhooks
from storefront.application.checkout_service import CheckoutService, InMemorySessionStateStore
from storefront.application.payment_service import (
    InMemoryPaymentOrderRepository,
    PaymentService,
    PaymentSignatureVerifier,
)
from storefront.application.webhook_service import (
    GatewayWebhookService,
    InMemoryEventLog,
    WebhookSignatureVerifier,
)
from storefront.domain import ShippingPolicy
from storefront.infrastructure.gateway_client import GatewayOrder, RazorpayClient
from storefront.main import app

KEY_SECRET = "api-test-key-secret"
WEBHOOK_SECRET = "api-test-webhook-secret"


@pytest.fixture
def key_secret() -> str:
    """Gateway key secret the verifier is built with."""
    return KEY_SECRET


@pytest.fixture
def webhook_secret() -> str:
    return WEBHOOK_SECRET


@pytest.fixture
def gateway() -> AsyncMock:
    """Gateway client that creates order_TEST123 for whatever it is sent."""
    mock = AsyncMock(spec=RazorpayClient)

    async def create_order(amount_minor, currency, receipt, notes=None):
        return GatewayOrder(
            id="order_TEST123",
            amount=amount_minor,
            currency=currency,
            receipt=receipt,
            status="created",
            notes=notes or {},
        )

    mock.create_order.side_effect = create_order
    return mock


@pytest.fixture
def payment_service(gateway: AsyncMock) -> PaymentService:
    return PaymentService(
        order_repo=InMemoryPaymentOrderRepository(),
        gateway=gateway,
        verifier=PaymentSignatureVerifier(KEY_SECRET),
    )


@pytest.fixture
def checkout_service() -> CheckoutService:
    return CheckoutService(
        store=InMemorySessionStateStore(),
        policy=ShippingPolicy.from_minor_units(threshold=250000, flat_fee=15000),
    )


@pytest.fixture
def webhook_service(payment_service: PaymentService) -> GatewayWebhookService:
    return GatewayWebhookService(
        order_repo=payment_service.order_repo,
        event_log=InMemoryEventLog(),
        signature_verifier=WebhookSignatureVerifier(WEBHOOK_SECRET),
    )


@pytest.fixture
def client(
    payment_service: PaymentService,
    checkout_service: CheckoutService,
    webhook_service: GatewayWebhookService,
) -> Iterator[TestClient]:
    """Create test client wired to the test services."""
    app.dependency_overrides[get_payments] = lambda: payment_service
    app.dependency_overrides[get_checkouts] = lambda: checkout_service
    app.dependency_overrides[get_service] = lambda: checkout_service
    app.dependency_overrides[get_webhooks] = lambda: webhook_service
    yield TestClient(app)
    app.dependency_overrides.clear()
