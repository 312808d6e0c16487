"""Shared fixtures for the storefront test suite."""

import pytest

from storefront.application.checkout_service import reset_checkout_service
from storefront.application.payment_service import reset_payment_service
from storefront.application.webhook_service import reset_webhook_service
from storefront.domain import CartLine, ShippingPolicy


@pytest.fixture(autouse=True)
def reset_services():
    """Give every test fresh service singletons."""
    reset_payment_service()
    reset_webhook_service()
    reset_checkout_service()
    yield
    reset_payment_service()
    reset_webhook_service()
    reset_checkout_service()


@pytest.fixture
def policy() -> ShippingPolicy:
    """Canonical INR policy: free shipping above ₹2,500, else ₹150."""
    return ShippingPolicy.from_minor_units(threshold=250000, flat_fee=15000)


@pytest.fixture
def shirt() -> CartLine:
    return CartLine(
        product_id=7,
        name="Linen Shirt",
        price_minor=129900,
        quantity=1,
        size="M",
        color="white",
    )


@pytest.fixture
def jeans() -> CartLine:
    return CartLine(
        product_id=12,
        name="Slim Jeans",
        price_minor=199900,
        quantity=1,
        size="32",
        color="indigo",
    )


@pytest.fixture
def complete_shipping() -> dict[str, str]:
    return {
        "name": "Asha Rao",
        "email": "asha@example.com",
        "phone": "9876543210",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }
