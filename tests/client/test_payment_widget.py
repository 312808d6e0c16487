"""Tests for the payment widget adapter."""

import math
from unittest.mock import AsyncMock

import pytest

from storefront.client import (
    APIError,
    APIResponse,
    CheckoutView,
    GatewayCallback,
    GatewayCheckoutOptions,
    HostedCheckoutError,
    PaymentOutcomeStatus,
    PaymentWidgetAdapter,
    Prefill,
    StorefrontAPIClient,
)
from storefront.domain.value_objects import ShippingInfo

ORDER = {"id": "order_W1", "currency": "INR", "amount": 144900, "receipt": "po_1"}
CALLBACK = GatewayCallback("order_W1", "pay_W1", "f" * 64)


class FakeHostedCheckout:
    """Hosted checkout that resolves with a scripted result."""

    def __init__(self, result: GatewayCallback | None = CALLBACK, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.opened_with: list[GatewayCheckoutOptions] = []

    async def open(self, options: GatewayCheckoutOptions) -> GatewayCallback | None:
        self.opened_with.append(options)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def api() -> AsyncMock:
    mock = AsyncMock(spec=StorefrontAPIClient)
    mock.create_order.return_value = APIResponse(success=True, data=dict(ORDER))
    mock.verify_payment.return_value = APIResponse(
        success=True, data={"success": True, "message": "Payment verified successfully"}
    )
    return mock


def make_adapter(api: AsyncMock, hosted: FakeHostedCheckout) -> PaymentWidgetAdapter:
    return PaymentWidgetAdapter(api, hosted, key_id="rzp_test_key", merchant_name="Storefront")


class TestCanPay:
    """The pay button is enabled only for a positive finite amount."""

    @pytest.mark.parametrize("amount", [0.01, 1, 1449.0])
    def test_enabled(self, amount: float) -> None:
        assert PaymentWidgetAdapter.can_pay(amount)

    @pytest.mark.parametrize("amount", [0, -5, math.nan, math.inf, True, "25", None])
    def test_disabled(self, amount) -> None:
        assert not PaymentWidgetAdapter.can_pay(amount)


class TestPay:
    """Tests for one payment attempt."""

    @pytest.mark.asyncio
    async def test_verified_payment_succeeds(self, api: AsyncMock) -> None:
        hosted = FakeHostedCheckout()
        prefill = Prefill(name="Asha Rao", email="asha@example.com", contact="9876543210")

        outcome = await make_adapter(api, hosted).pay(
            1449.0, prefill=prefill, idempotency_key="attempt-1", checkout_session_id="s1"
        )

        assert outcome.status == PaymentOutcomeStatus.SUCCEEDED
        assert outcome.next_view == CheckoutView.SUCCESS
        assert outcome.gateway_payment_id == "pay_W1"
        api.create_order.assert_awaited_once_with(
            1449.0, idempotency_key="attempt-1", checkout_session_id="s1"
        )
        api.verify_payment.assert_awaited_once_with(
            "order_W1", "pay_W1", "f" * 64, checkout_session_id="s1"
        )

    @pytest.mark.asyncio
    async def test_hosted_checkout_options(self, api: AsyncMock) -> None:
        hosted = FakeHostedCheckout()
        await make_adapter(api, hosted).pay(1449.0, prefill=Prefill(name="Asha Rao"))

        options = hosted.opened_with[0].to_dict()
        assert options["key"] == "rzp_test_key"
        assert options["order_id"] == "order_W1"
        assert options["amount"] == 144900
        assert options["currency"] == "INR"
        assert options["name"] == "Storefront"
        assert options["prefill"] == {"name": "Asha Rao", "email": "", "contact": ""}
        assert options["theme"] == {"color": "#000000"}

    @pytest.mark.parametrize("amount", [0, -1, math.nan])
    @pytest.mark.asyncio
    async def test_invalid_amount_makes_no_request(self, api: AsyncMock, amount: float) -> None:
        outcome = await make_adapter(api, FakeHostedCheckout()).pay(amount)

        assert outcome.status == PaymentOutcomeStatus.INVALID_AMOUNT
        assert outcome.message == "Cannot process payment. Cart amount is 0."
        assert outcome.next_view == CheckoutView.PAYMENT
        api.create_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_order_creation_failure(self, api: AsyncMock) -> None:
        api.create_order.return_value = APIResponse(
            success=False, error=APIError("HTTP_500", "Error creating order", 500)
        )
        hosted = FakeHostedCheckout()

        outcome = await make_adapter(api, hosted).pay(25)

        assert outcome.status == PaymentOutcomeStatus.ORDER_FAILED
        assert hosted.opened_with == []

    @pytest.mark.asyncio
    async def test_order_without_id(self, api: AsyncMock) -> None:
        api.create_order.return_value = APIResponse(success=True, data={})
        outcome = await make_adapter(api, FakeHostedCheckout()).pay(25)
        assert outcome.status == PaymentOutcomeStatus.ORDER_FAILED

    @pytest.mark.asyncio
    async def test_hosted_checkout_fails_to_open(self, api: AsyncMock) -> None:
        hosted = FakeHostedCheckout(error=HostedCheckoutError("script blocked"))

        outcome = await make_adapter(api, hosted).pay(25)

        assert outcome.status == PaymentOutcomeStatus.ORDER_FAILED
        assert outcome.gateway_order_id == "order_W1"
        api.verify_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dismissed(self, api: AsyncMock) -> None:
        outcome = await make_adapter(api, FakeHostedCheckout(result=None)).pay(25)

        assert outcome.status == PaymentOutcomeStatus.DISMISSED
        assert outcome.next_view == CheckoutView.PAYMENT
        api.verify_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_signature(self, api: AsyncMock) -> None:
        api.verify_payment.return_value = APIResponse(
            success=False, error=APIError("HTTP_400", "Invalid signature", 400)
        )

        outcome = await make_adapter(api, FakeHostedCheckout()).pay(25)

        assert outcome.status == PaymentOutcomeStatus.VERIFICATION_FAILED
        assert outcome.message == "Payment verification failed."
        assert outcome.next_view == CheckoutView.PAYMENT

    @pytest.mark.parametrize(
        "error",
        [APIError("TIMEOUT", "Request timed out", 504), APIError("HTTP_500", "Internal Server Error", 500)],
    )
    @pytest.mark.asyncio
    async def test_verification_unreachable(self, api: AsyncMock, error: APIError) -> None:
        api.verify_payment.return_value = APIResponse(success=False, error=error)

        outcome = await make_adapter(api, FakeHostedCheckout()).pay(25)

        assert outcome.status == PaymentOutcomeStatus.VERIFICATION_UNREACHABLE
        assert outcome.gateway_payment_id == "pay_W1"


def test_prefill_from_shipping() -> None:
    shipping = ShippingInfo(name="Asha Rao", email="asha@example.com", phone="9876543210")
    assert Prefill.from_shipping(shipping) == Prefill("Asha Rao", "asha@example.com", "9876543210")
