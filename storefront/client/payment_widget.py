"""Payment widget adapter.

Glue between the checkout page and the gateway's hosted checkout: creates
the gateway order through the API, opens the hosted checkout for it and
relays the signed callback to the verify endpoint. The outcome tells the
page which view to show next; only a verified payment leaves the
payment step.
"""

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol

import structlog

from storefront.client.api_client import StorefrontAPIClient
from storefront.domain.value_objects import ShippingInfo

logger = structlog.get_logger()

INVALID_AMOUNT_MESSAGE = "Cannot process payment. Cart amount is 0."
ORDER_FAILED_MESSAGE = "Could not initiate payment. Please try again."
DISMISSED_MESSAGE = "Payment was cancelled."
VERIFICATION_FAILED_MESSAGE = "Payment verification failed."
VERIFICATION_UNREACHABLE_MESSAGE = (
    "We could not confirm your payment. Check your order status before paying again."
)


class CheckoutView(str, Enum):
    """View the checkout page shows after a payment attempt."""

    PAYMENT = "payment"
    SUCCESS = "success"


class PaymentOutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    INVALID_AMOUNT = "invalid_amount"
    ORDER_FAILED = "order_failed"
    DISMISSED = "dismissed"
    VERIFICATION_FAILED = "verification_failed"
    VERIFICATION_UNREACHABLE = "verification_unreachable"


@dataclass(frozen=True)
class Prefill:
    """Customer details pre-filled in the hosted checkout."""

    name: str = ""
    email: str = ""
    contact: str = ""

    @classmethod
    def from_shipping(cls, shipping: ShippingInfo) -> "Prefill":
        return cls(name=shipping.name, email=shipping.email, contact=shipping.phone)


@dataclass(frozen=True)
class GatewayCheckoutOptions:
    """Options the hosted checkout is opened with.

    ``key`` is the public key id; the key secret never leaves the server.
    """

    key: str
    order_id: str
    amount: int
    currency: str
    name: str
    description: str
    prefill: Prefill = field(default_factory=Prefill)
    theme_color: str = "#000000"

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "order_id": self.order_id,
            "amount": self.amount,
            "currency": self.currency,
            "name": self.name,
            "description": self.description,
            "prefill": asdict(self.prefill),
            "theme": {"color": self.theme_color},
        }


@dataclass(frozen=True)
class GatewayCallback:
    """Fields the hosted checkout passes to its success handler."""

    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class HostedCheckoutError(Exception):
    """The hosted checkout could not be opened."""


class HostedCheckout(Protocol):
    """The gateway's hosted checkout UI.

    ``open`` resolves with the success callback, or with None when the
    customer closes the checkout without paying.
    """

    async def open(self, options: GatewayCheckoutOptions) -> GatewayCallback | None: ...


@dataclass
class PaymentOutcome:
    """Result of one payment attempt as shown to the customer."""

    status: PaymentOutcomeStatus
    message: str
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentOutcomeStatus.SUCCEEDED

    @property
    def next_view(self) -> CheckoutView:
        return CheckoutView.SUCCESS if self.succeeded else CheckoutView.PAYMENT


class PaymentWidgetAdapter:
    """Runs one payment from order creation to verification.

    Never retries on its own: every failure is returned to the page with
    a message, and the customer decides whether to try again.
    """

    def __init__(
        self,
        api: StorefrontAPIClient,
        hosted_checkout: HostedCheckout,
        key_id: str,
        merchant_name: str = "Storefront",
        description: str = "Order payment",
    ) -> None:
        self.api = api
        self.hosted_checkout = hosted_checkout
        self.key_id = key_id
        self.merchant_name = merchant_name
        self.description = description

    @staticmethod
    def can_pay(amount: float) -> bool:
        """Whether the pay button is enabled for an amount."""
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            return False
        return math.isfinite(amount) and amount > 0

    async def pay(
        self,
        amount: float,
        prefill: Prefill | None = None,
        idempotency_key: str | None = None,
        checkout_session_id: str | None = None,
    ) -> PaymentOutcome:
        """Collect a payment for an amount in major units.

        Args:
            amount: Grand total in major units.
            prefill: Customer details for the hosted checkout.
            idempotency_key: Key of the checkout attempt, passed to create-order.
            checkout_session_id: Session to complete once the payment verifies.

        Returns:
            The outcome; ``next_view`` is SUCCESS only for a verified payment.
        """
        if not self.can_pay(amount):
            return PaymentOutcome(PaymentOutcomeStatus.INVALID_AMOUNT, INVALID_AMOUNT_MESSAGE)

        created = await self.api.create_order(
            amount,
            idempotency_key=idempotency_key,
            checkout_session_id=checkout_session_id,
        )
        order = created.data if created.success and isinstance(created.data, dict) else None
        if not order or not order.get("id"):
            logger.warning(
                "Payment order creation failed",
                error_code=created.error.error_code if created.error else None,
            )
            return PaymentOutcome(PaymentOutcomeStatus.ORDER_FAILED, ORDER_FAILED_MESSAGE)

        options = GatewayCheckoutOptions(
            key=self.key_id,
            order_id=order["id"],
            amount=order["amount"],
            currency=order["currency"],
            name=self.merchant_name,
            description=self.description,
            prefill=prefill or Prefill(),
        )
        try:
            callback = await self.hosted_checkout.open(options)
        except HostedCheckoutError as e:
            logger.warning("Hosted checkout failed to open", gateway_order_id=order["id"], error=str(e))
            return PaymentOutcome(
                PaymentOutcomeStatus.ORDER_FAILED,
                ORDER_FAILED_MESSAGE,
                gateway_order_id=order["id"],
            )

        if callback is None:
            logger.info("Hosted checkout dismissed", gateway_order_id=order["id"])
            return PaymentOutcome(
                PaymentOutcomeStatus.DISMISSED,
                DISMISSED_MESSAGE,
                gateway_order_id=order["id"],
            )

        verified = await self.api.verify_payment(
            callback.razorpay_order_id,
            callback.razorpay_payment_id,
            callback.razorpay_signature,
            checkout_session_id=checkout_session_id,
        )
        if verified.success and isinstance(verified.data, dict) and verified.data.get("success"):
            return PaymentOutcome(
                PaymentOutcomeStatus.SUCCEEDED,
                verified.data.get("message", "Payment verified successfully"),
                gateway_order_id=callback.razorpay_order_id,
                gateway_payment_id=callback.razorpay_payment_id,
            )

        # A 4xx answer means the server looked at the payment and rejected it
        rejected = verified.error is not None and 400 <= verified.error.status_code < 500
        status = (
            PaymentOutcomeStatus.VERIFICATION_FAILED
            if rejected
            else PaymentOutcomeStatus.VERIFICATION_UNREACHABLE
        )
        logger.warning(
            "Payment verification did not succeed",
            gateway_order_id=callback.razorpay_order_id,
            status=status.value,
        )
        return PaymentOutcome(
            status,
            VERIFICATION_FAILED_MESSAGE if rejected else VERIFICATION_UNREACHABLE_MESSAGE,
            gateway_order_id=callback.razorpay_order_id,
            gateway_payment_id=callback.razorpay_payment_id,
        )
