"""API schemas for the storefront service.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.entities import CheckoutSession
from storefront.domain.pricing import ShippingPolicy
from storefront.domain.value_objects import AddressType, CartLine


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response for everything outside the payment routes."""

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional error context")
    request_id: str | None = Field(default=None, description="Request ID for correlation")


# ============================================================================
# Payment Schemas
# ============================================================================


class CreateOrderRequest(BaseModel):
    """Request to create a gateway order.

    Strict so that numeric strings and booleans are not taken as amounts.
    """

    model_config = ConfigDict(strict=True)

    amount: float = Field(
        ...,
        gt=0,
        allow_inf_nan=False,
        description="Amount to collect in major units (e.g. rupees)",
    )
    checkout_session_id: str | None = Field(
        default=None, description="Checkout session the payment belongs to"
    )


class CreateOrderResponse(BaseModel):
    """Gateway order handed to the hosted checkout."""

    id: str = Field(..., description="Gateway order id")
    currency: str = Field(..., description="Currency code")
    amount: int = Field(..., description="Amount in minor units")
    receipt: str = Field(..., description="Internal order id sent to the gateway as receipt")


class VerifyPaymentRequest(BaseModel):
    """Fields the hosted checkout hands to its success callback."""

    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    checkout_session_id: str | None = None


class VerifyPaymentResponse(BaseModel):
    success: bool
    message: str


class PaymentStatusResponse(BaseModel):
    """Payment status of an internal order."""

    order_id: str
    gateway_order_id: str | None = None
    payment_status: str
    payment_id: str | None = None
    amount: int = Field(..., description="Amount in minor units")
    currency: str
    paid_at: str | None = None


class WebhookAckResponse(BaseModel):
    received: bool = True
    status: str


# ============================================================================
# Checkout Session Schemas
# ============================================================================


class CartLineSchema(BaseModel):
    """One cart line as sent by the cart store."""

    product_id: int = Field(..., description="Catalog product id")
    name: str = Field(..., min_length=1)
    price: int = Field(..., ge=0, description="Unit price in minor units")
    quantity: int = Field(..., ge=1)
    size: str = ""
    color: str = ""

    def to_domain(self, currency: str) -> CartLine:
        return CartLine(
            product_id=self.product_id,
            name=self.name,
            price_minor=self.price,
            quantity=self.quantity,
            size=self.size,
            color=self.color,
            currency=currency,
        )

    @classmethod
    def from_domain(cls, line: CartLine) -> "CartLineSchema":
        return cls(
            product_id=line.product_id,
            name=line.name,
            price=line.price_minor,
            quantity=line.quantity,
            size=line.size,
            color=line.color,
        )


class StartSessionRequest(BaseModel):
    """Request to start checkout for a cart."""

    lines: list[CartLineSchema] = Field(default_factory=list)
    session_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=64,
        description="Client-chosen session key; generated when omitted",
    )


class ReplaceCartRequest(BaseModel):
    lines: list[CartLineSchema] = Field(default_factory=list)


class GoToStepRequest(BaseModel):
    step: int = Field(..., description="Step number: 1 cart, 2 shipping, 3 payment")


class ShippingUpdateRequest(BaseModel):
    """Partial shipping details; only the fields sent are changed."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    address_type: AddressType | None = None


class AbandonSessionRequest(BaseModel):
    reason: str = Field(default="abandoned", max_length=200)


class CartResponse(BaseModel):
    currency: str
    lines: list[CartLineSchema]
    item_count: int


class TotalsResponse(BaseModel):
    subtotal: int
    shipping_fee: int
    total: int
    currency: str
    free_shipping: bool


class ShippingResponse(BaseModel):
    name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str
    address_type: AddressType


class SessionResponse(BaseModel):
    """Checkout session as rendered by the checkout page."""

    id: str
    status: str
    step: int = Field(..., description="Active step: 1 cart, 2 shipping, 3 payment")
    step_label: str
    cart: CartResponse
    totals: TotalsResponse
    shipping: ShippingResponse
    shipping_complete: bool
    missing_fields: list[str]
    invalid_fields: dict[str, str]
    payment_order_id: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: CheckoutSession, policy: ShippingPolicy) -> "SessionResponse":
        return cls(
            id=session.id,
            status=session.status.value,
            step=session.step.value,
            step_label=session.step.label,
            cart=CartResponse(
                currency=session.cart.currency,
                lines=[CartLineSchema.from_domain(line) for line in session.cart.lines],
                item_count=session.cart.item_count,
            ),
            totals=TotalsResponse(**session.totals(policy).to_dict()),
            shipping=ShippingResponse(**session.shipping.to_dict()),
            shipping_complete=session.shipping.is_complete(),
            missing_fields=session.shipping.missing_fields(),
            invalid_fields=session.shipping.invalid_fields(),
            payment_order_id=session.payment_order_id,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class PaymentAttemptResponse(BaseModel):
    """Amount and idempotency key for creating the gateway order."""

    session_id: str
    idempotency_key: str
    amount: float = Field(..., description="Amount in major units for create-order")
    amount_minor: int
    currency: str
    totals: TotalsResponse
