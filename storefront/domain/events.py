"""Domain events emitted by payment orders and checkout sessions."""

from dataclasses import dataclass

from storefront.domain.base import DomainEvent


# ============================================================================
# Payment Order Events
# ============================================================================


@dataclass(frozen=True)
class PaymentOrderCreated(DomainEvent):
    """An internal payment order was recorded before calling the gateway."""

    event_type = "payment_order.created"

    amount_minor: int
    currency: str
    idempotency_key: str | None = None


@dataclass(frozen=True)
class GatewayOrderAttached(DomainEvent):
    """The gateway accepted the order and issued its own id."""

    event_type = "payment_order.gateway_attached"

    gateway_order_id: str


@dataclass(frozen=True)
class PaymentCaptured(DomainEvent):
    """Payment for the order was verified or captured."""

    event_type = "payment_order.paid"

    gateway_order_id: str
    gateway_payment_id: str


@dataclass(frozen=True)
class PaymentFailed(DomainEvent):
    event_type = "payment_order.failed"

    reason: str


@dataclass(frozen=True)
class PaymentRefunded(DomainEvent):
    event_type = "payment_order.refunded"

    gateway_payment_id: str


# ============================================================================
# Checkout Session Events
# ============================================================================


@dataclass(frozen=True)
class CheckoutSessionStarted(DomainEvent):
    event_type = "checkout_session.started"

    item_count: int


@dataclass(frozen=True)
class CheckoutSessionCompleted(DomainEvent):
    event_type = "checkout_session.completed"

    payment_order_id: str
    amount_minor: int


@dataclass(frozen=True)
class CheckoutSessionAbandoned(DomainEvent):
    event_type = "checkout_session.abandoned"

    reason: str
