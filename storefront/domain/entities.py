"""Domain entities for the storefront checkout.

Two aggregates live here: PaymentOrder, the internal record of one
gateway order, and CheckoutSession, which owns the state of one
customer's pass through the checkout page.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from storefront.domain.base import AggregateRoot, utcnow
from storefront.domain.events import (
    CheckoutSessionAbandoned,
    CheckoutSessionCompleted,
    CheckoutSessionStarted,
    GatewayOrderAttached,
    PaymentCaptured,
    PaymentFailed,
    PaymentOrderCreated,
    PaymentRefunded,
)
from storefront.domain.exceptions import (
    CartEmptyError,
    CheckoutSessionClosedError,
    PaymentSessionMismatchError,
    InvalidPaymentAmountError,
)
from storefront.domain.pricing import OrderTotals, ShippingPolicy, calculate_order_totals
from storefront.domain.state_machines import (
    CheckoutSessionStatus,
    CheckoutStep,
    CheckoutStepController,
    PaymentStatus,
    validate_payment_transition,
    validate_session_transition,
)
from storefront.domain.value_objects import CartSnapshot, Money, ShippingInfo


# ============================================================================
# Payment Order Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class PaymentOrder(AggregateRoot):
    """Internal record of a payment collected through the gateway.

    The record is saved before the gateway is called, so a retried
    request carrying the same idempotency key finds it instead of
    creating a second gateway order. Its id doubles as the gateway
    receipt, which ties gateway orders back to internal ones.

    Attributes:
        id: Internal order identifier.
        amount: Amount to collect.
        idempotency_key: Key of the checkout attempt that created it.
        checkout_session_id: Session the payment belongs to, if any.
        gateway_order_id: Order id issued by the gateway.
        gateway_payment_id: Payment id reported on verification/capture.
        gateway_signature: Signature that verified the payment.
        status: Payment status.
        failure_reason: Last failure reported for this order.
        paid_at: When the payment was verified.
    """

    id: str
    amount: Money
    idempotency_key: str | None = None
    checkout_session_id: str | None = None
    gateway_order_id: str | None = None
    gateway_payment_id: str | None = None
    gateway_signature: str | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    failure_reason: str | None = None
    paid_at: datetime | None = None

    @classmethod
    def create(
        cls,
        amount: Money,
        idempotency_key: str | None = None,
        checkout_session_id: str | None = None,
    ) -> "PaymentOrder":
        """Create a pending payment order.

        Raises:
            InvalidPaymentAmountError: If the amount is zero.
        """
        if amount.is_zero():
            raise InvalidPaymentAmountError(amount.to_decimal())
        order = cls(
            id=str(uuid4()),
            amount=amount,
            idempotency_key=idempotency_key,
            checkout_session_id=checkout_session_id,
        )
        order._record_event(
            PaymentOrderCreated(
                aggregate_id=order.id,
                amount_minor=amount.amount_minor,
                currency=amount.currency,
                idempotency_key=idempotency_key,
            )
        )
        return order

    @property
    def receipt(self) -> str:
        return self.id

    @property
    def has_gateway_order(self) -> bool:
        return self.gateway_order_id is not None

    def attach_gateway_order(self, gateway_order_id: str) -> None:
        self.gateway_order_id = gateway_order_id
        self.failure_reason = None
        self._touch()
        self._record_event(
            GatewayOrderAttached(aggregate_id=self.id, gateway_order_id=gateway_order_id)
        )

    def record_gateway_failure(self, reason: str) -> None:
        """Note that the gateway did not create the order (status unchanged)."""
        self.failure_reason = reason
        self._touch()

    def mark_paid(self, gateway_payment_id: str, signature: str | None = None) -> bool:
        """Mark the order paid.

        Returns:
            False when the same payment was already recorded.

        Raises:
            InvalidStateTransitionError: If the order cannot become paid.
        """
        if self.status == PaymentStatus.PAID and self.gateway_payment_id == gateway_payment_id:
            return False
        validate_payment_transition(self.id, self.status, PaymentStatus.PAID)
        self.status = PaymentStatus.PAID
        self.gateway_payment_id = gateway_payment_id
        if signature is not None:
            self.gateway_signature = signature
        self.failure_reason = None
        self.paid_at = utcnow()
        self._touch()
        self._record_event(
            PaymentCaptured(
                aggregate_id=self.id,
                gateway_order_id=self.gateway_order_id or "",
                gateway_payment_id=gateway_payment_id,
            )
        )
        return True

    def mark_failed(self, reason: str) -> bool:
        """Record a failed payment attempt.

        A failure reported after the order is settled belongs to an
        earlier attempt and does not change the status.

        Returns:
            True if the status changed to FAILED.
        """
        if self.status.is_settled() or self.status == PaymentStatus.FAILED:
            self.failure_reason = reason
            self._touch()
            return False
        validate_payment_transition(self.id, self.status, PaymentStatus.FAILED)
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        self._touch()
        self._record_event(PaymentFailed(aggregate_id=self.id, reason=reason))
        return True

    def mark_refunded(self) -> bool:
        """Mark a paid order refunded.

        Returns:
            False when the order was already refunded.

        Raises:
            InvalidStateTransitionError: If the order was never paid.
        """
        if self.status == PaymentStatus.REFUNDED:
            return False
        validate_payment_transition(self.id, self.status, PaymentStatus.REFUNDED)
        self.status = PaymentStatus.REFUNDED
        self._touch()
        self._record_event(
            PaymentRefunded(aggregate_id=self.id, gateway_payment_id=self.gateway_payment_id or "")
        )
        return True

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.id,
            "gateway_order_id": self.gateway_order_id,
            "payment_status": self.status.value,
            "payment_id": self.gateway_payment_id,
            "amount": self.amount.amount_minor,
            "currency": self.amount.currency,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
        }


# ============================================================================
# Checkout Session Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class CheckoutSession(AggregateRoot):
    """One customer's checkout, from entering the page to paying or leaving.

    Owns the step controller and the shipping details for its lifetime;
    nothing outside the session mutates them. A session is created when
    checkout starts and closed by ``complete`` or ``abandon``.

    Attributes:
        id: Session identifier.
        cart: Snapshot of the cart being checked out.
        shipping: Shipping details collected so far.
        status: Session lifecycle status.
        steps: Active checkout step.
        attempt_key: Idempotency key of the current payment attempt.
        payment_order_id: Payment order that completed the session.
    """

    id: str
    cart: CartSnapshot = field(default_factory=CartSnapshot)
    shipping: ShippingInfo = field(default_factory=ShippingInfo.empty)
    status: CheckoutSessionStatus = CheckoutSessionStatus.ACTIVE
    steps: CheckoutStepController = field(default_factory=CheckoutStepController, compare=False)
    attempt_key: str | None = None
    payment_order_id: str | None = None

    @classmethod
    def start(cls, cart: CartSnapshot, session_id: str | None = None) -> "CheckoutSession":
        session = cls(id=session_id or str(uuid4()), cart=cart)
        session._record_event(
            CheckoutSessionStarted(aggregate_id=session.id, item_count=cart.item_count)
        )
        return session

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def step(self) -> CheckoutStep:
        return self.steps.step

    @property
    def is_active(self) -> bool:
        return self.status == CheckoutSessionStatus.ACTIVE

    def totals(self, policy: ShippingPolicy) -> OrderTotals:
        return calculate_order_totals(self.cart.lines, policy)

    # -------------------------------------------------------------------------
    # Cart and shipping
    # -------------------------------------------------------------------------

    def replace_cart(self, cart: CartSnapshot) -> None:
        """Swap in a fresh cart snapshot.

        The amount of any pending payment attempt changes with the cart,
        so the attempt key is dropped and the next attempt gets a new one.
        """
        self._ensure_active()
        self.cart = cart
        self.attempt_key = None
        self._touch()

    def update_shipping(self, **changes: Any) -> ShippingInfo:
        self._ensure_active()
        self.shipping = self.shipping.update(**changes)
        self._touch()
        return self.shipping

    def reset_shipping(self) -> None:
        self._ensure_active()
        self.shipping = ShippingInfo.empty()
        self._touch()

    # -------------------------------------------------------------------------
    # Step navigation
    # -------------------------------------------------------------------------

    def next_step(self) -> CheckoutStep:
        """Advance one step once the current panel is complete.

        Raises:
            CartEmptyError: Leaving the cart step with nothing in the cart.
            ShippingInfoIncompleteError: Leaving shipping with missing fields.
        """
        self._ensure_active()
        self._check_requirements(self.step.next())
        self.steps.next_step()
        self._touch()
        return self.step

    def prev_step(self) -> CheckoutStep:
        self._ensure_active()
        self.steps.prev_step()
        self._touch()
        return self.step

    def go_to_step(self, step: int) -> CheckoutStep:
        """Jump to a step, enforcing the same requirements as advancing."""
        self._ensure_active()
        valid = isinstance(step, int) and not isinstance(step, bool)
        if valid and CheckoutStep.first() <= step <= CheckoutStep.last():
            self._check_requirements(CheckoutStep(step))
        self.steps.go_to_step(step)
        self._touch()
        return self.step

    def _check_requirements(self, target: CheckoutStep) -> None:
        if target >= CheckoutStep.SHIPPING and self.cart.is_empty():
            raise CartEmptyError(self.id)
        if target >= CheckoutStep.PAYMENT:
            self.shipping.validate()

    # -------------------------------------------------------------------------
    # Payment and lifecycle
    # -------------------------------------------------------------------------

    def begin_payment_attempt(self, policy: ShippingPolicy) -> tuple[str, OrderTotals]:
        """Prepare a payment attempt for the current cart.

        Returns the attempt's idempotency key, reused until the cart
        changes, together with the totals to charge.

        Raises:
            CartEmptyError: If the cart is empty.
            ShippingInfoIncompleteError: If shipping details are incomplete.
            InvalidPaymentAmountError: If the total is not positive.
        """
        self._ensure_active()
        self._check_requirements(CheckoutStep.PAYMENT)
        totals = self.totals(policy)
        if totals.total.is_zero():
            raise InvalidPaymentAmountError(totals.total.to_decimal())
        if self.attempt_key is None:
            self.attempt_key = uuid4().hex
            self._touch()
        return self.attempt_key, totals

    def complete(self, payment: PaymentOrder, policy: ShippingPolicy) -> None:
        """Close the session with the payment that settles it; shipping is cleared.

        The payment must be paid, belong to this session and match the
        current total exactly.

        Raises:
            PaymentSessionMismatchError: If the payment does not settle the session.
            InvalidStateTransitionError: If the session is already closed.
        """
        validate_session_transition(self.id, self.status, CheckoutSessionStatus.COMPLETED)
        if payment.checkout_session_id != self.id:
            raise PaymentSessionMismatchError(self.id, payment.id, "payment belongs to another checkout")
        if payment.status != PaymentStatus.PAID:
            raise PaymentSessionMismatchError(self.id, payment.id, f"payment is {payment.status.value}")
        total = self.totals(policy).total
        if payment.amount != total:
            raise PaymentSessionMismatchError(
                self.id,
                payment.id,
                f"paid {payment.amount.amount_minor}, total is {total.amount_minor}",
            )
        self.status = CheckoutSessionStatus.COMPLETED
        self.payment_order_id = payment.id
        self.shipping = ShippingInfo.empty()
        self.attempt_key = None
        self._touch()
        self._record_event(
            CheckoutSessionCompleted(
                aggregate_id=self.id,
                payment_order_id=payment.id,
                amount_minor=payment.amount.amount_minor,
            )
        )

    def abandon(self, reason: str = "abandoned") -> None:
        validate_session_transition(self.id, self.status, CheckoutSessionStatus.ABANDONED)
        self.status = CheckoutSessionStatus.ABANDONED
        self.attempt_key = None
        self._touch()
        self._record_event(CheckoutSessionAbandoned(aggregate_id=self.id, reason=reason))

    def _ensure_active(self) -> None:
        if not self.is_active:
            raise CheckoutSessionClosedError(self.id, self.status.value)
