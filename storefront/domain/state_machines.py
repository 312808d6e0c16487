"""State machines for the checkout flow.

Deterministic state machines that define valid transitions for the
checkout steps, payment orders and checkout sessions.
"""

from enum import Enum, IntEnum

import structlog

from storefront.domain.exceptions import (
    InvalidCheckoutStepError,
    InvalidStateTransitionError,
)

logger = structlog.get_logger()


# ============================================================================
# Checkout Steps
# ============================================================================


class CheckoutStep(IntEnum):
    """Panels of the checkout page, in order.

    State diagram:
        CART ◄──► SHIPPING ◄──► PAYMENT

    Payment completion does not advance past PAYMENT; a verified payment
    leaves the flow for the success view instead.
    """

    CART = 1
    SHIPPING = 2
    PAYMENT = 3

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]

    @classmethod
    def first(cls) -> "CheckoutStep":
        return cls.CART

    @classmethod
    def last(cls) -> "CheckoutStep":
        return cls.PAYMENT

    def next(self) -> "CheckoutStep":
        """Following step, saturating at PAYMENT."""
        return CheckoutStep(min(self + 1, CheckoutStep.last()))

    def previous(self) -> "CheckoutStep":
        """Preceding step, saturating at CART."""
        return CheckoutStep(max(self - 1, CheckoutStep.first()))


_STEP_LABELS: dict[CheckoutStep, str] = {
    CheckoutStep.CART: "Review",
    CheckoutStep.SHIPPING: "Shipping",
    CheckoutStep.PAYMENT: "Payment",
}


class CheckoutStepController:
    """Tracks which checkout panel is active.

    The step only moves by one through ``next_step``/``prev_step`` or to
    a valid step through ``go_to_step``; it can never leave the
    CART..PAYMENT range.
    """

    def __init__(self, step: CheckoutStep = CheckoutStep.CART) -> None:
        self._step = CheckoutStep(step)

    @property
    def step(self) -> CheckoutStep:
        return self._step

    def go_to_step(self, step: int) -> CheckoutStep:
        """Jump directly to a step.

        Raises:
            InvalidCheckoutStepError: If ``step`` is not 1, 2 or 3.
        """
        if isinstance(step, bool) or not isinstance(step, int):
            raise InvalidCheckoutStepError(step, CheckoutStep.first(), CheckoutStep.last())
        try:
            target = CheckoutStep(step)
        except ValueError:
            raise InvalidCheckoutStepError(step, CheckoutStep.first(), CheckoutStep.last()) from None
        self._move(target)
        return self._step

    def next_step(self) -> CheckoutStep:
        """Advance one step; a no-op on the payment step."""
        self._move(self._step.next())
        return self._step

    def prev_step(self) -> CheckoutStep:
        """Go back one step; a no-op on the cart step."""
        self._move(self._step.previous())
        return self._step

    def reset(self) -> None:
        self._step = CheckoutStep.first()

    def _move(self, target: CheckoutStep) -> None:
        if target != self._step:
            logger.debug("Checkout step changed", from_step=int(self._step), to_step=int(target))
        self._step = target

    def __repr__(self) -> str:
        return f"CheckoutStepController(step={self._step.name})"


# ============================================================================
# Payment State Machine
# ============================================================================


class PaymentStatus(str, Enum):
    """Payment lifecycle of an order.

    State diagram:
        PENDING ──────────────► FAILED
          │                       │
          │ verify / captured     │ later attempt captured
          ▼                       │
        PAID ◄────────────────────┘
          │
          │ refund
          ▼
        REFUNDED
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in _PAYMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PaymentStatus"]:
        return list(_PAYMENT_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        return len(_PAYMENT_TRANSITIONS.get(self, set())) == 0

    def is_settled(self) -> bool:
        """Check whether money has moved for this order."""
        return self in {PaymentStatus.PAID, PaymentStatus.REFUNDED}


_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),  # Terminal state
}


# ============================================================================
# Checkout Session State Machine
# ============================================================================


class CheckoutSessionStatus(str, Enum):
    """Lifecycle of a checkout session.

    State diagram:
        ACTIVE ──── complete ───► COMPLETED
          │
          └──────── abandon ────► ABANDONED
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    def can_transition_to(self, target: "CheckoutSessionStatus") -> bool:
        return target in _SESSION_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["CheckoutSessionStatus"]:
        return list(_SESSION_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        return len(_SESSION_TRANSITIONS.get(self, set())) == 0


_SESSION_TRANSITIONS: dict[CheckoutSessionStatus, set[CheckoutSessionStatus]] = {
    CheckoutSessionStatus.ACTIVE: {
        CheckoutSessionStatus.COMPLETED,
        CheckoutSessionStatus.ABANDONED,
    },
    CheckoutSessionStatus.COMPLETED: set(),  # Terminal state
    CheckoutSessionStatus.ABANDONED: set(),  # Terminal state
}


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_payment_transition(
    order_id: str,
    current_status: PaymentStatus,
    target_status: PaymentStatus,
) -> None:
    """Validate and raise if a payment status transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="PaymentOrder",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_session_transition(
    session_id: str,
    current_status: CheckoutSessionStatus,
    target_status: CheckoutSessionStatus,
) -> None:
    """Validate and raise if a checkout session transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="CheckoutSession",
            entity_id=session_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
