"""Domain exceptions.

All domain-level errors that represent business rule violations.
Raised by value objects, entities and state machines; translated into
HTTP responses once, at the API edge.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    Attributes:
        error_code: Machine-readable code surfaced to API callers.
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Base class for lookups that found nothing."""

    error_code = "NOT_FOUND"


class ConflictError(DomainError):
    """Base class for operations that conflict with current state."""

    error_code = "CONFLICT"


class CheckoutValidationError(DomainError):
    """Base class for input rejected before any money can move."""

    error_code = "VALIDATION_ERROR"


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted."""

    error_code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


class InvalidCheckoutStepError(CheckoutValidationError):
    """Raised when jumping to a step outside the checkout's range."""

    error_code = "INVALID_STEP"

    def __init__(self, step: Any, first: int, last: int) -> None:
        super().__init__(
            f"Checkout step must be between {first} and {last}, got {step!r}",
            details={"step": step, "min": first, "max": last},
        )


# ============================================================================
# Cart Errors
# ============================================================================


class CartError(CheckoutValidationError):
    """Base class for cart-related errors."""

    pass


class InvalidQuantityError(CartError):
    """Raised when a cart line has a quantity below one."""

    error_code = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "Quantity must be at least 1") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class DuplicateCartLineError(CartError):
    """Raised when two cart lines share the same product/size/color key."""

    error_code = "DUPLICATE_CART_LINE"

    def __init__(self, unique_id: str) -> None:
        super().__init__(
            f"Cart already contains a line for {unique_id}",
            details={"unique_id": unique_id},
        )


class CartEmptyError(CartError):
    """Raised when checkout cannot proceed because the cart is empty."""

    error_code = "CART_EMPTY"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Cart for checkout session {session_id} is empty",
            details={"session_id": session_id},
        )


# ============================================================================
# Shipping and Payment Validation Errors
# ============================================================================


class ShippingInfoIncompleteError(CheckoutValidationError):
    """Raised when shipping details are missing or malformed."""

    error_code = "SHIPPING_INFO_INCOMPLETE"

    def __init__(self, missing: list[str], invalid: dict[str, str] | None = None) -> None:
        invalid = invalid or {}
        problems = missing + [f for f in invalid if f not in missing]
        super().__init__(
            f"Please complete shipping information: {', '.join(problems)}",
            details={"missing": missing, "invalid": invalid},
        )
        self.missing = missing
        self.invalid = invalid


class InvalidPaymentAmountError(CheckoutValidationError):
    """Raised when a payment is requested for a zero or negative amount."""

    error_code = "INVALID_AMOUNT"

    def __init__(self, amount: Any) -> None:
        super().__init__(
            f"Payment amount must be positive, got {amount}",
            details={"amount": str(amount)},
        )


# ============================================================================
# Money Errors
# ============================================================================


class MoneyError(DomainError):
    """Base class for money-related errors."""

    pass


class CurrencyMismatchError(MoneyError):
    """Raised when attempting to combine money with different currencies."""

    error_code = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str) -> None:
        super().__init__(
            f"Cannot combine money with different currencies: {currency1} and {currency2}",
            details={"currency1": currency1, "currency2": currency2},
        )


class NegativeMoneyError(MoneyError):
    """Raised when attempting to create money with negative amount."""

    error_code = "NEGATIVE_AMOUNT"

    def __init__(self, amount: int) -> None:
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )


class AmountOutOfRangeError(MoneyError):
    """Raised when an amount cannot be represented in minor units."""

    error_code = "AMOUNT_OUT_OF_RANGE"

    def __init__(self, amount: Any) -> None:
        super().__init__(
            f"Amount out of range: {amount}",
            details={"amount": str(amount)},
        )


# ============================================================================
# Lookup and Lifecycle Errors
# ============================================================================


class CheckoutSessionNotFoundError(NotFoundError):
    """Raised when a checkout session does not exist or has expired."""

    error_code = "CHECKOUT_SESSION_NOT_FOUND"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Checkout session not found: {session_id}",
            details={"session_id": session_id},
        )


class CheckoutSessionClosedError(ConflictError):
    """Raised when mutating a session that was completed or abandoned."""

    error_code = "CHECKOUT_SESSION_CLOSED"

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(
            f"Checkout session {session_id} is {status} and can no longer change",
            details={"session_id": session_id, "status": status},
        )


class PaymentOrderNotFoundError(NotFoundError):
    """Raised when no payment order matches an internal or gateway id."""

    error_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str) -> None:
        super().__init__(
            f"Order not found: {order_id}",
            details={"order_id": order_id},
        )


class IdempotencyConflictError(ConflictError):
    """Raised when an idempotency key is reused for a different amount."""

    error_code = "IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, original_amount: int, requested_amount: int) -> None:
        super().__init__(
            "Idempotency key already used with a different amount",
            details={
                "idempotency_key": idempotency_key,
                "original_amount": original_amount,
                "requested_amount": requested_amount,
            },
        )


class CheckoutSessionExistsError(ConflictError):
    """Raised when starting a session under an id that is already taken."""

    error_code = "CHECKOUT_SESSION_EXISTS"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Checkout session already exists: {session_id}",
            details={"session_id": session_id},
        )


class PaymentSessionMismatchError(ConflictError):
    """Raised when a payment cannot settle the session it is presented for.

    The payment must have been created for that session, be paid, and
    cover the session's current total.
    """

    error_code = "PAYMENT_SESSION_MISMATCH"

    def __init__(self, session_id: str, payment_order_id: str | None, reason: str) -> None:
        super().__init__(
            f"Payment {payment_order_id} does not settle checkout session {session_id}: {reason}",
            details={
                "session_id": session_id,
                "payment_order_id": payment_order_id,
                "reason": reason,
            },
        )
