"""Domain layer - entities, value objects, state machines, pricing, events.

- **Value Objects**: Money, CartLine, CartSnapshot, ShippingInfo
- **State Machines**: CheckoutStep (and its controller), PaymentStatus,
  CheckoutSessionStatus
- **Pricing**: ShippingPolicy and the order total calculation
- **Entities**: PaymentOrder, CheckoutSession
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from storefront.domain import CartLine, CartSnapshot, ShippingPolicy, calculate_order_totals

    cart = CartSnapshot.from_lines([
        CartLine(product_id=7, name="Linen Shirt", price_minor=129900, quantity=2, size="M", color="white"),
    ])
    policy = ShippingPolicy.from_minor_units(threshold=250000, flat_fee=15000)
    totals = calculate_order_totals(cart.items, policy)
    print(totals.total)  # ₹2,598.00 INR (free shipping above ₹2,500)
"""

from storefront.domain.base import AggregateRoot, DomainEvent, ValueObject
from storefront.domain.entities import CheckoutSession, PaymentOrder
from storefront.domain.exceptions import (
    AmountOutOfRangeError,
    CartEmptyError,
    CheckoutSessionClosedError,
    CheckoutSessionExistsError,
    CheckoutSessionNotFoundError,
    CheckoutValidationError,
    ConflictError,
    CurrencyMismatchError,
    DomainError,
    DuplicateCartLineError,
    IdempotencyConflictError,
    InvalidCheckoutStepError,
    InvalidPaymentAmountError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    NegativeMoneyError,
    NotFoundError,
    PaymentOrderNotFoundError,
    PaymentSessionMismatchError,
    ShippingInfoIncompleteError,
)
from storefront.domain.pricing import OrderTotals, ShippingPolicy, calculate_order_totals
from storefront.domain.state_machines import (
    CheckoutSessionStatus,
    CheckoutStep,
    CheckoutStepController,
    PaymentStatus,
)
from storefront.domain.value_objects import (
    AddressType,
    CartLine,
    CartSnapshot,
    Money,
    ShippingInfo,
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "ValueObject",
    # Entities
    "CheckoutSession",
    "PaymentOrder",
    # Value objects
    "AddressType",
    "CartLine",
    "CartSnapshot",
    "Money",
    "ShippingInfo",
    # Pricing
    "OrderTotals",
    "ShippingPolicy",
    "calculate_order_totals",
    # State machines
    "CheckoutSessionStatus",
    "CheckoutStep",
    "CheckoutStepController",
    "PaymentStatus",
    # Exceptions
    "AmountOutOfRangeError",
    "CartEmptyError",
    "CheckoutSessionClosedError",
    "CheckoutSessionExistsError",
    "CheckoutSessionNotFoundError",
    "CheckoutValidationError",
    "ConflictError",
    "CurrencyMismatchError",
    "DomainError",
    "DuplicateCartLineError",
    "IdempotencyConflictError",
    "InvalidCheckoutStepError",
    "InvalidPaymentAmountError",
    "InvalidQuantityError",
    "InvalidStateTransitionError",
    "NegativeMoneyError",
    "NotFoundError",
    "PaymentOrderNotFoundError",
    "PaymentSessionMismatchError",
    "ShippingInfoIncompleteError",
]
