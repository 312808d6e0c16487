"""Order total calculation.

Derives subtotal, shipping fee and grand total from a cart snapshot.
Totals are never cached; callers recompute them whenever the cart changes.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from storefront.domain.base import ValueObject
from storefront.domain.value_objects import DEFAULT_CURRENCY, CartLine, Money


@dataclass(frozen=True)
class ShippingPolicy(ValueObject):
    """Flat-rate shipping waived above a threshold.

    Attributes:
        free_shipping_threshold: Subtotal the order must exceed to ship free.
        flat_fee: Fee charged otherwise.
        inclusive: When True a subtotal equal to the threshold also ships
            free; by default it must be strictly greater.
    """

    free_shipping_threshold: Money
    flat_fee: Money
    inclusive: bool = False

    @classmethod
    def from_minor_units(
        cls,
        threshold: int,
        flat_fee: int,
        currency: str = DEFAULT_CURRENCY,
        inclusive: bool = False,
    ) -> "ShippingPolicy":
        return cls(
            free_shipping_threshold=Money(threshold, currency),
            flat_fee=Money(flat_fee, currency),
            inclusive=inclusive,
        )

    @property
    def currency(self) -> str:
        return self.free_shipping_threshold.currency

    def qualifies_for_free_shipping(self, subtotal: Money) -> bool:
        if self.inclusive:
            return subtotal >= self.free_shipping_threshold
        return subtotal > self.free_shipping_threshold

    def shipping_fee(self, subtotal: Money) -> Money:
        if self.qualifies_for_free_shipping(subtotal):
            return Money.zero(self.currency)
        return self.flat_fee


@dataclass(frozen=True)
class OrderTotals(ValueObject):
    """Computed totals for one cart snapshot."""

    subtotal: Money
    shipping_fee: Money
    total: Money

    @property
    def currency(self) -> str:
        return self.total.currency

    @property
    def free_shipping(self) -> bool:
        return self.shipping_fee.is_zero()

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal.amount_minor,
            "shipping_fee": self.shipping_fee.amount_minor,
            "total": self.total.amount_minor,
            "currency": self.currency,
            "free_shipping": self.free_shipping,
        }


def calculate_order_totals(lines: Iterable[CartLine], policy: ShippingPolicy) -> OrderTotals:
    """Compute subtotal, shipping fee and total for the given lines.

    ``subtotal`` is the exact sum of price x quantity. An empty cart is
    still charged the flat fee unless the policy's threshold is crossed,
    which matches the order summary shown on the cart review step.

    Raises:
        CurrencyMismatchError: If a line is priced in another currency
            than the policy.
    """
    subtotal = Money.zero(policy.currency)
    for line in lines:
        subtotal = subtotal + line.line_total
    shipping_fee = policy.shipping_fee(subtotal)
    return OrderTotals(
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        total=subtotal + shipping_fee,
    )
