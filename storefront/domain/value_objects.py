"""Value objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, fields, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Self

from storefront.domain.base import ValueObject
from storefront.domain.exceptions import (
    AmountOutOfRangeError,
    CurrencyMismatchError,
    DuplicateCartLineError,
    InvalidQuantityError,
    NegativeMoneyError,
    ShippingInfoIncompleteError,
)

DEFAULT_CURRENCY = "INR"


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Represents monetary value with currency.

    Money is stored in the smallest currency unit (paisa for INR, cents
    for USD) to avoid floating-point precision issues.

    Attributes:
        amount_minor: Amount in smallest currency unit.
        currency: ISO 4217 currency code (e.g., 'INR').
    """

    amount_minor: int
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if self.amount_minor < 0:
            raise NegativeMoneyError(self.amount_minor)
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> Self:
        """Create zero amount money."""
        return cls(amount_minor=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal, currency: str = DEFAULT_CURRENCY) -> Self:
        """Create money from an amount in major units.

        Fractions of a minor unit are rounded half-up, so ``Decimal("499.995")``
        becomes 50000 paisa.

        Args:
            amount: Decimal amount in major units (e.g., rupees).
            currency: Currency code.

        Returns:
            Money instance.

        Raises:
            AmountOutOfRangeError: If the amount is not finite or needs more
                digits than the decimal context carries.
        """
        try:
            minor = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        except (InvalidOperation, OverflowError, ValueError) as e:
            raise AmountOutOfRangeError(amount) from e
        return cls(amount_minor=minor, currency=currency)

    @classmethod
    def from_float(cls, amount: float, currency: str = DEFAULT_CURRENCY) -> Self:
        """Create money from a float amount in major units.

        Prefer from_decimal; the float is routed through its string form
        so 19.99 stays 1999 rather than 1998.
        """
        return cls.from_decimal(Decimal(str(amount)), currency)

    def to_decimal(self) -> Decimal:
        """Convert to a decimal amount in major units."""
        return Decimal(self.amount_minor) / 100

    def __add__(self, other: "Money") -> "Money":
        """Add two money amounts.

        Raises:
            CurrencyMismatchError: If currencies don't match.
        """
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return Money(
            amount_minor=self.amount_minor + other.amount_minor,
            currency=self.currency,
        )

    def __mul__(self, quantity: int) -> "Money":
        return Money(
            amount_minor=self.amount_minor * quantity,
            currency=self.currency,
        )

    def __rmul__(self, quantity: int) -> "Money":
        return self.__mul__(quantity)

    def __gt__(self, other: "Money") -> bool:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return self.amount_minor > other.amount_minor

    def __ge__(self, other: "Money") -> bool:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return self.amount_minor >= other.amount_minor

    def __str__(self) -> str:
        """Return formatted string representation (e.g., '₹2,650.00 INR')."""
        symbol = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}.get(self.currency, "")
        return f"{symbol}{self.to_decimal():,.2f} {self.currency}"

    def is_zero(self) -> bool:
        """Check if amount is zero."""
        return self.amount_minor == 0


# ============================================================================
# Cart Snapshot
# ============================================================================


@dataclass(frozen=True)
class CartLine(ValueObject):
    """A single line of the cart as seen by checkout.

    Lines are owned by the cart store; checkout only reads them. Two lines
    are the same line when product, size and color all match.

    Attributes:
        product_id: Catalog product identifier.
        name: Product name for display.
        price_minor: Unit price in minor units.
        quantity: Number of units, at least 1.
        size: Selected size variant.
        color: Selected color variant.
        currency: Currency of the unit price.
    """

    product_id: int
    name: str
    price_minor: int
    quantity: int
    size: str = ""
    color: str = ""
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise InvalidQuantityError(self.quantity)
        if self.price_minor < 0:
            raise NegativeMoneyError(self.price_minor)
        object.__setattr__(self, "currency", self.currency.upper())

    @property
    def key(self) -> tuple[int, str, str]:
        """Uniqueness key of the line."""
        return (self.product_id, self.size, self.color)

    @property
    def unique_id(self) -> str:
        """Key rendered the way the cart store renders it."""
        return f"{self.product_id}-{self.size}-{self.color}"

    @property
    def unit_price(self) -> Money:
        return Money(amount_minor=self.price_minor, currency=self.currency)

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": self.price_minor,
            "quantity": self.quantity,
            "size": self.size,
            "color": self.color,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            product_id=int(data["product_id"]),
            name=data["name"],
            price_minor=int(data["price"]),
            quantity=int(data["quantity"]),
            size=data.get("size", ""),
            color=data.get("color", ""),
            currency=data.get("currency", DEFAULT_CURRENCY),
        )


@dataclass(frozen=True)
class CartSnapshot(ValueObject):
    """Read-only snapshot of the cart handed to checkout.

    Implements the cart provider interface checkout consumes: ``items``
    and ``get_total()``.

    Attributes:
        lines: Cart lines, unique by (product_id, size, color).
        currency: Currency every line is priced in.
    """

    lines: tuple[CartLine, ...] = ()
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        seen: set[tuple[int, str, str]] = set()
        for line in self.lines:
            if line.key in seen:
                raise DuplicateCartLineError(line.unique_id)
            if line.currency != self.currency:
                raise CurrencyMismatchError(self.currency, line.currency)
            seen.add(line.key)

    @classmethod
    def from_lines(
        cls, lines: Iterable[CartLine], currency: str = DEFAULT_CURRENCY
    ) -> Self:
        """Build a snapshot, merging lines that share a key.

        Quantities of repeated lines are summed, the way adding the same
        variant to the cart twice bumps its quantity.
        """
        merged: dict[tuple[int, str, str], CartLine] = {}
        for line in lines:
            existing = merged.get(line.key)
            if existing is None:
                merged[line.key] = line
            else:
                merged[line.key] = replace(existing, quantity=existing.quantity + line.quantity)
        return cls(lines=tuple(merged.values()), currency=currency.upper())

    @property
    def items(self) -> list[CartLine]:
        return list(self.lines)

    def get_total(self) -> int:
        """Sum of price x quantity over all lines, in minor units."""
        return sum(line.price_minor * line.quantity for line in self.lines)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def is_empty(self) -> bool:
        return not self.lines


# ============================================================================
# Shipping Information
# ============================================================================


class AddressType(str, Enum):
    """Kind of delivery address."""

    HOME = "home"
    WORK = "work"


_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DIGITS_PATTERN = re.compile(r"^[0-9]+$")

SHIPPING_REQUIRED_FIELDS = ("name", "email", "phone", "address", "city", "state", "pincode")


@dataclass(frozen=True)
class ShippingInfo(ValueObject):
    """Contact and delivery details collected during checkout.

    Starts empty and is filled in field by field; every update returns
    a new value.
    """

    name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    address_type: AddressType = AddressType.HOME

    def __post_init__(self) -> None:
        if not isinstance(self.address_type, AddressType):
            object.__setattr__(self, "address_type", AddressType(self.address_type))

    @classmethod
    def empty(cls) -> Self:
        return cls()

    def update(self, **changes: Any) -> "ShippingInfo":
        """Return a copy with the given fields replaced.

        Raises:
            ValueError: If a field name is not part of shipping info.
        """
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown shipping fields: {sorted(unknown)}")
        cleaned = {
            key: value.strip() if isinstance(value, str) and key != "address_type" else value
            for key, value in changes.items()
        }
        return replace(self, **cleaned)

    def missing_fields(self) -> list[str]:
        return [name for name in SHIPPING_REQUIRED_FIELDS if not getattr(self, name).strip()]

    def invalid_fields(self) -> dict[str, str]:
        """Format problems for fields that are present."""
        problems: dict[str, str] = {}
        if self.email and not _EMAIL_PATTERN.match(self.email):
            problems["email"] = "Invalid email address"
        if self.phone:
            if not _DIGITS_PATTERN.match(self.phone):
                problems["phone"] = "Numbers only"
            elif len(self.phone) < 10:
                problems["phone"] = "Must be 10 digits"
        if self.pincode:
            if not _DIGITS_PATTERN.match(self.pincode):
                problems["pincode"] = "Numbers only"
            elif len(self.pincode) < 6:
                problems["pincode"] = "Invalid Pincode"
        return problems

    def is_complete(self) -> bool:
        return not self.missing_fields() and not self.invalid_fields()

    def validate(self) -> None:
        """Raise if any required field is missing or malformed.

        Raises:
            ShippingInfoIncompleteError: Listing the offending fields.
        """
        missing = self.missing_fields()
        invalid = self.invalid_fields()
        if missing or invalid:
            raise ShippingInfoIncompleteError(missing, invalid)

    def to_dict(self) -> dict[str, str]:
        data = {name: getattr(self, name) for name in SHIPPING_REQUIRED_FIELDS}
        data["address_type"] = self.address_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
