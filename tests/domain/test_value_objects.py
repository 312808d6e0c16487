"""Tests for domain value objects."""

from decimal import Decimal

import pytest

from storefront.domain import (
    AddressType,
    AmountOutOfRangeError,
    CartLine,
    CartSnapshot,
    CurrencyMismatchError,
    DuplicateCartLineError,
    InvalidQuantityError,
    Money,
    NegativeMoneyError,
    ShippingInfo,
    ShippingInfoIncompleteError,
)


class TestMoney:
    """Tests for Money value object."""

    def test_create_money(self) -> None:
        money = Money(amount_minor=2500, currency="inr")
        assert money.amount_minor == 2500
        assert money.currency == "INR"

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(NegativeMoneyError):
            Money(amount_minor=-1)

    def test_from_float_multiplies_by_100(self) -> None:
        assert Money.from_float(25).amount_minor == 2500
        assert Money.from_float(19.99).amount_minor == 1999

    def test_from_float_zero_does_not_raise(self) -> None:
        assert Money.from_float(0).amount_minor == 0

    def test_from_decimal_rounds_half_up(self) -> None:
        assert Money.from_decimal(Decimal("499.995")).amount_minor == 50000
        assert Money.from_decimal(Decimal("0.004")).amount_minor == 0

    @pytest.mark.parametrize("amount", ["1e30", "Infinity", "-Infinity", "NaN"])
    def test_from_decimal_out_of_range(self, amount: str) -> None:
        with pytest.raises(AmountOutOfRangeError):
            Money.from_decimal(Decimal(amount))

    def test_from_float_out_of_range(self) -> None:
        with pytest.raises(AmountOutOfRangeError):
            Money.from_float(1e30)

    def test_add(self) -> None:
        assert Money(1000) + Money(500) == Money(1500)

    def test_add_different_currencies_fails(self) -> None:
        with pytest.raises(CurrencyMismatchError):
            Money(1000, "INR") + Money(500, "USD")

    def test_multiply(self) -> None:
        assert Money(1000) * 3 == Money(3000)
        assert 2 * Money(1000) == Money(2000)

    def test_comparison(self) -> None:
        assert Money(1001) > Money(1000)
        assert Money(1000) >= Money(1000)

    def test_str_formats_with_symbol(self) -> None:
        assert str(Money(265000)) == "₹2,650.00 INR"

    def test_to_decimal(self) -> None:
        assert Money(1999).to_decimal() == Decimal("19.99")


class TestCartLine:
    """Tests for CartLine."""

    def test_quantity_must_be_positive(self) -> None:
        with pytest.raises(InvalidQuantityError):
            CartLine(product_id=1, name="Tee", price_minor=100, quantity=0)

    def test_negative_price_rejected(self) -> None:
        with pytest.raises(NegativeMoneyError):
            CartLine(product_id=1, name="Tee", price_minor=-100, quantity=1)

    def test_key_and_unique_id(self, shirt: CartLine) -> None:
        assert shirt.key == (7, "M", "white")
        assert shirt.unique_id == "7-M-white"

    def test_line_total(self, shirt: CartLine) -> None:
        line = CartLine(product_id=7, name="Linen Shirt", price_minor=129900, quantity=3)
        assert line.line_total == Money(389700)

    def test_dict_round_trip(self, shirt: CartLine) -> None:
        assert CartLine.from_dict(shirt.to_dict()) == shirt


class TestCartSnapshot:
    """Tests for CartSnapshot."""

    def test_items_and_get_total(self, shirt: CartLine, jeans: CartLine) -> None:
        cart = CartSnapshot.from_lines([shirt, jeans])
        assert cart.items == [shirt, jeans]
        assert cart.get_total() == 129900 + 199900
        assert cart.item_count == 2

    def test_from_lines_merges_same_variant(self, shirt: CartLine) -> None:
        cart = CartSnapshot.from_lines([shirt, shirt])
        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 2

    def test_other_variant_is_a_separate_line(self, shirt: CartLine) -> None:
        large = CartLine(product_id=7, name="Linen Shirt", price_minor=129900, quantity=1, size="L", color="white")
        cart = CartSnapshot.from_lines([shirt, large])
        assert len(cart.lines) == 2

    def test_direct_construction_rejects_duplicates(self, shirt: CartLine) -> None:
        with pytest.raises(DuplicateCartLineError):
            CartSnapshot(lines=(shirt, shirt))

    def test_currency_mismatch_rejected(self) -> None:
        usd = CartLine(product_id=1, name="Cap", price_minor=500, quantity=1, currency="USD")
        with pytest.raises(CurrencyMismatchError):
            CartSnapshot(lines=(usd,), currency="INR")

    def test_empty(self) -> None:
        assert CartSnapshot().is_empty()
        assert CartSnapshot().get_total() == 0


class TestShippingInfo:
    """Tests for ShippingInfo validation."""

    def test_empty_info_misses_every_field(self) -> None:
        info = ShippingInfo.empty()
        assert info.missing_fields() == [
            "name", "email", "phone", "address", "city", "state", "pincode",
        ]
        assert info.address_type == AddressType.HOME
        assert not info.is_complete()

    def test_update_returns_new_value(self) -> None:
        info = ShippingInfo.empty()
        updated = info.update(name="  Asha Rao ")
        assert info.name == ""
        assert updated.name == "Asha Rao"

    def test_update_rejects_unknown_fields(self) -> None:
        with pytest.raises(ValueError, match="Unknown shipping fields"):
            ShippingInfo.empty().update(street="12 MG Road")

    def test_complete_info_validates(self, complete_shipping: dict[str, str]) -> None:
        info = ShippingInfo.empty().update(**complete_shipping)
        assert info.is_complete()
        info.validate()

    @pytest.mark.parametrize(
        "field,value,problem",
        [
            ("email", "asha@example", "Invalid email address"),
            ("phone", "98765-43210", "Numbers only"),
            ("phone", "98765", "Must be 10 digits"),
            ("pincode", "5600AB", "Numbers only"),
            ("pincode", "5600", "Invalid Pincode"),
        ],
    )
    def test_format_problems(
        self, complete_shipping: dict[str, str], field: str, value: str, problem: str
    ) -> None:
        info = ShippingInfo(**{**complete_shipping, field: value})
        assert info.invalid_fields() == {field: problem}
        with pytest.raises(ShippingInfoIncompleteError) as exc_info:
            info.validate()
        assert exc_info.value.invalid == {field: problem}

    def test_validate_lists_missing_fields(self, complete_shipping: dict[str, str]) -> None:
        info = ShippingInfo(**{**complete_shipping, "city": "", "pincode": " "})
        with pytest.raises(ShippingInfoIncompleteError) as exc_info:
            info.validate()
        assert exc_info.value.missing == ["city", "pincode"]

    def test_address_type_from_string(self) -> None:
        assert ShippingInfo(address_type="work").address_type == AddressType.WORK

    def test_to_dict_and_from_dict(self, complete_shipping: dict[str, str]) -> None:
        info = ShippingInfo(**complete_shipping, address_type=AddressType.WORK)
        data = info.to_dict()
        assert data["address_type"] == "work"
        assert ShippingInfo.from_dict({**data, "ignored": "x"}) == info
