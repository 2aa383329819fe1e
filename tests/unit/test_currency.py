"""
Tests for currency validation and minor-unit precision.

- Only registry codes are accepted, normalised to uppercase.
- Rounding precision comes from the currency, never a fixed constant.
"""

from decimal import Decimal

import pytest

from pricing_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from pricing_kernel.domain.values import Currency, Money
from pricing_kernel.exceptions import InvalidCurrencyError


class TestCurrencyRegistry:
    """Tests for the supported currency registry."""

    def test_supported_codes(self):
        for code in ["USD", "EUR", "GBP", "CAD", "AUD", "CHF", "JPY"]:
            assert CurrencyRegistry.is_valid(code)

    def test_unknown_code_rejected(self):
        assert not CurrencyRegistry.is_valid("XYZ")
        assert CurrencyRegistry.get_info("XYZ") is None

    def test_symbols(self):
        assert CurrencyRegistry.get_symbol("EUR") == "€"
        assert CurrencyRegistry.get_symbol("GBP") == "£"
        assert CurrencyRegistry.get_symbol("CAD") == "C$"

    def test_symbol_falls_back_to_code(self):
        assert CurrencyRegistry.get_symbol("XYZ") == "XYZ"

    def test_decimal_places(self):
        assert CurrencyRegistry.get_decimal_places("USD") == 2
        assert CurrencyRegistry.get_decimal_places("JPY") == 0

    def test_quantum_derived_from_places(self):
        assert CurrencyInfo("TST", 2, "Test", "T").quantum == Decimal("0.01")
        assert CurrencyInfo("TST", 3, "Test", "T").quantum == Decimal("0.001")
        assert CurrencyInfo("TST", 0, "Test", "T").quantum == Decimal("1")

    def test_all_codes(self):
        assert "EUR" in CurrencyRegistry.all_codes()


class TestCurrencyValueObject:
    """Tests for Currency construction."""

    def test_lowercase_normalized(self):
        assert Currency("eur").code == "EUR"

    def test_whitespace_trimmed(self):
        assert Currency(" usd ").code == "USD"

    def test_invalid_code_raises(self):
        with pytest.raises(InvalidCurrencyError) as exc_info:
            Currency("EURO")
        assert exc_info.value.currency == "EURO"
        assert exc_info.value.code == "INVALID_CURRENCY"

    def test_empty_code_raises(self):
        with pytest.raises(InvalidCurrencyError):
            Currency("")

    def test_equality_by_code(self):
        assert Currency("gbp") == Currency("GBP")

    def test_str(self):
        assert str(Currency("CHF")) == "CHF"


class TestPrecisionFromCurrency:
    """Rounding follows each currency's minor units."""

    def test_two_decimal_currency(self):
        assert Money.of("10.005", "EUR").round().amount == Decimal("10.01")

    def test_zero_decimal_currency(self):
        assert Money.of("1234.5", "JPY").round().amount == Decimal("1235")
