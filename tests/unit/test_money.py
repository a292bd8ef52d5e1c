"""
Unit tests for Money and Currency.

Verifies:
- Decimal-only construction (floats go through str)
- Explicit half-up rounding to currency precision
- Currency mismatch detection on arithmetic and comparison
- Percent and ratio helpers used by the eligibility and metrics engines
"""

from decimal import Decimal

import pytest

from itc_kernel.domain.values import INR, Currency, Money, to_decimal
from itc_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError


class TestCurrency:
    """Currency code normalization and registry lookup."""

    def test_code_normalized(self):
        assert Currency(" inr ").code == "INR"

    def test_unknown_code_rejected(self):
        with pytest.raises(InvalidCurrencyError):
            Currency("XYZ")

    def test_decimal_places(self):
        assert INR.decimal_places == 2
        assert Currency("JPY").decimal_places == 0
        assert Currency("KWD").decimal_places == 3


class TestConstruction:
    def test_of_string(self):
        assert Money.of("100.50").amount == Decimal("100.50")

    def test_float_goes_through_str(self):
        """0.1 must not carry binary float artefacts."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_invalid_amount_raises(self):
        with pytest.raises(ValueError):
            Money.of("not a number")

    def test_string_currency_accepted(self):
        assert Money.of("1", "usd").currency == Currency("USD")

    def test_default_currency_is_inr(self):
        assert Money.zero().currency == INR


class TestArithmetic:
    def test_add_and_subtract(self):
        assert Money.of("100") + Money.of("50.25") == Money.of("150.25")
        assert Money.of("100") - Money.of("150") == Money.of("-50")

    def test_multiply_by_scalar(self):
        assert Money.of("1000") * 10 == Money.of("10000")
        assert 2 * Money.of("5") == Money.of("10")

    def test_divide_by_scalar(self):
        assert Money.of("1800") / 2 == Money.of("900")

    def test_sum_empty_is_zero(self):
        assert Money.sum([]).is_zero

    def test_sum_is_exact(self):
        values = [Money.of("0.1")] * 10
        assert Money.sum(values) == Money.of("1.0")

    def test_mixed_currency_add_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1") + Money.of("1", "USD")

    def test_mixed_currency_compare_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1") < Money.of("1", "USD")

    def test_sign_predicates(self):
        assert Money.of("0.01").is_positive
        assert Money.of("-0.01").is_negative
        assert Money.of("0.00").is_zero


class TestRounding:
    def test_half_up(self):
        assert Money.of("10.555").round() == Money.of("10.56")
        assert Money.of("10.554").round() == Money.of("10.55")

    def test_zero_decimal_currency(self):
        assert Money.of("100.5", "JPY").round().amount == Decimal("101")

    def test_no_automatic_rounding(self):
        third = Money.of("100") / 3
        assert third.amount != third.round().amount


class TestPercentAndRatio:
    def test_percent(self):
        assert Money.of("10000").percent(18) == Money.of("1800")

    def test_percent_fractional(self):
        assert Money.of("1000").percent("0.5") == Money.of("5")

    def test_ratio_to(self):
        assert Money.of("50").ratio_to(Money.of("200")) == Decimal("0.25")

    def test_ratio_to_zero_is_zero(self):
        assert Money.of("50").ratio_to(Money.zero()) == Decimal("0")
