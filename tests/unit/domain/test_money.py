"""Tests for src/domain/services/money.py"""

from decimal import Decimal

import pytest

from domain.services.money import (
    decimal_sum,
    half_minor_unit,
    minor_unit_digits,
    multiply,
    normalise_currency,
    round_minor,
    to_decimal,
    to_fixed_string,
)


class TestToDecimal:
    def test_parses_string(self):
        assert to_decimal("0.002") == Decimal("0.002")

    def test_accepts_int(self):
        assert to_decimal(5) == Decimal(5)

    def test_rejects_float(self):
        with pytest.raises(TypeError):
            to_decimal(0.1)

    def test_rejects_bool(self):
        with pytest.raises(TypeError):
            to_decimal(True)

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity", ""])
    def test_rejects_non_finite_or_garbage(self, raw):
        with pytest.raises(ValueError):
            to_decimal(raw)


class TestCurrency:
    def test_normalise_uppercases(self):
        assert normalise_currency(" inr ") == "INR"

    @pytest.mark.parametrize("code", ["IN", "INRR", "12A"])
    def test_normalise_rejects_bad_codes(self, code):
        with pytest.raises(ValueError):
            normalise_currency(code)

    @pytest.mark.parametrize(
        "currency, digits",
        [("INR", 2), ("USD", 2), ("JPY", 0), ("KWD", 3)],
    )
    def test_minor_unit_digits(self, currency, digits):
        assert minor_unit_digits(currency) == digits


class TestRounding:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("1.005", "1.01"),
            ("1.004", "1.00"),
            ("2.675", "2.68"),
            ("0.125", "0.13"),
            ("10", "10.00"),
        ],
    )
    def test_half_up_to_paise(self, value, expected):
        assert round_minor(Decimal(value), "INR") == Decimal(expected)
        assert str(round_minor(Decimal(value), "INR")) == expected

    def test_yen_has_no_minor_unit(self):
        assert round_minor(Decimal("100.5"), "JPY") == Decimal("101")

    def test_half_minor_unit(self):
        assert half_minor_unit("INR") == Decimal("0.005")


class TestArithmetic:
    def test_multiply_keeps_full_precision(self):
        assert multiply(Decimal("0.0000001"), Decimal("3333333.33")) == Decimal("0.333333333")

    def test_decimal_sum_of_nothing_is_zero(self):
        assert decimal_sum([]) == Decimal("0")

    def test_decimal_sum_is_exact(self):
        assert decimal_sum([Decimal("0.1")] * 10) == Decimal("1.0")

    def test_to_fixed_string(self):
        assert to_fixed_string(Decimal("20"), 2) == "20.00"
        assert to_fixed_string(Decimal("0.002"), 8) == "0.00200000"
