"""Tests for exact decimal money arithmetic."""

from decimal import Decimal

import pytest

from app.core import money


class TestToDecimal:
    def test_none_is_zero(self):
        assert money.to_decimal(None) == Decimal("0")

    def test_int_and_str(self):
        assert money.to_decimal(5) == Decimal("5")
        assert money.to_decimal("0.21") == Decimal("0.21")

    def test_decimal_passthrough(self):
        value = Decimal("12.3400")
        assert money.to_decimal(value) is value

    def test_float_rejected(self):
        with pytest.raises(TypeError, match="float"):
            money.to_decimal(0.1)  # type: ignore[arg-type]

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            money.to_decimal(True)

    def test_invalid_string(self):
        with pytest.raises(ValueError, match="Invalid monetary value"):
            money.to_decimal("ten euros")


class TestArithmetic:
    def test_add(self):
        assert money.add("0.1", "0.2") == Decimal("0.3")

    def test_subtract(self):
        assert money.subtract(Decimal("100"), "0.01") == Decimal("99.99")

    def test_multiply(self):
        assert money.multiply(15000, "0.21") == Decimal("3150.00")

    def test_none_operands_count_as_zero(self):
        assert money.add(None, 5) == Decimal("5")
        assert money.multiply(None, 5) == Decimal("0")

    def test_sum_amounts(self):
        assert money.sum_amounts(["0.1"] * 10) == Decimal("1.0")

    def test_sum_amounts_empty(self):
        assert money.sum_amounts([]) == Decimal("0")

    def test_divide(self):
        assert money.divide("10", 4) == Decimal("2.5")

    def test_divide_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            money.divide("10", 0)


class TestQuantize:
    def test_default_scale(self):
        assert str(money.quantize("1.23456")) == "1.2346"

    def test_half_up(self):
        assert money.quantize("0.00005") == Decimal("0.0001")
        assert money.quantize("2.5", places=0) == Decimal("3")

    def test_explicit_places(self):
        assert str(money.quantize("10", places=2)) == "10.00"
