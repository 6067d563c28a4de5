"""Tests for monetary helpers: major-unit conversion and basis-point math."""

from decimal import Decimal

import pytest

from campus_finance.services.errors import ValidationError
from campus_finance.services.money import (
    apply_bps,
    format_amount,
    require_positive,
    to_major_units,
    to_minor_units,
)


class TestToMinorUnits:

    def test_whole_amount(self):
        assert to_minor_units("125") == 12500

    def test_rounds_half_up_instead_of_truncating(self):
        assert to_minor_units("19.999") == 2000
        assert to_minor_units("10.005") == 1001
        assert to_minor_units(Decimal("0.004")) == 0

    def test_float_input_goes_through_str(self):
        assert to_minor_units(0.1) == 10

    @pytest.mark.parametrize("bad", ["abc", "", "NaN", "Infinity"])
    def test_rejects_garbage(self, bad):
        with pytest.raises(ValidationError):
            to_minor_units(bad)


class TestApplyBps:

    def test_five_percent(self):
        assert apply_bps(10000, 500) == 500

    def test_rounds_half_up(self):
        # 333 * 0.15% = 0.4995 -> 0 ; 3333 * 0.15% = 4.9995 -> 5
        assert apply_bps(333, 15) == 0
        assert apply_bps(3333, 15) == 5

    def test_full_and_zero_rate(self):
        assert apply_bps(987, 10000) == 987
        assert apply_bps(987, 0) == 0

    @pytest.mark.parametrize("bps", [-1, 10001])
    def test_rejects_out_of_range(self, bps):
        with pytest.raises(ValidationError):
            apply_bps(100, bps)


class TestFormatting:

    def test_major_units(self):
        assert to_major_units(12345) == Decimal("123.45")

    def test_format_amount(self):
        assert format_amount(123456) == "USD 1,234.56"
        assert format_amount(-50, "EUR") == "-EUR 0.50"


class TestRequirePositive:

    def test_accepts_positive_int(self):
        assert require_positive(1) == 1

    @pytest.mark.parametrize("value", [0, -5, 1.5, True])
    def test_rejects_non_positive_or_non_int(self, value):
        with pytest.raises(ValidationError):
            require_positive(value)
