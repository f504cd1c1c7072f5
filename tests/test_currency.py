"""
Tests for currency and money handling
"""

import pytest
from decimal import Decimal

from core_payments.currency import Money, Currency, format_minor_units, parse_amount


class TestMoney:
    """Test Money arithmetic and conversion"""

    def test_rounds_to_currency_precision(self):
        assert Money(Decimal("10.005"), Currency.ZAR).amount == Decimal("10.01")
        assert Money(Decimal("10.4"), Currency.JPY).amount == Decimal("10")

    def test_minor_unit_conversion(self):
        money = Money.from_minor_units(25000, Currency.ZAR)
        assert money.amount == Decimal("250.00")
        assert money.to_minor_units() == 25000
        assert Money.from_minor_units(500, Currency.JPY).to_minor_units() == 500

    def test_arithmetic_requires_same_currency(self):
        a = Money(Decimal("1.00"), Currency.ZAR)
        b = Money(Decimal("2.50"), Currency.ZAR)
        assert (a + b).amount == Decimal("3.50")
        assert (b - a).amount == Decimal("1.50")

        with pytest.raises(ValueError):
            a + Money(Decimal("1.00"), Currency.USD)

    def test_formatting(self):
        money = Money(Decimal("1500.5"), Currency.ZAR)
        assert money.format() == "R1,500.50"
        assert money.to_string() == "ZAR 1,500.50"
        assert money.plain() == "1500.50"
        assert (-money).format() == "R1,500.50"
        assert format_minor_units(-25000, Currency.ZAR) == "R250.00"


class TestParseAmount:
    """Test parsing user-supplied amounts"""

    def test_valid_amounts(self):
        assert parse_amount("250", Currency.ZAR).to_minor_units() == 25000
        assert parse_amount(" 250.5 ", Currency.ZAR).to_minor_units() == 25050
        assert parse_amount("0.01", Currency.ZAR).to_minor_units() == 1

    @pytest.mark.parametrize("value", ["", "abc", "1,000", "1e3", "12.", "R100"])
    def test_malformed_amounts_rejected(self, value):
        with pytest.raises(ValueError):
            parse_amount(value, Currency.ZAR)

    def test_excess_precision_rejected(self):
        with pytest.raises(ValueError):
            parse_amount("10.005", Currency.ZAR)
        with pytest.raises(ValueError):
            parse_amount("10.5", Currency.JPY)

    def test_amount_beyond_decimal_precision_rejected(self):
        with pytest.raises(ValueError):
            parse_amount("1" + "0" * 30, Currency.ZAR)
        with pytest.raises(ValueError):
            parse_amount("0." + "1" * 40, Currency.ZAR)
