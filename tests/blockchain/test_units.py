"""
Tests for amount conversion.
"""
from decimal import Decimal

import pytest

from tokenops.blockchain import format_ether, from_base_units, parse_ether, to_base_units
from tokenops.blockchain.units import parse_positive_amount
from tokenops.errors import ValidationError


class TestBaseUnits:

    @pytest.mark.parametrize("amount,decimals,expected", [
        ("1", 18, 10**18),
        ("1.5", 6, 1_500_000),
        ("0.000000000000000001", 18, 1),
        (Decimal("100"), 0, 100),
        (42, 2, 4200),
    ])
    def test_to_base_units(self, amount, decimals, expected):
        assert to_base_units(amount, decimals) == expected

    @pytest.mark.parametrize("value,decimals,expected", [
        (10**20, 18, "100"),
        (1_500_000, 6, "1.5"),
        (0, 18, "0"),
        ("1", 18, "0.000000000000000001"),
    ])
    def test_from_base_units(self, value, decimals, expected):
        assert from_base_units(value, decimals) == expected

    @pytest.mark.parametrize("amount", ["0", "1", "0.5", "123456789.123456789", "1000000"])
    def test_ether_round_trip(self, amount):
        assert format_ether(parse_ether(amount)) == amount

    def test_too_many_decimals(self):
        with pytest.raises(ValidationError):
            to_base_units("1.1234567", 6)

    @pytest.mark.parametrize("amount", ["abc", "-1", "NaN", "Infinity"])
    def test_invalid_amounts(self, amount):
        with pytest.raises(ValidationError):
            to_base_units(amount, 18)


class TestPositiveAmount:

    def test_accepts_positive(self):
        assert parse_positive_amount(" 2.5 ") == Decimal("2.5")

    @pytest.mark.parametrize("amount", ["0", "-3", "x", ""])
    def test_rejects(self, amount):
        with pytest.raises(ValidationError):
            parse_positive_amount(amount)
