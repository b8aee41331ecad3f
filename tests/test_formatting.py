"""
Tests for shared formatting helpers.
"""

import pytest

from paygate.formatting import (
    amount_in_dollars,
    expdate,
    format_number,
    localized_amount,
    strftime_yyyymm,
    strftime_yyyymmdd_last_day,
    truncate,
    validate_amount,
    validate_currency_code,
)
from paygate.models import CreditCard


class TestFormatNumber:

    @pytest.mark.parametrize(
        "number,option,expected",
        [
            (2005, "two_digits", "05"),
            (5, "two_digits", "05"),
            (5, "four_digits", "0005"),
            (30, "four_digits_year", "2030"),
            (2030, "four_digits_year", "2030"),
            (None, "two_digits", ""),
            ("", "four_digits", ""),
            (7, "unknown", "7"),
        ],
    )
    def test_format_number(self, number, option, expected):
        assert format_number(number, option) == expected


class TestCardDates:

    def test_card_dates(self):
        card = CreditCard(number="4242424242424242", month=2, year=2028)
        assert expdate(card) == "0228"
        assert strftime_yyyymm(card) == "202802"
        assert strftime_yyyymmdd_last_day(card) == "20280229"


class TestAmounts:

    def test_localized_amount(self):
        assert localized_amount(1000, "USD") == 1000
        assert localized_amount(1000, "jpy") == 10

    def test_amount_in_dollars(self):
        assert amount_in_dollars(1000) == "10.00"
        assert amount_in_dollars(1) == "0.01"
        assert amount_in_dollars(0) == "0.00"

    def test_validate_amount(self):
        assert validate_amount(0) is True
        assert validate_amount(1000) is True
        assert validate_amount(-1) is False
        assert validate_amount(10.0) is False
        assert validate_amount(True) is False

    def test_validate_currency_code(self):
        assert validate_currency_code("USD") is True
        assert validate_currency_code("usd") is False
        assert validate_currency_code("US") is False
        assert validate_currency_code(123) is False

    def test_truncate(self):
        assert truncate("abcdef", 3) == "abc"
        assert truncate(None, 3) is None
