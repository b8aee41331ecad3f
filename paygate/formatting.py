"""Formatting helpers shared by adapters: card dates, amounts and field limits."""

import calendar
from decimal import Decimal
from typing import Any, Optional, Union

CURRENCIES_WITHOUT_FRACTIONS = frozenset(
    "BIF CLP DJF GNF JPY KMF KRW MGA PYG RWF VND VUV XAF XOF XPF UGX".split()
)


def format_number(number: Optional[Union[int, str]], option: str) -> str:
    """Format numerical card information.

        format_number(2005, "two_digits")  # => "05"
        format_number(5, "four_digits")    # => "0005"
    """
    if number is None or str(number).strip() == "":
        return ""

    if option == "two_digits":
        return f"{int(number):02d}"[-2:]
    if option == "four_digits":
        return f"{int(number):04d}"[-4:]
    if option == "four_digits_year":
        text = str(number)
        return "20" + text if len(text) == 2 else format_number(number, "four_digits")
    return str(number)


def expdate(card: Any) -> str:
    """MMYY expiration date."""
    return format_number(card.month, "two_digits") + format_number(card.year, "two_digits")


def strftime_yyyymm(card: Any) -> str:
    return format_number(card.year, "four_digits") + format_number(card.month, "two_digits")


def strftime_yyyymmdd_last_day(card: Any) -> str:
    year, month = int(card.year), int(card.month)
    last_day = calendar.monthrange(year, month)[1]
    return (
        format_number(year, "four_digits")
        + format_number(month, "two_digits")
        + format_number(last_day, "two_digits")
    )


def localized_amount(money: int, currency: str) -> int:
    """Amount in the currency's smallest unit as the processor expects it.

    ``money`` is always in cents; zero-decimal currencies drop the fraction.
    """
    if currency.upper() in CURRENCIES_WITHOUT_FRACTIONS:
        return int(Decimal(money) / 100)
    return int(money)


def amount_in_dollars(money: int) -> str:
    """Cents rendered as a two-decimal string, e.g. ``1000`` -> ``"10.00"``."""
    return f"{Decimal(money) / 100:.2f}"


def truncate(value: Optional[str], max_length: int) -> Optional[str]:
    if value is None:
        return None
    return str(value)[:max_length]


def validate_currency_code(currency: Any) -> bool:
    """Three upper-case letters, e.g. ``"USD"``."""
    return isinstance(currency, str) and len(currency) == 3 and currency.isalpha() and currency.isupper()


def validate_amount(money: Any) -> bool:
    """A non-negative integer amount in cents."""
    return isinstance(money, int) and not isinstance(money, bool) and money >= 0
