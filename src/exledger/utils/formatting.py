"""Human-readable rendering of amounts and timestamps.

Used for display only; computations always work on the raw Decimals.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from exledger.domain.entities import Currency

_THOUSANDTHS = Decimal("0.001")


def format_number(amount: Union[Decimal, int]) -> str:
    """Format with thousands separators and 2 to 3 decimal places."""
    amount = Decimal(amount)
    rounded = abs(amount).quantize(_THOUSANDTHS, rounding=ROUND_HALF_UP)
    text = f"{rounded:,.3f}"
    if text.endswith("0"):
        text = text[:-1]
    sign = "-" if amount < 0 and rounded != 0 else ""
    return f"{sign}{text}"


def format_currency(amount: Union[Decimal, int], currency: Optional[Currency]) -> str:
    """Format an amount followed by its currency code, e.g. "1,234.50 LYD"."""
    if currency is None:
        return format_number(amount)
    return f"{format_number(amount)} {currency.value}"


def format_timestamp(value: datetime) -> str:
    """Format a timestamp to the minute."""
    return value.strftime("%Y-%m-%d %H:%M")


def format_percentage(ratio: Decimal) -> str:
    """Format a ratio such as 0.125 as "12.50%"."""
    return f"{(ratio * 100).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}%"
