"""Amount and exchange-rate parsing utilities."""

import re
from decimal import Decimal, InvalidOperation

from exledger.domain.entities import Currency, RatePart


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a Decimal.

    Handles "123.45", "-123.45", "1,234.56", "(123.45)" (negative) and a
    trailing or leading currency code such as "1,000 LYD".

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    amount_str = amount_str.strip()

    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    amount_str = re.sub(r"\b[A-Za-z]{3}\b", "", amount_str)
    amount_str = amount_str.replace(",", "").strip()

    try:
        amount = Decimal(amount_str)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite, got '{amount_str}'")
    return -amount if is_negative else amount


def parse_currency(code: str) -> Currency:
    """Parse a currency code, case-insensitively."""
    try:
        return Currency(code.strip().upper())
    except ValueError:
        supported = ", ".join(c.value for c in Currency)
        raise ValueError(f"Unknown currency '{code}'. Supported: {supported}")


def _split_assignment(spec: str) -> tuple[Currency, str]:
    if "=" not in spec:
        raise ValueError(f"Expected CURRENCY=VALUE, got '{spec}'")
    code, value = spec.split("=", 1)
    return parse_currency(code), value.strip()


def parse_rate(spec: str) -> tuple[Currency, Decimal]:
    """Parse a single closing rate such as "USD=5.2"."""
    currency, value = _split_assignment(spec)
    return currency, parse_amount(value)


def parse_split(spec: str) -> tuple[Currency, tuple[RatePart, ...]]:
    """Parse a split allocation such as "USD=100@5.0,200@5.2".

    Each comma-separated part is AMOUNT@RATE.
    """
    currency, value = _split_assignment(spec)
    parts = []
    for chunk in value.split(","):
        if "@" not in chunk:
            raise ValueError(f"Expected AMOUNT@RATE in split for {currency.value}, got '{chunk}'")
        amount, rate = chunk.split("@", 1)
        parts.append(RatePart(amount=parse_amount(amount), rate=parse_amount(rate)))
    return currency, tuple(parts)
