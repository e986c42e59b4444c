"""Utility functions for exledger."""

from exledger.utils.date_parser import parse_date, get_date_range
from exledger.utils.amount_parser import parse_amount, parse_currency, parse_rate, parse_split
from exledger.utils.formatting import format_currency, format_timestamp

__all__ = [
    "parse_date",
    "get_date_range",
    "parse_amount",
    "parse_currency",
    "parse_rate",
    "parse_split",
    "format_currency",
    "format_timestamp",
]
