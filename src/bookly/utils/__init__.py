"""Bookly utility helpers."""

from bookly.utils.amounts import AMOUNT_PATTERN, parse_amount

__all__ = ["AMOUNT_PATTERN", "parse_amount"]
