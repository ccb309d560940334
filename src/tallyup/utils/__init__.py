"""Utility functions for tallyup."""

from tallyup.utils.date_parser import parse_date, parse_month
from tallyup.utils.amount_parser import parse_amount, round_currency

__all__ = ["parse_date", "parse_month", "parse_amount", "round_currency"]
