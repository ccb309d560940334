"""Date parsing and calendar-month utilities."""

import calendar
import re
from datetime import date, datetime, timedelta
from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_MONTH = re.compile(r"^(\d{4})-(\d{1,2})$")


def parse_date(date_str: str) -> date:
    """Parse a date string into a date object.

    Supports:
    - ISO calendar dates: "2024-01-15" (parsed without any timezone shift)
    - Other absolute dates: "01/15/2024", "January 15, 2024", "2024-01-15T08:00:00Z"
    - A few relative dates: "today", "yesterday", "this month", "last month"

    Only the calendar date is kept; any time component is dropped.

    Args:
        date_str: Date string in various formats

    Returns:
        Date object

    Raises:
        ValueError: If date string cannot be parsed
    """
    if date_str is None or not str(date_str).strip():
        raise ValueError("Empty date string")

    date_str = str(date_str).strip().lower()
    today = date.today()

    relative_dates = {
        "today": today,
        "yesterday": today - timedelta(days=1),
        "this month": today.replace(day=1),
        "last month": (today - relativedelta(months=1)).replace(day=1),
    }
    if date_str in relative_dates:
        return relative_dates[date_str]

    match = _ISO_DATE.match(date_str)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError as e:
            raise ValueError(f"Could not parse date '{date_str}': {e}")

    try:
        dt = date_parser.parse(date_str)
        return dt.date()
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def parse_month(month_str: str) -> tuple[int, int]:
    """Parse a "YYYY-MM" string into a (year, month) tuple.

    Raises:
        ValueError: If the string is not a valid year-month
    """
    match = _MONTH.match((month_str or "").strip())
    if not match:
        raise ValueError(f"Invalid month '{month_str}', expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month '{month_str}', month must be 1-12")
    return year, month


def month_of(value: date) -> tuple[int, int]:
    """Return the (year, month) calendar bucket of a date."""
    return value.year, value.month


def month_index(value: date) -> int:
    """Return a monotonically increasing month number for a date."""
    return value.year * 12 + (value.month - 1)


def days_in_month(year: int, month: int) -> int:
    """Return the number of days in a calendar month."""
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last day of a calendar month."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def days_between(a: date, b: date) -> int:
    """Absolute number of calendar days between two dates."""
    return abs((a - b).days)


def coerce_date(value) -> date:
    """Return a plain date for a date, datetime or date string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(value)
