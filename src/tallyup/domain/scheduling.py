"""Recurring schedule rules and date projection.

A scheduling rule is one of four shapes. Each shape is its own frozen
dataclass and ``SchedulingRule`` is their union; ``projected_dates`` handles
every shape explicitly.

Weekdays follow ``date.weekday()``: Monday is 0, Sunday is 6.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Union

from tallyup.domain.errors import ValidationError
from tallyup.utils.date_parser import days_in_month, month_bounds, parse_date


@dataclass(frozen=True)
class MonthlySchedule:
    """Once a month on a fixed day (clamped to the month length)."""

    day_of_month: int
    nearest_business_day: bool = False


@dataclass(frozen=True)
class WeeklySchedule:
    """Every week on a weekday."""

    weekday: int


@dataclass(frozen=True)
class BiweeklySchedule:
    """Every 14 days starting at an anchor date."""

    anchor_date: date
    weekday: int


@dataclass(frozen=True)
class TwiceMonthlySchedule:
    """Twice a month on two fixed days."""

    first_day: int
    second_day: int
    nearest_business_day: bool = False


SchedulingRule = Union[MonthlySchedule, WeeklySchedule, BiweeklySchedule, TwiceMonthlySchedule]


def nearest_business_day(value: date) -> date:
    """Move a weekend date back to the preceding Friday."""
    if value.weekday() == 5:
        return value - timedelta(days=1)
    if value.weekday() == 6:
        return value - timedelta(days=2)
    return value


def _clamped(year: int, month: int, day: int) -> date:
    return date(year, month, max(1, min(day, days_in_month(year, month))))


def _weekdays_in_month(year: int, month: int, weekday: int) -> list[date]:
    first, last = month_bounds(year, month)
    offset = (weekday - first.weekday()) % 7
    current = first + timedelta(days=offset)
    dates = []
    while current <= last:
        dates.append(current)
        current += timedelta(days=7)
    return dates


def projected_dates(rule: SchedulingRule, year: int, month: int) -> list[date]:
    """Return the dates a rule falls on within a calendar month.

    Args:
        rule: Scheduling rule
        year: Period year
        month: Period month (1-12)

    Returns:
        Sorted list of dates inside the month

    Raises:
        ValidationError: If the rule is not a known schedule shape
    """
    if isinstance(rule, MonthlySchedule):
        projected = _clamped(year, month, rule.day_of_month)
        if rule.nearest_business_day:
            projected = nearest_business_day(projected)
        return [projected]

    if isinstance(rule, WeeklySchedule):
        return _weekdays_in_month(year, month, rule.weekday)

    if isinstance(rule, BiweeklySchedule):
        return [
            day
            for day in _weekdays_in_month(year, month, rule.weekday)
            if day >= rule.anchor_date and (day - rule.anchor_date).days % 14 == 0
        ]

    if isinstance(rule, TwiceMonthlySchedule):
        dates = []
        for day_number in (rule.first_day, rule.second_day):
            projected = _clamped(year, month, day_number)
            if rule.nearest_business_day:
                projected = nearest_business_day(projected)
            if projected not in dates:
                dates.append(projected)
        return sorted(dates)

    raise ValidationError(f"Unknown scheduling rule: {rule!r}")


def rule_to_dict(rule: SchedulingRule) -> dict[str, Any]:
    """Serialize a rule for storage in a JSON column."""
    if isinstance(rule, MonthlySchedule):
        return {
            "type": "monthly",
            "day_of_month": rule.day_of_month,
            "nearest_business_day": rule.nearest_business_day,
        }
    if isinstance(rule, WeeklySchedule):
        return {"type": "weekly", "weekday": rule.weekday}
    if isinstance(rule, BiweeklySchedule):
        return {
            "type": "biweekly",
            "anchor_date": rule.anchor_date.isoformat(),
            "weekday": rule.weekday,
        }
    if isinstance(rule, TwiceMonthlySchedule):
        return {
            "type": "twice_monthly",
            "first_day": rule.first_day,
            "second_day": rule.second_day,
            "nearest_business_day": rule.nearest_business_day,
        }
    raise ValidationError(f"Unknown scheduling rule: {rule!r}")


def rule_from_dict(data: dict[str, Any]) -> SchedulingRule:
    """Rebuild a rule from its stored form.

    Raises:
        ValidationError: If the type is unknown or fields are missing
    """
    rule_type = (data or {}).get("type")
    try:
        if rule_type == "monthly":
            return MonthlySchedule(
                day_of_month=int(data["day_of_month"]),
                nearest_business_day=bool(data.get("nearest_business_day", False)),
            )
        if rule_type == "weekly":
            return WeeklySchedule(weekday=int(data["weekday"]))
        if rule_type == "biweekly":
            return BiweeklySchedule(
                anchor_date=parse_date(data["anchor_date"]),
                weekday=int(data["weekday"]),
            )
        if rule_type == "twice_monthly":
            return TwiceMonthlySchedule(
                first_day=int(data["first_day"]),
                second_day=int(data["second_day"]),
                nearest_business_day=bool(data.get("nearest_business_day", False)),
            )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {rule_type} scheduling rule: {e}")
    raise ValidationError(f"Unknown scheduling rule type '{rule_type}'")


def frequency_of(rule: SchedulingRule) -> str:
    """Return the frequency label stored alongside a rule."""
    return rule_to_dict(rule)["type"]
