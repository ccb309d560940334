"""Shared click options for recurring schedules."""

from typing import Optional

import click
from tallyup.domain.errors import ValidationError
from tallyup.domain.scheduling import (
    BiweeklySchedule,
    MonthlySchedule,
    SchedulingRule,
    TwiceMonthlySchedule,
    WeeklySchedule,
)
from tallyup.utils.date_parser import parse_date

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def schedule_options(func):
    """Add the mutually exclusive schedule options to a command."""
    options = [
        click.option("--monthly", "monthly", type=click.IntRange(1, 31), metavar="DAY", help="Monthly on DAY"),
        click.option(
            "--twice-monthly", "twice_monthly", metavar="DAY,DAY", help="Twice a month, e.g. '1,15'"
        ),
        click.option("--weekly", "weekly", type=click.Choice(WEEKDAYS), help="Every week on a weekday"),
        click.option(
            "--biweekly", "biweekly", metavar="YYYY-MM-DD", help="Every 14 days starting at an anchor date"
        ),
        click.option(
            "--business-day", is_flag=True, help="Move weekend dates back to Friday (monthly schedules)"
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_schedule(
    monthly: Optional[int],
    twice_monthly: Optional[str],
    weekly: Optional[str],
    biweekly: Optional[str],
    business_day: bool,
) -> Optional[SchedulingRule]:
    """Turn schedule option values into a rule (None when none was given).

    Raises:
        ValidationError: If more than one schedule is given or a value is invalid
    """
    given = [v for v in (monthly, twice_monthly, weekly, biweekly) if v is not None]
    if not given:
        return None
    if len(given) > 1:
        raise ValidationError("Choose only one of --monthly, --twice-monthly, --weekly, --biweekly")

    if monthly is not None:
        return MonthlySchedule(day_of_month=monthly, nearest_business_day=business_day)
    if twice_monthly is not None:
        try:
            first, second = (int(part) for part in twice_monthly.split(","))
        except ValueError:
            raise ValidationError(f"Invalid --twice-monthly '{twice_monthly}', expected DAY,DAY")
        return TwiceMonthlySchedule(first_day=first, second_day=second, nearest_business_day=business_day)
    if weekly is not None:
        return WeeklySchedule(weekday=WEEKDAYS.index(weekly))
    try:
        anchor = parse_date(biweekly)
    except ValueError as e:
        raise ValidationError(str(e))
    return BiweeklySchedule(anchor_date=anchor, weekday=anchor.weekday())


def describe_schedule(rule: SchedulingRule) -> str:
    """Short human description of a rule."""
    if isinstance(rule, MonthlySchedule):
        suffix = " (business day)" if rule.nearest_business_day else ""
        return f"monthly on day {rule.day_of_month}{suffix}"
    if isinstance(rule, TwiceMonthlySchedule):
        return f"twice monthly on days {rule.first_day} and {rule.second_day}"
    if isinstance(rule, WeeklySchedule):
        return f"weekly on {WEEKDAYS[rule.weekday]}"
    return f"biweekly from {rule.anchor_date.isoformat()}"
