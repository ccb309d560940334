"""CLI helpers for account and period resolution."""

from __future__ import annotations

import click
from tallyup.domain.account import AccountService
from tallyup.domain.entities import Period
from tallyup.domain.errors import DomainError
from tallyup.domain.period import PeriodService
from tallyup.utils.account_resolver import resolve_account
from tallyup.utils.date_parser import parse_month


def resolve_account_or_exit(
    ctx: click.Context, account_service: AccountService, account: str | int
) -> int:
    """Resolve account name or ID, or exit with a CLI error.

    This keeps error messaging and exit behavior consistent across commands.
    """
    try:
        return resolve_account(account_service, account)
    except DomainError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


def resolve_period_or_exit(ctx: click.Context, period_service: PeriodService, month: str) -> Period:
    """Resolve a YYYY-MM month to an existing period, or exit with a CLI error."""
    try:
        year, month_number = parse_month(month)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)
    period = period_service.find_period(year, month_number)
    if period is None:
        click.echo(f"Error: Period {month} not found. Create it with 'tallyup period create {month}'.", err=True)
        ctx.exit(1)
    return period
