"""Period management commands."""

import click
from tallyup.cli.account_resolution import resolve_period_or_exit
from tallyup.cli.error_handling import handle_domain_error
from tallyup.domain.errors import DomainError
from tallyup.domain.period import PeriodService
from tallyup.utils.date_parser import parse_month


@click.group()
def period_group():
    """Manage monthly periods."""
    pass


@period_group.command("create")
@click.argument("month", metavar="YYYY-MM")
@click.pass_context
def create_period(ctx, month: str):
    """Create a period and project active recurring definitions into it."""
    service = PeriodService(ctx.obj["db"])
    try:
        year, month_number = parse_month(month)
        period = service.create_period(year, month_number)
    except (DomainError, ValueError) as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created period {period.label} (ID: {period.id})")


@period_group.command("list")
@click.pass_context
def list_periods(ctx):
    """List all periods."""
    service = PeriodService(ctx.obj["db"])
    periods = service.list_periods()
    if not periods:
        click.echo("No periods found.")
        return
    for period in periods:
        click.echo(f"ID: {period.id:3d} | {period.label} | {period.status.value}")


@period_group.command("lock")
@click.argument("month", metavar="YYYY-MM")
@click.pass_context
def lock_period(ctx, month: str):
    """Lock a period so new definitions are no longer projected into it."""
    service = PeriodService(ctx.obj["db"])
    period = resolve_period_or_exit(ctx, service, month)
    service.lock_period(period.id)
    click.echo(f"Locked period {period.label}")


def register_commands(cli):
    """Register period commands with main CLI."""
    cli.add_command(period_group, name="period")
