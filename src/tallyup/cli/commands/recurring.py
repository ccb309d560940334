"""Recurring definition commands."""

from decimal import Decimal

import click
from tallyup.cli.account_resolution import resolve_period_or_exit
from tallyup.cli.schedule_options import build_schedule, describe_schedule, schedule_options
from tallyup.domain.errors import DomainError
from tallyup.domain.period import PeriodService
from tallyup.domain.recurring import RecurringService
from tallyup.utils.amount_parser import parse_amount


@click.group()
def recurring_group():
    """Manage recurring bills and income."""
    pass


@recurring_group.command("add")
@click.argument("merchant_label")
@click.argument("amount")
@click.option("--category", required=True, help="Category given to matched transactions")
@click.option("--label", "display_label", help="Display label shown instead of the merchant label")
@schedule_options
@click.pass_context
def add_definition(
    ctx,
    merchant_label: str,
    amount: str,
    category: str,
    display_label: str | None,
    monthly,
    twice_monthly,
    weekly,
    biweekly,
    business_day,
):
    """Add a recurring definition and project it into open periods.

    MERCHANT_LABEL is matched against statement descriptions. AMOUNT is the
    expected charge; use the Income category for deposits.

    Examples:
        tallyup recurring add NETFLIX 16.99 --category Subscriptions --monthly 3
        tallyup recurring add "ACME PAYROLL" 2450 --category Income --twice-monthly 15,30
    """
    service = RecurringService(ctx.obj["db"])
    try:
        schedule = build_schedule(monthly, twice_monthly, weekly, biweekly, business_day)
        if schedule is None:
            raise ValueError("A schedule is required (--monthly, --twice-monthly, --weekly or --biweekly)")
        definition_id = service.create_definition(
            merchant_label=merchant_label,
            nominal_amount=parse_amount(amount),
            schedule=schedule,
            category=category,
            display_label=display_label,
        )
    except (DomainError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Created recurring definition {definition_id} ({describe_schedule(schedule)})")


@recurring_group.command("list")
@click.option("--active-only", is_flag=True, help="Hide inactive definitions")
@click.pass_context
def list_definitions(ctx, active_only: bool):
    """List recurring definitions."""
    service = RecurringService(ctx.obj["db"])
    definitions = service.list_definitions(active_only=active_only)
    if not definitions:
        click.echo("No recurring definitions found.")
        return

    click.echo(f"{'ID':>4}  {'Label':25}  {'Amount':>10}  {'Category':15}  Schedule")
    click.echo("-" * 80)
    for definition in definitions:
        inactive = " (inactive)" if not definition.active else ""
        click.echo(
            f"{definition.id:>4}  {definition.label[:25]:25}  {definition.nominal_amount:>10.2f}  "
            f"{definition.category[:15]:15}  {describe_schedule(definition.schedule)}{inactive}"
        )


@recurring_group.command("update")
@click.argument("definition_id", type=int)
@click.option("--merchant-label", help="New merchant label")
@click.option("--amount", help="New nominal amount")
@click.option("--category", help="New category")
@click.option("--label", "display_label", help="New display label (empty to clear)")
@click.option("--active/--inactive", default=None, help="Activate or deactivate")
@schedule_options
@click.pass_context
def update_definition(
    ctx,
    definition_id: int,
    merchant_label,
    amount,
    category,
    display_label,
    active,
    monthly,
    twice_monthly,
    weekly,
    biweekly,
    business_day,
):
    """Update a recurring definition and rebuild its projections."""
    service = RecurringService(ctx.obj["db"])
    try:
        nominal: Decimal | None = parse_amount(amount) if amount is not None else None
        service.update_definition(
            definition_id,
            merchant_label=merchant_label,
            display_label=display_label,
            nominal_amount=nominal,
            schedule=build_schedule(monthly, twice_monthly, weekly, biweekly, business_day),
            category=category,
            active=active,
        )
    except (DomainError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Updated recurring definition {definition_id}")


@recurring_group.command("delete")
@click.argument("definition_id", type=int)
@click.pass_context
def delete_definition(ctx, definition_id: int):
    """Delete a definition; posted instances are kept but unlinked."""
    service = RecurringService(ctx.obj["db"])
    try:
        service.delete_definition(definition_id)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Deleted recurring definition {definition_id}")


@recurring_group.command("match")
@click.option("--month", required=True, metavar="YYYY-MM", help="Period to match")
@click.pass_context
def match_period(ctx, month: str):
    """Link already imported transactions of a month to recurring definitions."""
    db = ctx.obj["db"]
    period = resolve_period_or_exit(ctx, PeriodService(db), month)
    try:
        linked = RecurringService(db).match_existing_imports(period.id)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Linked {linked} transactions in {period.label}")


def register_commands(cli):
    """Register recurring commands with main CLI."""
    cli.add_command(recurring_group, name="recurring")
