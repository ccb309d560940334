"""Recurring suggestion commands."""

import click
from tallyup.cli.schedule_options import build_schedule, schedule_options
from tallyup.domain.errors import DomainError
from tallyup.domain.suggestions import SuggestionService


@click.group()
def suggestions_group():
    """Review charges that look recurring."""
    pass


@suggestions_group.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show each month's occurrence")
@click.pass_context
def list_suggestions(ctx, verbose: bool):
    """List recurring suggestions, most confident first."""
    service = SuggestionService(ctx.obj["db"])
    suggestions = service.list_suggestions()
    if not suggestions:
        click.echo("No recurring suggestions.")
        return

    for suggestion in suggestions:
        click.echo(
            f"[{suggestion.confidence:3d}] {suggestion.display_description}  "
            f"~{suggestion.amount_median:.2f} around day {suggestion.day_of_month_median:g} "
            f"({len(suggestion.months)} months)"
        )
        click.echo(f"      key: {suggestion.key}")
        if verbose:
            for month in suggestion.months:
                click.echo(f"      {month.date.isoformat()}  {month.amount:>10.2f}")


@suggestions_group.command("dismiss")
@click.argument("key")
@click.pass_context
def dismiss_suggestion(ctx, key: str):
    """Hide a suggestion for good."""
    service = SuggestionService(ctx.obj["db"])
    try:
        service.dismiss(key)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Dismissed suggestion {key}")


@suggestions_group.command("accept")
@click.argument("key")
@click.option("--category", required=True, help="Category for the new recurring definition")
@click.option("--label", "display_label", help="Display label")
@schedule_options
@click.pass_context
def accept_suggestion(ctx, key: str, category: str, display_label, monthly, twice_monthly, weekly, biweekly, business_day):
    """Turn a suggestion into a recurring definition.

    Without a schedule option the definition is monthly on the median day.
    """
    service = SuggestionService(ctx.obj["db"])
    try:
        definition_id = service.accept(
            key,
            category=category,
            schedule=build_schedule(monthly, twice_monthly, weekly, biweekly, business_day),
            display_label=display_label,
        )
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Created recurring definition {definition_id}")


def register_commands(cli):
    """Register suggestion commands with main CLI."""
    cli.add_command(suggestions_group, name="suggestions")
