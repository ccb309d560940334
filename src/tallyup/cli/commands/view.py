"""Transaction viewing commands."""

import click
from tallyup.cli.account_resolution import resolve_account_or_exit, resolve_period_or_exit
from tallyup.domain.account import AccountService
from tallyup.domain.entities import TransactionStatus
from tallyup.domain.period import PeriodService
from tallyup.domain.transaction import TransactionService


@click.command("view")
@click.option("--month", metavar="YYYY-MM", help="Only this period")
@click.option("--account", help="Account name or ID")
@click.option("--show-ignored", is_flag=True, help="Include ignored transactions")
@click.option("--verbose", "-v", is_flag=True, help="Show notes, sub-descriptions and recurring links")
@click.pass_context
def view_transactions(ctx, month: str | None, account: str | None, show_ignored: bool, verbose: bool):
    """View transactions with optional filters.

    Projected placeholders are marked with '~' and pending ones with '?'.
    """
    db = ctx.obj["db"]
    account_service = AccountService(db)
    period_id = resolve_period_or_exit(ctx, PeriodService(db), month).id if month else None
    account_id = resolve_account_or_exit(ctx, account_service, account) if account else None

    transactions = TransactionService(db).list_transactions(
        period_id=period_id, account_id=account_id, include_ignored=show_ignored
    )
    if not transactions:
        click.echo("No transactions found.")
        return

    accounts = {acc.id: acc.name for acc in account_service.list_accounts()}
    markers = {TransactionStatus.PROJECTED: "~", TransactionStatus.PENDING: "?", TransactionStatus.POSTED: " "}

    click.echo(f"\nFound {len(transactions)} transaction(s):")
    click.echo(f"{'ID':>5}  {'Date':10}  {'Account':15}  {'Description':30}  {'Amount':>10}  Category")
    click.echo("-" * 100)
    total = 0
    for txn in transactions:
        account_name = accounts.get(txn.account_id, "-") if txn.account_id else "-"
        ignored = " [ignored]" if txn.is_ignored else ""
        click.echo(
            f"{txn.id:>5}{markers[txn.status]} {txn.date.isoformat()}  {account_name[:15]:15}  "
            f"{txn.description[:30]:30}  {txn.amount:>10.2f}  {txn.category}{ignored}"
        )
        if verbose:
            if txn.sub_description:
                click.echo(f"        {txn.sub_description}")
            if txn.recurring_definition_id:
                click.echo(f"        recurring definition {txn.recurring_definition_id}")
            if txn.notes:
                click.echo(f"        notes: {txn.notes}")
        if not txn.is_ignored and txn.status != TransactionStatus.PROJECTED:
            total += txn.amount
    click.echo("-" * 100)
    click.echo(f"Net spending: {total:.2f}")


def register_commands(cli):
    """Register view command with main CLI."""
    cli.add_command(view_transactions)
