"""Transaction management commands."""

import click
from tallyup.cli.account_resolution import resolve_account_or_exit
from tallyup.domain.account import AccountService
from tallyup.domain.entities import UNCATEGORIZED
from tallyup.domain.errors import DomainError
from tallyup.domain.transaction import TransactionService
from tallyup.utils.amount_parser import parse_amount
from tallyup.utils.date_parser import parse_date


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("add")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--date", "txn_date", required=True, help="Transaction date (YYYY-MM-DD or 'today', 'yesterday')")
@click.option("--amount", required=True, help="Amount; positive is money out")
@click.option("--description", required=True, help="Transaction description")
@click.option("--category", default=UNCATEGORIZED, show_default=True, help="Category")
@click.option("--notes", help="Notes")
@click.pass_context
def add_transaction(ctx, account: str, txn_date: str, amount: str, description: str, category: str, notes):
    """Add a manual transaction.

    Examples:
        tallyup transaction add --account Chequing --date today --amount 20 --description "Cash"
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    try:
        transaction_id = TransactionService(db).create_transaction(
            account_id=account_id,
            date=parse_date(txn_date),
            amount=parse_amount(amount),
            description=description,
            category=category,
            notes=notes,
        )
    except (DomainError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Created transaction {transaction_id}")


@transaction_group.command("categorize")
@click.argument("transaction_id", type=int)
@click.argument("category", required=False)
@click.pass_context
def categorize(ctx, transaction_id: int, category: str | None):
    """Set a transaction's category (omit CATEGORY to reset it)."""
    try:
        TransactionService(ctx.obj["db"]).update_category(transaction_id, category)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Transaction {transaction_id} set to {category or UNCATEGORIZED}")


@transaction_group.command("notes")
@click.argument("transaction_id", type=int)
@click.argument("notes", required=False)
@click.pass_context
def set_notes(ctx, transaction_id: int, notes: str | None):
    """Set or clear a transaction's notes."""
    try:
        TransactionService(ctx.obj["db"]).update_notes(transaction_id, notes)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Updated notes of transaction {transaction_id}")


@transaction_group.command("ignore")
@click.argument("transaction_id", type=int)
@click.option("--undo", is_flag=True, help="Stop ignoring the transaction")
@click.pass_context
def ignore_transaction(ctx, transaction_id: int, undo: bool):
    """Exclude a transaction from totals and matching."""
    try:
        TransactionService(ctx.obj["db"]).set_ignored(transaction_id, not undo)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Transaction {transaction_id} {'no longer ignored' if undo else 'ignored'}")


@transaction_group.command("delete")
@click.argument("transaction_id", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_transaction(ctx, transaction_id: int, yes: bool):
    """Delete a transaction."""
    service = TransactionService(ctx.obj["db"])
    try:
        txn = service.get_transaction(transaction_id)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    if not yes and not click.confirm(
        f"Delete transaction {transaction_id} ({txn.date.isoformat()} {txn.description} {txn.amount:.2f})?"
    ):
        click.echo("Deletion cancelled.")
        return
    service.delete_transaction(transaction_id)
    click.echo(f"Deleted transaction {transaction_id}")


def register_commands(cli):
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
