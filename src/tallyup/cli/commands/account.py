"""Account management commands."""

import click
from tallyup.cli.account_resolution import resolve_account_or_exit
from tallyup.cli.error_handling import handle_domain_error
from tallyup.domain.account import AccountService
from tallyup.domain.csv_import import CSVImportService
from tallyup.domain.entities import AccountType
from tallyup.domain.errors import DomainError


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option(
    "--type",
    "account_type",
    type=click.Choice([t.value for t in AccountType]),
    default=AccountType.BANK.value,
    show_default=True,
    help="Account type",
)
@click.option("--last4", help="Last four digits of the card or account number")
@click.option("--alias", help="Name other statements use for this account (e.g. 'VISA')")
@click.option("--invert", is_flag=True, help="The institution reports amounts with the opposite sign")
@click.pass_context
def create_account(ctx, name: str, account_type: str, last4: str | None, alias: str | None, invert: bool):
    """Create a new account.

    Examples:
        tallyup account create "Chequing"
        tallyup account create "Visa" --type credit_card --last4 1234 --alias VISA
    """
    service = AccountService(ctx.obj["db"])
    try:
        account_id = service.create_account(
            name=name,
            account_type=AccountType(account_type),
            last4=last4,
            display_alias=alias,
            invert_amounts=invert,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created account '{name}' (ID: {account_id})")


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all accounts."""
    service = AccountService(ctx.obj["db"])

    accounts = service.list_accounts()
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 72)
    for acc in accounts:
        flags = " | inverted" if acc.invert_amounts else ""
        last4 = acc.last4 or "----"
        alias = acc.display_alias or ""
        click.echo(f"ID: {acc.id:3d} | {acc.name:20s} | {acc.type.value:11s} | {last4} | {alias}{flags}")


@account_group.command("invert")
@click.argument("account", metavar="ACCOUNT")
@click.option("--on/--off", "invert", default=True, help="Turn amount inversion on or off")
@click.pass_context
def invert_account(ctx, account: str, invert: bool) -> None:
    """Flip the sign convention of an account.

    Stored amounts and hashes of the account are rewritten so re-imports
    still deduplicate.

    ACCOUNT can be an account name or ID.
    """
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)
    try:
        changed = service.set_invert_amounts(account_id, invert)
        if not changed:
            click.echo("Nothing to do: flag already set.")
            return
        rewritten = CSVImportService(db).recompute_hashes(account_id, flip_amounts=True)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Amount inversion {'enabled' if invert else 'disabled'}; {rewritten} records rewritten")


@account_group.command("delete")
@click.argument("account", metavar="ACCOUNT")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_account(ctx, account: str, yes: bool) -> None:
    """Delete an account.

    ACCOUNT can be an account name or ID.

    The account can only be deleted if it has no transactions. Use
    'undo-import' to remove imported batches first.
    """
    service = AccountService(ctx.obj["db"])
    account_id = resolve_account_or_exit(ctx, service, account)
    account_obj = service.get_account(account_id)

    if not yes and not click.confirm(
        f"Are you sure you want to delete account '{account_obj.name}' (ID: {account_id})?"
    ):
        click.echo("Deletion cancelled.")
        return

    try:
        service.delete_account(account_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted account '{account_obj.name}'")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
