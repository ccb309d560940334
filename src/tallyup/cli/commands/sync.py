"""Sync feed command."""

import json

import click
from tallyup.cli.account_resolution import resolve_account_or_exit
from tallyup.domain.account import AccountService
from tallyup.domain.errors import DomainError
from tallyup.domain.sync import SyncService, parse_sync_batch


@click.command("sync")
@click.argument("batch_file", type=click.File("r"))
@click.option("--account", required=True, help="Account name or ID the feed belongs to")
@click.pass_context
def sync_batch(ctx, batch_file, account: str):
    """Apply a feed batch (added, modified, removed events) from a JSON file.

    Examples:
        tallyup sync feed.json --account Chequing
        cat feed.json | tallyup sync - --account Chequing
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    try:
        batch = parse_sync_batch(json.load(batch_file))
        summary = SyncService(db).sync(account_id, batch)
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON: {e}", err=True)
        ctx.exit(1)
    except (DomainError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    click.echo("\nSync complete:")
    click.echo(f"  Added: {summary.added}")
    click.echo(f"  Modified: {summary.modified}")
    click.echo(f"  Removed: {summary.removed}")
    click.echo(f"  Duplicates skipped: {summary.duplicate}")
    click.echo(f"  Transfers ignored: {summary.transfer_ignored}")
    click.echo(f"  Ignored by rule: {summary.rule_ignored}")
    click.echo(f"  Recurring matched: {summary.recurring_matched}")
    if summary.malformed:
        click.echo(f"  Malformed events skipped: {summary.malformed}", err=True)


def register_commands(cli):
    """Register sync command with main CLI."""
    cli.add_command(sync_batch)
