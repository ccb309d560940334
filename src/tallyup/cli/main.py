"""Main CLI entry point."""

import click
from tallyup.database.factories import create_sqlite_database
from tallyup.logging_setup import configure_logging

# Import and register all commands at module level
from tallyup.cli.commands import (
    account,
    amazon,
    import_cmd,
    period,
    recurring,
    rules,
    suggestions,
    sync,
    transaction,
    view,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides TALLYUP_DB_PATH environment variable)",
    envvar="TALLYUP_DB_PATH",
)
@click.option(
    "--log-level",
    help="Log level (DEBUG, INFO, WARNING, ERROR); defaults to WARNING",
    envvar="TALLYUP_LOG_LEVEL",
)
@click.pass_context
def cli(ctx, db_path: str | None, log_level: str | None):
    """Tallyup - Transaction reconciliation for personal finances.

    Import bank and credit card statements, sync feed batches and Amazon
    orders into monthly periods; detect transfers, link recurring bills and
    surface new recurring charges.
    """
    ctx.ensure_object(dict)
    configure_logging(log_level)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
period.register_commands(cli)
import_cmd.register_commands(cli)
sync.register_commands(cli)
recurring.register_commands(cli)
suggestions.register_commands(cli)
rules.register_commands(cli)
amazon.register_commands(cli)
transaction.register_commands(cli)
view.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
