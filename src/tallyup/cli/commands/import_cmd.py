"""CSV import commands."""

import click
from tallyup.cli.account_resolution import resolve_account_or_exit, resolve_period_or_exit
from tallyup.domain.account import AccountService
from tallyup.domain.csv_import import IMPORT_MODES, CSVImportService
from tallyup.domain.errors import DomainError
from tallyup.domain.import_pipeline import ColumnMapping, ImportSummary
from tallyup.domain.period import PeriodService
from tallyup.utils.date_parser import parse_month


def echo_import_summary(summary: ImportSummary) -> None:
    """Print the counts of an import run."""
    click.echo("\nImport complete:")
    if summary.periods:
        click.echo(f"  Periods: {', '.join(summary.periods)}")
    click.echo(f"  Imported: {summary.imported} transactions")
    click.echo(f"  Duplicates skipped: {summary.duplicate}")
    click.echo(f"  Transfers ignored: {summary.transfer_ignored}")
    click.echo(f"  Ignored by rule: {summary.rule_ignored}")
    click.echo(f"  Outside period: {summary.out_of_period}")
    click.echo(f"  Recurring matched: {summary.recurring_matched}")
    click.echo(f"  Income merged: {summary.income_merged}")
    if summary.malformed:
        click.echo(f"  Malformed rows skipped: {summary.malformed}", err=True)
    if summary.batch_ids:
        click.echo(f"  Batch IDs: {', '.join(str(b) for b in summary.batch_ids)}")


@click.command("import")
@click.argument("csv_file", type=click.Path(exists=True))
@click.option("--account", required=True, help="Account name or ID the file belongs to")
@click.option(
    "--mode",
    type=click.Choice(IMPORT_MODES),
    default="auto",
    show_default=True,
    help="current: into --month only; specific: into --month, created if missing; auto: each row into its own month",
)
@click.option("--month", metavar="YYYY-MM", help="Target month for current and specific modes")
@click.option("--date-column", help="Date column (detected from the header when omitted)")
@click.option("--description-column", help="Description column")
@click.option("--amount-column", help="Amount column")
@click.option("--sub-description-column", help="Secondary description column")
@click.option("--status-column", help="Pending/posted status column")
@click.pass_context
def import_csv(
    ctx,
    csv_file: str,
    account: str,
    mode: str,
    month: str | None,
    date_column: str | None,
    description_column: str | None,
    amount_column: str | None,
    sub_description_column: str | None,
    status_column: str | None,
):
    """Import transactions from a CSV file.

    Examples:
        tallyup import statement.csv --account Chequing
        tallyup import march.csv --account Visa --mode current --month 2024-03
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    mapping = None
    if date_column or description_column or amount_column:
        if not (date_column and description_column and amount_column):
            click.echo("Error: --date-column, --description-column and --amount-column go together", err=True)
            ctx.exit(1)
        mapping = ColumnMapping(
            date=date_column,
            description=description_column,
            amount=amount_column,
            sub_description=sub_description_column,
            status=status_column,
        )

    period_id = year = month_number = None
    if mode != "auto":
        if not month:
            click.echo(f"Error: --month is required for {mode} imports", err=True)
            ctx.exit(1)
        if mode == "current":
            period_id = resolve_period_or_exit(ctx, PeriodService(db), month).id
        else:
            try:
                year, month_number = parse_month(month)
            except ValueError as e:
                click.echo(f"Error: {e}", err=True)
                ctx.exit(1)

    service = CSVImportService(db)
    try:
        summary = service.import_csv(
            csv_file_path=csv_file,
            account_id=account_id,
            mode=mode,
            period_id=period_id,
            year=year,
            month=month_number,
            mapping=mapping,
        )
    except (DomainError, ValueError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    echo_import_summary(summary)


@click.command("undo-import")
@click.argument("batch_id", type=int)
@click.pass_context
def undo_import(ctx, batch_id: int):
    """Remove an import batch with everything it created."""
    service = CSVImportService(ctx.obj["db"])
    try:
        restored = service.undo_batch(batch_id)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Removed import batch {batch_id} ({restored} projected transactions restored)")


@click.command("batches")
@click.option("--account", help="Only batches of this account (name or ID)")
@click.pass_context
def list_batches(ctx, account: str | None):
    """List import batches, newest first."""
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account) if account else None
    batches = db.list_import_batches(account_id=account_id)
    if not batches:
        click.echo("No import batches found.")
        return
    periods = {p.id: p.label for p in db.list_periods()}
    click.echo(f"{'ID':>4}  {'Account':>7}  {'Period':7}  {'Imported':>8}  {'Dup':>4}  {'Ignored':>7}")
    click.echo("-" * 60)
    for batch in batches:
        ignored = batch.transfer_ignored + batch.rule_ignored
        click.echo(
            f"{batch.id:>4}  {batch.account_id:>7}  {periods.get(batch.period_id, '?'):7}  "
            f"{batch.imported:>8}  {batch.duplicate:>4}  {ignored:>7}"
        )


def register_commands(cli):
    """Register import commands with main CLI."""
    cli.add_command(import_csv)
    cli.add_command(undo_import)
    cli.add_command(list_batches)
