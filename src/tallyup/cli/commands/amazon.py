"""Amazon order commands."""

import json

import click
from tallyup.domain.amazon import AmazonService, window_bounds
from tallyup.domain.entities import AmazonOrder, Candidates
from tallyup.domain.errors import DomainError


def _echo_order(order: AmazonOrder) -> None:
    linked = ",".join(str(t) for t in order.linked_transaction_ids) or "-"
    ignored = " (ignored)" if order.is_ignored else ""
    click.echo(
        f"{order.id:>4}  {order.amazon_order_id:20}  {order.order_date.isoformat()}  "
        f"{order.order_total:>10.2f}  {order.match_status.value:9}  {linked}{ignored}"
    )


@click.group()
def amazon_group():
    """Import Amazon orders and match them to card charges."""
    pass


@amazon_group.command("import")
@click.argument("orders_file", type=click.File("r"))
@click.option("--source-url", help="Order history page the export came from")
@click.pass_context
def import_orders(ctx, orders_file, source_url: str | None):
    """Import orders from a JSON list and match them.

    Each order needs an order id, an order date and a total; items are
    optional.
    """
    service = AmazonService(ctx.obj["db"])
    try:
        records = json.load(orders_file)
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON: {e}", err=True)
        ctx.exit(1)
    if isinstance(records, dict):
        records = records.get("orders", [])
    if not isinstance(records, list):
        click.echo("Error: Expected a list of orders", err=True)
        ctx.exit(1)

    summary = service.import_orders(records, source_url=source_url)
    click.echo("\nAmazon import complete:")
    click.echo(f"  Received: {summary.received}")
    click.echo(f"  Created: {summary.created}")
    click.echo(f"  Already imported: {summary.skipped}")
    click.echo(f"  Invalid: {summary.invalid}")
    click.echo(f"  Matched: {summary.matched}, ambiguous: {summary.ambiguous}, unmatched: {summary.unmatched}")


@amazon_group.command("list")
@click.pass_context
def list_orders(ctx):
    """List orders, newest first."""
    orders = AmazonService(ctx.obj["db"]).list_orders()
    if not orders:
        click.echo("No Amazon orders found.")
        return
    click.echo(f"{'ID':>4}  {'Order':20}  {'Date':10}  {'Total':>10}  {'Status':9}  Linked")
    click.echo("-" * 80)
    for order in orders:
        _echo_order(order)


@amazon_group.command("match")
@click.pass_context
def match_orders(ctx):
    """Match every unlinked order."""
    summary = AmazonService(ctx.obj["db"]).match()
    click.echo(f"Matched: {summary.matched}, ambiguous: {summary.ambiguous}, unmatched: {summary.unmatched}")


@amazon_group.command("candidates")
@click.argument("order_id", type=int)
@click.pass_context
def show_candidates(ctx, order_id: int):
    """Show candidate transaction groups for an order."""
    service = AmazonService(ctx.obj["db"])
    try:
        order = service.get_order(order_id)
        groups = service.get_candidates(order_id)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    start, end = window_bounds(order.order_date, service.settings.amazon_match_window_days)
    click.echo(f"Order {order.amazon_order_id}: {order.order_total:.2f} on {order.order_date.isoformat()}")
    click.echo(f"Window: {start.isoformat()} to {end.isoformat()}")
    if not groups and isinstance(order.match_metadata, Candidates):
        groups = list(order.match_metadata.groups)
    if not groups:
        click.echo("No candidates.")
        return
    for index, group in enumerate(groups, start=1):
        click.echo(f"\n#{index} score {group.score} (span {group.date_span_days} days)")
        for txn in group.transactions:
            click.echo(f"    {txn.id:>5}  {txn.date.isoformat()}  {txn.amount:>10.2f}  {txn.description}")


@amazon_group.command("link")
@click.argument("order_id", type=int)
@click.argument("transaction_ids", type=int, nargs=-1, required=True)
@click.option("--split", is_flag=True, help="Allow transactions already linked to other orders")
@click.pass_context
def link_order(ctx, order_id: int, transaction_ids: tuple[int, ...], split: bool):
    """Link an order to the transactions that paid for it.

    Examples:
        tallyup amazon link 3 42
        tallyup amazon link 4 42 --split
    """
    service = AmazonService(ctx.obj["db"])
    try:
        if split:
            order = service.split_link_order(order_id, transaction_ids)
        else:
            order = service.link_order(order_id, transaction_ids)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Order {order.amazon_order_id} linked to {', '.join(str(t) for t in order.linked_transaction_ids)}")


@amazon_group.command("unlink")
@click.argument("order_id", type=int)
@click.pass_context
def unlink_order(ctx, order_id: int):
    """Remove every link of an order."""
    try:
        order = AmazonService(ctx.obj["db"]).unlink_order(order_id)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Order {order.amazon_order_id} unlinked")


@amazon_group.command("ignore")
@click.argument("order_id", type=int)
@click.option("--undo", is_flag=True, help="Stop ignoring the order")
@click.pass_context
def ignore_order(ctx, order_id: int, undo: bool):
    """Exclude an order from matching."""
    try:
        order = AmazonService(ctx.obj["db"]).set_ignored(order_id, not undo)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Order {order.amazon_order_id} {'ignored' if order.is_ignored else 'no longer ignored'}")


def register_commands(cli):
    """Register Amazon commands with main CLI."""
    cli.add_command(amazon_group, name="amazon")
