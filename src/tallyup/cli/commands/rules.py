"""Ignore rule and category mapping commands."""

import click
from tallyup.domain.errors import DomainError
from tallyup.domain.rules import CategoryMappingService, IgnoreRuleService


@click.group()
def ignore_rule_group():
    """Manage rules that suppress matching rows."""
    pass


@ignore_rule_group.command("add")
@click.argument("pattern")
@click.pass_context
def add_ignore_rule(ctx, pattern: str):
    """Ignore every row whose description contains PATTERN.

    Already stored rows that match are ignored right away.

    Examples:
        tallyup ignore-rule add "PAYMENT THANK YOU"
    """
    service = IgnoreRuleService(ctx.obj["db"])
    try:
        rule, created, ignored = service.create_rule(pattern)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    verb = "Created" if created else "Reused"
    click.echo(f"{verb} ignore rule {rule.id} ('{rule.normalized_pattern}'); {ignored} transactions ignored")


@ignore_rule_group.command("list")
@click.option("--active-only", is_flag=True, help="Hide disabled rules")
@click.pass_context
def list_ignore_rules(ctx, active_only: bool):
    """List ignore rules."""
    rules = IgnoreRuleService(ctx.obj["db"]).list_rules(active_only=active_only)
    if not rules:
        click.echo("No ignore rules found.")
        return
    for rule in rules:
        state = "active" if rule.active else "disabled"
        click.echo(f"ID: {rule.id:3d} | {rule.pattern:30s} | {state}")


@ignore_rule_group.command("toggle")
@click.argument("rule_id", type=int)
@click.option("--on/--off", "active", default=True, help="Enable or disable the rule")
@click.pass_context
def toggle_ignore_rule(ctx, rule_id: int, active: bool):
    """Enable or disable an ignore rule."""
    try:
        rule = IgnoreRuleService(ctx.obj["db"]).toggle_rule(rule_id, active)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Ignore rule {rule.id} {'enabled' if rule.active else 'disabled'}")


@ignore_rule_group.command("delete")
@click.argument("rule_id", type=int)
@click.pass_context
def delete_ignore_rule(ctx, rule_id: int):
    """Delete an ignore rule. Rows it already ignored stay ignored."""
    try:
        IgnoreRuleService(ctx.obj["db"]).delete_rule(rule_id)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Deleted ignore rule {rule_id}")


@click.group()
def category_rule_group():
    """Manage description to category mappings."""
    pass


@category_rule_group.command("add")
@click.argument("description")
@click.argument("category")
@click.option("--sub-description", help="Secondary description the rule also requires")
@click.pass_context
def add_category_rule(ctx, description: str, category: str, sub_description: str | None):
    """Map an exact description to a category.

    Examples:
        tallyup category-rule add "LOBLAWS #1234" Groceries
    """
    service = CategoryMappingService(ctx.obj["db"])
    try:
        rule, updated = service.create_rule(description, category, sub_description=sub_description)
    except DomainError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    click.echo(f"Mapped '{rule.normalized_description}' to {rule.category}; {updated} transactions categorized")


@category_rule_group.command("list")
@click.pass_context
def list_category_rules(ctx):
    """List category mapping rules."""
    rules = CategoryMappingService(ctx.obj["db"]).list_rules()
    if not rules:
        click.echo("No category rules found.")
        return
    for rule in rules:
        click.echo(f"ID: {rule.id:3d} | {rule.raw_description:30s} | {rule.category}")


def register_commands(cli):
    """Register rule commands with main CLI."""
    cli.add_command(ignore_rule_group, name="ignore-rule")
    cli.add_command(category_rule_group, name="category-rule")
