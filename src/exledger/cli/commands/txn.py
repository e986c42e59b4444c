"""Transaction log commands."""

from datetime import datetime

import click

from exledger.cli.options import fail
from exledger.domain.entities import DateWindow
from exledger.utils.date_parser import parse_date
from exledger.utils.formatting import format_currency, format_timestamp


@click.group()
def txn_group():
    """Inspect and reverse transactions."""
    pass


@txn_group.command("list")
@click.option("--start-date", help="Start date (YYYY-MM-DD, 'today' or 'yesterday')")
@click.option("--end-date", help="End date (YYYY-MM-DD, 'today' or 'yesterday')")
@click.option("--asset", "asset_id", help="Only transactions on this asset")
@click.option("--group", "group_id", help="Only transactions of this group")
@click.option("--deleted", is_flag=True, help="Show deleted transactions instead of active ones")
@click.option("--limit", type=int, default=50, show_default=True, help="Maximum rows to show")
@click.pass_context
def list_transactions(ctx, start_date, end_date, asset_id, group_id, deleted, limit):
    """List transactions, newest first."""
    ledger = ctx.obj["ledger"]

    start: datetime | None = None
    end: datetime | None = None
    try:
        if start_date:
            start = DateWindow.from_dates(parse_date(start_date), parse_date(start_date)).start
        if end_date:
            end = DateWindow.from_dates(parse_date(end_date), parse_date(end_date)).end
    except ValueError as e:
        click.echo(f"Error: Invalid date: {e}", err=True)
        ctx.exit(1)

    query = ledger.log.query(
        start=start, end=end, asset_id=asset_id, group_id=group_id, deleted=deleted
    )
    rows = []
    for txn in query:
        rows.append(txn)
        if len(rows) >= limit:
            break

    if not rows:
        click.echo("No transactions found.")
        return

    click.echo(
        f"{'Time':16s} | {'Asset':16s} | {'Amount':>16s} | {'Type':18s} | {'Group':32s} | Description"
    )
    click.echo("-" * 130)
    for txn in rows:
        click.echo(
            f"{format_timestamp(txn.timestamp):16s} | {txn.asset_id:16s} | "
            f"{format_currency(txn.amount, txn.currency):>16s} | {txn.entry_type.value:18s} | "
            f"{txn.group_id or '-':32s} | {txn.description}"
        )


@txn_group.command("delete-group")
@click.argument("group_id")
@click.pass_context
def delete_group(ctx, group_id: str):
    """Reverse every transaction of a group."""
    ledger = ctx.obj["ledger"]

    try:
        group = ledger.delete_group(group_id)
    except ValueError as e:
        fail(ctx, e)
        return

    click.echo(f"Deleted group {group_id} ({len(group.transactions)} transactions): {group.description}")


@txn_group.command("restore-group")
@click.argument("group_id")
@click.pass_context
def restore_group(ctx, group_id: str):
    """Re-apply every transaction of a deleted group."""
    ledger = ctx.obj["ledger"]

    try:
        group = ledger.restore_group(group_id)
    except ValueError as e:
        fail(ctx, e)
        return

    click.echo(f"Restored group {group_id} ({len(group.transactions)} transactions): {group.description}")


def register_commands(cli: click.Group) -> None:
    """Register transaction commands with main CLI."""
    cli.add_command(txn_group, name="txn")
