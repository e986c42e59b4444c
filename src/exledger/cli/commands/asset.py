"""Asset and bank commands."""

import click

from exledger.cli.options import fail
from exledger.domain.entities import AssetKind
from exledger.utils.amount_parser import parse_amount
from exledger.utils.formatting import format_currency


@click.group()
def asset_group():
    """Inspect cash vaults, banks and memo accounts."""
    pass


@asset_group.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include memo accounts")
@click.pass_context
def list_assets(ctx, show_all: bool):
    """List assets with their current balances."""
    ledger = ctx.obj["ledger"]

    assets = [
        a for a in ledger.balances().values() if show_all or a.kind != AssetKind.MEMO
    ]
    if not assets:
        click.echo("No assets found.")
        return

    click.echo("\nAssets:")
    click.echo("-" * 72)
    for asset in assets:
        if asset.kind == AssetKind.MEMO:
            totals = ledger.memo_balances(asset.id)
            balance = ", ".join(format_currency(v, c) for c, v in totals.items()) or "-"
        else:
            balance = format_currency(asset.balance, asset.currency)
        pos = " [POS]" if asset.is_pos_enabled else ""
        click.echo(
            f"{asset.id:20s} | {asset.kind.value:5s} | {asset.name:25s} | {balance:>18s}{pos}"
        )


@click.group()
def bank_group():
    """Manage bank accounts."""
    pass


@bank_group.command("add")
@click.argument("name")
@click.option("--opening-balance", default="0", help="Balance the account starts with")
@click.option("--pos", "is_pos_enabled", is_flag=True, help="Account receives POS settlements")
@click.option("--id", "bank_id", help="Explicit asset id (generated if omitted)")
@click.pass_context
def add_bank(ctx, name: str, opening_balance: str, is_pos_enabled: bool, bank_id: str | None):
    """Add a LYD bank account.

    Examples:
        exledger bank add "Jumhouria Bank" --opening-balance 15000
        exledger bank add "Wahda Bank" --pos --id wahda
    """
    ledger = ctx.obj["ledger"]

    try:
        opening = parse_amount(opening_balance)
        asset_id = ledger.add_bank(
            name, opening_balance=opening, is_pos_enabled=is_pos_enabled, bank_id=bank_id
        )
    except ValueError as e:
        fail(ctx, e)
        return

    click.echo(f"Added bank '{name}' (ID: {asset_id})")


@bank_group.command("transfer")
@click.argument("from_bank", metavar="FROM_BANK")
@click.argument("to_bank", metavar="TO_BANK")
@click.argument("amount")
@click.option("--note", default="", help="Description of the transfer")
@click.pass_context
def transfer(ctx, from_bank: str, to_bank: str, amount: str, note: str):
    """Move LYD between two bank accounts.

    Examples:
        exledger bank transfer wahda jumhouria 2500
    """
    ledger = ctx.obj["ledger"]

    try:
        group_id = ledger.transfer_between_banks(from_bank, to_bank, parse_amount(amount), note=note)
    except ValueError as e:
        fail(ctx, e)
        return

    click.echo(f"Transferred {amount} LYD from {from_bank} to {to_bank} (group {group_id})")


def register_commands(cli: click.Group) -> None:
    """Register asset and bank commands with main CLI."""
    cli.add_command(asset_group, name="asset")
    cli.add_command(bank_group, name="bank")
