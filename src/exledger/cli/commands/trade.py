"""Currency trading commands."""

import click

from exledger.cli.options import fail
from exledger.utils.amount_parser import parse_amount, parse_currency


@click.group()
def trade_group():
    """Buy and sell foreign currency."""
    pass


@trade_group.command("buy")
@click.argument("currency")
@click.argument("amount")
@click.option("--rate", required=True, help="LYD paid per unit")
@click.option("--from", "lyd_source", help="LYD cash vault or bank paying")
@click.option("--to", "destination", required=True, help="Cash vault receiving the currency")
@click.option("--lyd-amount", help="LYD actually paid (defaults to amount x rate)")
@click.option("--settle-debt", "settle_debt", type=int, help="LYD customer whose debt pays for the purchase")
@click.option("--owe-to", "owe_to", help="Party the price is owed to as a receivable")
@click.option("--note", default="", help="Free text")
@click.pass_context
def buy(ctx, currency, amount, rate, lyd_source, destination, lyd_amount, settle_debt, owe_to, note):
    """Buy foreign currency with LYD.

    The price is paid --from a LYD asset, set against the seller's debt
    (--settle-debt, any remainder paid --from), or owed to the seller
    (--owe-to).

    Examples:
        exledger trade buy USD 100 --rate 10 --from cashLydTripoli --to cashUsdLibya
        exledger trade buy USD 100 --rate 10 --to cashUsdLibya --settle-debt 3
        exledger trade buy USD 100 --rate 10 --to cashUsdLibya --owe-to "Ali"
    """
    ledger = ctx.obj["ledger"]

    try:
        group_id = ledger.buy_currency(
            currency=parse_currency(currency),
            foreign_amount=parse_amount(amount),
            rate=parse_amount(rate),
            lyd_source=lyd_source,
            destination=destination,
            note=note,
            lyd_amount=parse_amount(lyd_amount) if lyd_amount else None,
            settle_debt_customer_id=settle_debt,
            receivable_debtor=owe_to,
        )
    except ValueError as e:
        fail(ctx, e)
        return

    click.echo(f"Bought {amount} {currency.upper()} at {rate} (group {group_id})")


@trade_group.command("sell")
@click.argument("currency")
@click.argument("amount")
@click.option("--rate", required=True, help="LYD received per unit")
@click.option("--from", "source", required=True, help="Cash vault giving the currency")
@click.option("--to", "lyd_destination", help="LYD cash vault or bank receiving payment")
@click.option("--customer", "customer_id", type=int, help="LYD customer buying on credit")
@click.option("--settle-receivable", "settle_receivable", type=int, help="LYD receivable paid down by the proceeds")
@click.option("--excess-customer", "excess_customer", type=int, help="Customer owing proceeds beyond the receivable")
@click.option("--lyd-amount", help="LYD actually received (defaults to amount x rate)")
@click.option("--note", default="", help="Free text")
@click.pass_context
def sell(ctx, currency, amount, rate, source, lyd_destination, customer_id,
         settle_receivable, excess_customer, lyd_amount, note):
    """Sell foreign currency for LYD.

    Paid now (--to), on credit (--customer), or against a receivable the
    business owes the buyer (--settle-receivable). Proceeds beyond the
    receivable go --to an asset or to --excess-customer.

    Examples:
        exledger trade sell USD 50 --rate 12 --from cashUsdLibya --to cashLydTripoli
        exledger trade sell USD 50 --rate 12 --from cashUsdLibya --customer 3
        exledger trade sell USD 50 --rate 12 --from cashUsdLibya --settle-receivable 2 --to cashLydTripoli
    """
    ledger = ctx.obj["ledger"]

    try:
        group_id = ledger.sell_currency(
            currency=parse_currency(currency),
            foreign_amount=parse_amount(amount),
            rate=parse_amount(rate),
            source=source,
            lyd_destination=lyd_destination,
            customer_id=customer_id,
            note=note,
            lyd_amount=parse_amount(lyd_amount) if lyd_amount else None,
            settle_receivable_id=settle_receivable,
            excess_customer_id=excess_customer,
        )
    except ValueError as e:
        fail(ctx, e)
        return

    click.echo(f"Sold {amount} {currency.upper()} at {rate} (group {group_id})")


def register_commands(cli: click.Group) -> None:
    """Register trade commands with main CLI."""
    cli.add_command(trade_group, name="trade")
