"""Profit report command."""

from decimal import Decimal

import click

from exledger.cli.options import fail, resolve_window, window_options
from exledger.domain.entities import Channel, REFERENCE_CURRENCY
from exledger.domain.profit import ProfitAnalyzer
from exledger.utils.amount_parser import parse_amount, parse_currency
from exledger.utils.formatting import format_currency


def _parse_cost_basis(spec: str):
    """Parse CURRENCY[:CHANNEL]=RATE, channel defaulting to cash."""
    if "=" not in spec:
        raise ValueError(f"Expected CURRENCY[:CHANNEL]=RATE, got '{spec}'")
    key, rate = spec.split("=", 1)
    code, _, channel = key.partition(":")
    return (parse_currency(code), Channel(channel.strip().lower() or "cash")), parse_amount(rate)


@click.command("profit")
@window_options()
@click.option("--cost-basis", "cost_basis", multiple=True, help="Manual cost rate, e.g. USD=10.5 or USD:bank=10.7")
@click.option("--details", is_flag=True, help="List trading profit per sale")
@click.pass_context
def profit(ctx, start_date, end_date, cost_basis, details):
    """Show profit, costs and net result for a period (today by default)."""
    db = ctx.obj["db"]
    start, end = resolve_window(ctx, start_date, end_date, default_period="daily")
    if start is None:
        start = end
    if end is None:
        end = start

    try:
        overrides = dict(_parse_cost_basis(spec) for spec in cost_basis)
        report = ProfitAnalyzer(db).analyze(start, end, cost_basis_overrides=overrides)
    except ValueError as e:
        fail(ctx, e)
        return

    click.echo(f"\nProfit report {start} to {end}")
    click.echo("-" * 60)
    click.echo(f"{'Total profit':40s} {format_currency(report.total_profit, REFERENCE_CURRENCY):>19s}")
    for entry in report.profit_breakdown:
        click.echo(f"  {entry.label:38s} {format_currency(entry.value, REFERENCE_CURRENCY):>19s}")
    click.echo(f"{'Total costs':40s} {format_currency(report.total_costs, REFERENCE_CURRENCY):>19s}")
    for entry in report.cost_breakdown:
        click.echo(f"  {entry.label:38s} {format_currency(entry.value, REFERENCE_CURRENCY):>19s}")
    click.echo("-" * 60)
    click.echo(f"{'Net profit':40s} {format_currency(report.net_profit, REFERENCE_CURRENCY):>19s}")

    others = {c: r for c, r in report.other_currency_results.items() if r.profit or r.loss}
    if others:
        click.echo("\nOther currencies:")
        for currency, result in others.items():
            click.echo(
                f"  {currency.value}: profit {format_currency(result.profit, currency)}, "
                f"loss {format_currency(result.loss, currency)}"
            )

    if details and report.trading_details:
        click.echo("\nTrading details:")
        for detail in report.trading_details:
            click.echo(
                f"  {detail.timestamp:%Y-%m-%d %H:%M} {format_currency(detail.quantity, detail.currency):>14s} "
                f"sold at {detail.sale_rate} vs cost {detail.cost_rate.quantize(Decimal('0.0001'))}: "
                f"{format_currency(detail.profit, REFERENCE_CURRENCY)}"
            )


def register_commands(cli: click.Group) -> None:
    """Register profit command with main CLI."""
    cli.add_command(profit)
