"""Capital commands."""

import click

from exledger.cli.options import fail, resolve_window, window_options
from exledger.domain.entities import REFERENCE_CURRENCY
from exledger.utils.amount_parser import parse_rate, parse_split
from exledger.utils.formatting import (
    format_currency,
    format_percentage,
    format_timestamp,
)


def _print_computation(computation) -> None:
    for currency, total in computation.totals.items():
        items = computation.breakdown[currency]
        if not items and total == 0:
            continue
        click.echo(f"\n{currency.value}: {format_currency(total, currency)}")
        for item in items:
            click.echo(f"  {item.sign} {item.label:30s} {format_currency(item.value, currency):>20s}")


@click.group()
def capital_group():
    """Compute, close and review capital."""
    pass


@capital_group.command("show")
@click.option("--summary", is_flag=True, help="One line per asset kind instead of per asset")
@click.option("--in-flight", "in_flight", multiple=True, help="Spend paid out but not yet received, e.g. USD=25")
@click.pass_context
def show(ctx, summary: bool, in_flight: tuple[str, ...]):
    """Show current capital per currency."""
    ledger = ctx.obj["ledger"]
    try:
        spend = dict(parse_rate(spec) for spec in in_flight)
        computation = ledger.compute_capital(detailed=not summary, in_flight=spend)
    except ValueError as e:
        fail(ctx, e)
        return
    _print_computation(computation)


@capital_group.command("close")
@click.option("--rate", "rates", multiple=True, help="Single rate, e.g. USD=5.2")
@click.option("--split", "splits", multiple=True, help="Split allocation, e.g. USD=100@5.0,200@5.2")
@click.option("--in-flight", "in_flight", multiple=True, help="Spend paid out but not yet received, e.g. USD=25")
@click.option("--summary", is_flag=True, help="Store the summary breakdown instead of the detailed one")
@click.pass_context
def close(ctx, rates: tuple[str, ...], splits: tuple[str, ...], in_flight: tuple[str, ...], summary: bool):
    """Close capital in LYD and record it in the history.

    Every foreign currency with a non-zero total needs either a --rate or a
    --split whose amounts add up to that total.

    Examples:
        exledger capital close --rate USD=5.2 --rate EUR=5.6
        exledger capital close --split USD=100@5.0,200@5.2
        exledger capital close --rate USD=5.2 --in-flight USD=25
    """
    ledger = ctx.obj["ledger"]

    rate_inputs = {}
    try:
        for spec in rates:
            currency, rate = parse_rate(spec)
            rate_inputs[currency] = rate
        for spec in splits:
            currency, parts = parse_split(spec)
            rate_inputs[currency] = parts
        spend = dict(parse_rate(spec) for spec in in_flight)
        entry = ledger.close_capital(rate_inputs, detailed=not summary, in_flight=spend)
        click.echo(
            f"Closed capital: {format_currency(entry.total, REFERENCE_CURRENCY)} "
            f"(entry {entry.id}, {format_timestamp(entry.timestamp)})"
        )
    except ValueError as e:
        fail(ctx, e)


@capital_group.command("history")
@window_options(periods=False)
@click.pass_context
def history(ctx, start_date, end_date):
    """List capital closings, oldest first."""
    ledger = ctx.obj["ledger"]
    start, end = resolve_window(ctx, start_date, end_date)

    entries = ledger.history.query(start=start, end=end)
    if not entries:
        click.echo("No capital closings found.")
        return

    for entry in entries:
        click.echo(
            f"{entry.id:4d} | {format_timestamp(entry.timestamp)} | "
            f"{format_currency(entry.total, REFERENCE_CURRENCY):>20s}"
        )


@capital_group.command("evolution")
@window_options()
@click.pass_context
def evolution(ctx, start_date, end_date):
    """Show how closed capital changed over a period."""
    ledger = ctx.obj["ledger"]
    start, end = resolve_window(ctx, start_date, end_date)
    if start is None or end is None:
        fail(ctx, "Both a start and an end date are required")

    result = ledger.history.evolution(start, end)
    if result is None:
        click.echo("Not enough capital closings to compare this period.")
        return

    click.echo(f"Start ({format_timestamp(result.start_at)}): {format_currency(result.start_total, REFERENCE_CURRENCY)}")
    click.echo(f"End   ({format_timestamp(result.end_at)}): {format_currency(result.end_total, REFERENCE_CURRENCY)}")
    click.echo(
        f"Change: {format_currency(result.change, REFERENCE_CURRENCY)} "
        f"({format_percentage(result.percentage)})"
    )


def register_commands(cli: click.Group) -> None:
    """Register capital commands with main CLI."""
    cli.add_command(capital_group, name="capital")
