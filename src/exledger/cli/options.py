"""Option decorators and error reporting shared by exledger commands."""

from datetime import date
from typing import Optional

import click

from exledger.utils.date_parser import get_date_range, parse_date

PERIODS = {
    "daily": "Today",
    "weekly": "Last 7 days",
    "monthly": "Last 30 days",
}

_PERIOD_KEY = "exledger.periods"


def fail(ctx: click.Context, error) -> None:
    """Print ``Error: <error>`` to stderr and exit with status 1."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def _remember_period(ctx: click.Context, param: click.Parameter, value: bool) -> bool:
    if value:
        ctx.meta.setdefault(_PERIOD_KEY, []).append(param.name)
    return value


def window_options(periods: bool = True):
    """Add --start-date/--end-date and, optionally, the period flags.

    Period flags are not passed to the command; ``resolve_window`` reads
    them back from the context.
    """

    def decorator(func):
        if periods:
            for name, help_text in reversed(PERIODS.items()):
                func = click.option(
                    f"--{name}",
                    name,
                    is_flag=True,
                    expose_value=False,
                    callback=_remember_period,
                    help=help_text,
                )(func)
        func = click.option("--end-date", help="End date (YYYY-MM-DD, 'today' or 'yesterday')")(func)
        func = click.option("--start-date", help="Start date (YYYY-MM-DD, 'today' or 'yesterday')")(func)
        return func

    return decorator


def resolve_window(
    ctx: click.Context,
    start_date: Optional[str],
    end_date: Optional[str],
    default_period: Optional[str] = None,
) -> tuple[Optional[date], Optional[date]]:
    """Turn the window options of the current command into dates.

    A single period flag wins; explicit dates are parsed otherwise. When
    nothing is given the default period (if any) applies.
    """
    chosen = ctx.meta.get(_PERIOD_KEY, [])
    names = ", ".join(f"--{name}" for name in PERIODS)

    if len(chosen) > 1:
        fail(ctx, f"Only one period option ({names}) can be given")
    if chosen and (start_date or end_date):
        fail(ctx, f"Period options ({names}) cannot be combined with --start-date or --end-date")
    if chosen:
        return get_date_range(chosen[0])

    start = _parse(ctx, start_date, "start")
    end = _parse(ctx, end_date, "end")
    if start is None and end is None and default_period is not None:
        return get_date_range(default_period)
    return start, end


def _parse(ctx: click.Context, value: Optional[str], which: str) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        fail(ctx, f"Invalid {which} date: {e}")
