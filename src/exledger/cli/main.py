"""Main CLI entry point."""

import logging

import click

from exledger.database.factories import create_sqlite_database
from exledger.domain.ledger import Ledger
from exledger.logging_config import configure_logging

# Import and register all commands at module level
from exledger.cli.commands import (
    asset,
    trade,
    txn,
    capital,
    profit,
    data,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides EXLEDGER_DB_PATH environment variable)",
    envvar="EXLEDGER_DB_PATH",
)
@click.option("--verbose", "-v", is_flag=True, help="Log ledger activity to stderr")
@click.pass_context
def cli(ctx, db_path: str | None, verbose: bool):
    """Exledger - cash and bank ledger for a currency exchange business.

    Record currency trades, transfers and costs across cash vaults and bank
    accounts, reverse whole operations, and close capital in LYD.
    """
    ctx.ensure_object(dict)

    if verbose:
        configure_logging(level=logging.INFO)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.obj["ledger"] = Ledger(db)


# Register all commands
asset.register_commands(cli)
trade.register_commands(cli)
txn.register_commands(cli)
capital.register_commands(cli)
profit.register_commands(cli)
data.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
