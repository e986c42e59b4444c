"""Shared pytest fixtures for exledger tests."""

import os
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from exledger.database.factories import create_sqlite_database
from exledger.domain.bundle import BundleService
from exledger.domain.clock import DeterministicClock
from exledger.domain.entities import Currency
from exledger.domain.ledger import Ledger
from exledger.domain.profit import ProfitAnalyzer


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for CLI tests
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def clock():
    """Clock starting at 2024-01-15 09:00 that ticks one second per reading."""
    return DeterministicClock(datetime(2024, 1, 15, 9, 0, 0), step=timedelta(seconds=1))


@pytest.fixture
def ledger(temp_db, clock):
    """Create a Ledger with default vaults on a temporary database."""
    return Ledger(temp_db, clock=clock)


@pytest.fixture
def debt_service(ledger):
    return ledger.debts


@pytest.fixture
def profit_analyzer(ledger):
    return ProfitAnalyzer(ledger.db, ledger.log)


@pytest.fixture
def bundle_service(temp_db):
    return BundleService(temp_db)


@pytest.fixture
def funded_ledger(ledger):
    """Ledger with LYD in Tripoli cash and a POS-enabled bank."""
    ledger.adjust_asset_balance("cashLydTripoli", Decimal("50000"), note="Opening cash")
    ledger.add_bank("Wahda Bank", opening_balance=Decimal("0"), is_pos_enabled=True, bank_id="wahda")
    ledger.adjust_asset_balance("wahda", Decimal("20000"), note="Opening deposit")
    return ledger


@pytest.fixture
def lyd_customer(ledger):
    """Create an active LYD customer and return its id."""
    return ledger.debts.create_customer("Salem", Currency.LYD)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
