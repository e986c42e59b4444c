"""Tests for the exledger command line."""

import json
from decimal import Decimal

from exledger.cli.main import cli
from exledger.domain.entities import Currency
from exledger.domain.ledger import Ledger


def _run(cli_runner, temp_db, *args):
    return cli_runner.invoke(cli, ["--db-path", temp_db.database_path, *args])


def _group_id(result):
    # "... (group <id>)"
    return result.output.strip().rsplit("group ", 1)[1].rstrip(")")


def _buy_usd(cli_runner, temp_db, amount="100", rate="10"):
    result = _run(
        cli_runner, temp_db,
        "trade", "buy", "USD", amount, "--rate", rate,
        "--from", "cashLydTripoli", "--to", "cashUsdLibya",
    )
    assert result.exit_code == 0, result.output
    return result


def test_help_does_not_need_database(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "capital" in result.output


def test_bank_add_and_asset_list(cli_runner, temp_db):
    result = _run(cli_runner, temp_db, "bank", "add", "Wahda Bank", "--pos", "--id", "wahda",
                  "--opening-balance", "1,500")
    assert result.exit_code == 0
    assert "Added bank 'Wahda Bank' (ID: wahda)" in result.output

    result = _run(cli_runner, temp_db, "asset", "list")
    assert result.exit_code == 0
    assert "cashLydTripoli" in result.output
    assert "1,500.00 LYD [POS]" in result.output
    assert "settlement" not in result.output

    result = _run(cli_runner, temp_db, "asset", "list", "--all")
    assert "settlement" in result.output


def test_bank_transfer_errors(cli_runner, temp_db):
    _run(cli_runner, temp_db, "bank", "add", "Wahda Bank", "--id", "wahda")

    result = _run(cli_runner, temp_db, "bank", "transfer", "wahda", "nowhere", "10")

    assert result.exit_code == 1
    assert "Error: Asset 'nowhere' not found" in result.output


def test_trade_and_reverse(cli_runner, temp_db):
    result = _buy_usd(cli_runner, temp_db)
    assert "Bought 100 USD at 10" in result.output
    group_id = _group_id(result)

    result = _run(cli_runner, temp_db, "txn", "list")
    assert result.exit_code == 0
    assert group_id in result.output
    assert "-1,000.00 LYD" in result.output

    result = _run(cli_runner, temp_db, "txn", "delete-group", group_id)
    assert result.exit_code == 0
    assert f"Deleted group {group_id} (2 transactions)" in result.output

    result = _run(cli_runner, temp_db, "txn", "list")
    assert "No transactions found." in result.output

    result = _run(cli_runner, temp_db, "txn", "list", "--deleted")
    assert group_id in result.output

    result = _run(cli_runner, temp_db, "txn", "delete-group", group_id)
    assert result.exit_code == 1
    assert "already deleted" in result.output

    result = _run(cli_runner, temp_db, "txn", "restore-group", group_id)
    assert result.exit_code == 0
    assert f"Restored group {group_id}" in result.output


def test_sell_needs_destination_or_customer(cli_runner, temp_db):
    result = _run(
        cli_runner, temp_db,
        "trade", "sell", "USD", "10", "--rate", "12", "--from", "cashUsdLibya",
    )

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_capital_show_and_close(cli_runner, temp_db):
    _buy_usd(cli_runner, temp_db)

    result = _run(cli_runner, temp_db, "capital", "show", "--summary")
    assert result.exit_code == 0
    assert "USD: 100.00 USD" in result.output
    assert "Cash" in result.output

    result = _run(cli_runner, temp_db, "capital", "close")
    assert result.exit_code == 1
    assert "A valid exchange rate is required for USD" in result.output

    result = _run(cli_runner, temp_db, "capital", "close", "--rate", "USD=5")
    assert result.exit_code == 0
    assert "Closed capital: -500.00 LYD" in result.output

    result = _run(cli_runner, temp_db, "capital", "close", "--split", "USD=40@5,60@5.5")
    assert result.exit_code == 0
    assert "Closed capital: -470.00 LYD" in result.output

    result = _run(cli_runner, temp_db, "capital", "history")
    assert result.exit_code == 0
    assert "-500.00 LYD" in result.output
    assert "-470.00 LYD" in result.output


def test_capital_close_split_mismatch(cli_runner, temp_db):
    _buy_usd(cli_runner, temp_db)

    result = _run(cli_runner, temp_db, "capital", "close", "--split", "USD=40@5,50@5.5")

    assert result.exit_code == 1
    assert "discrepancy" in result.output


def test_capital_history_empty(cli_runner, temp_db):
    result = _run(cli_runner, temp_db, "capital", "history")

    assert result.exit_code == 0
    assert "No capital closings found." in result.output


def test_capital_evolution_without_closings(cli_runner, temp_db):
    result = _run(cli_runner, temp_db, "capital", "evolution", "--weekly")

    assert result.exit_code == 0
    assert "Not enough capital closings" in result.output


def test_profit_report(cli_runner, temp_db):
    _buy_usd(cli_runner, temp_db)
    result = _run(
        cli_runner, temp_db,
        "trade", "sell", "USD", "50", "--rate", "12",
        "--from", "cashUsdLibya", "--to", "cashLydTripoli",
    )
    assert result.exit_code == 0

    result = _run(cli_runner, temp_db, "profit", "--details")
    assert result.exit_code == 0
    assert "Currency trading" in result.output
    assert "100.00 LYD" in result.output
    assert "Trading details:" in result.output

    result = _run(cli_runner, temp_db, "profit", "--cost-basis", "USD=11")
    assert result.exit_code == 0
    assert "50.00 LYD" in result.output


def test_profit_rejects_conflicting_periods(cli_runner, temp_db):
    result = _run(cli_runner, temp_db, "profit", "--daily", "--weekly")

    assert result.exit_code == 1
    assert "Only one period option" in result.output


def test_profit_bad_cost_basis(cli_runner, temp_db):
    result = _run(cli_runner, temp_db, "profit", "--cost-basis", "USD:wire=11")

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_data_export_and_import(cli_runner, temp_db, tmp_path):
    _run(cli_runner, temp_db, "bank", "add", "Wahda Bank", "--id", "wahda")
    _buy_usd(cli_runner, temp_db)
    export_file = tmp_path / "backup.json"

    result = _run(cli_runner, temp_db, "data", "export", "--output", str(export_file))
    assert result.exit_code == 0
    assert "Exported ledger" in result.output
    bundle = json.loads(export_file.read_text(encoding="utf-8"))
    assert len(bundle["transactions"]) == 2

    result = _run(cli_runner, temp_db, "txn", "delete-group", bundle["transactions"][0]["group_id"])
    assert result.exit_code == 0

    result = _run(cli_runner, temp_db, "data", "import", str(export_file), "--yes")
    assert result.exit_code == 0
    assert "Imported ledger" in result.output

    result = _run(cli_runner, temp_db, "asset", "list")
    assert "100.00 USD" in result.output
    assert "Wahda Bank" in result.output


def test_data_import_rejects_bad_file(cli_runner, temp_db, tmp_path):
    bad_file = tmp_path / "bad.json"
    bad_file.write_text("{oops", encoding="utf-8")

    result = _run(cli_runner, temp_db, "data", "import", str(bad_file), "--yes")

    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_data_import_asks_for_confirmation(cli_runner, temp_db, tmp_path):
    export_file = tmp_path / "backup.json"
    _run(cli_runner, temp_db, "data", "export", "--output", str(export_file))

    result = cli_runner.invoke(
        cli, ["--db-path", temp_db.database_path, "data", "import", str(export_file)], input="n\n"
    )

    assert result.exit_code == 1
    assert "Aborted" in result.output


def test_data_export_to_stdout(cli_runner, temp_db):
    result = _run(cli_runner, temp_db, "data", "export")

    assert result.exit_code == 0
    assert json.loads(result.output)["banks"] == []


def test_capital_close_with_in_flight_spend(cli_runner, temp_db):
    _buy_usd(cli_runner, temp_db)

    result = _run(cli_runner, temp_db, "capital", "close", "--rate", "USD=5", "--in-flight", "USD=25")
    assert result.exit_code == 0, result.output
    assert "Closed capital: -375.00 LYD" in result.output

    entry = Ledger(temp_db).history.latest()
    assert entry.capital_breakdown[Currency.USD] == Decimal("125")

    result = _run(cli_runner, temp_db, "capital", "show", "--in-flight", "USD=25")
    assert result.exit_code == 0
    assert "In-flight spend" in result.output


def test_capital_close_rejects_bad_in_flight(cli_runner, temp_db):
    result = _run(cli_runner, temp_db, "capital", "close", "--in-flight", "USD")

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert Ledger(temp_db).history.query() == []


def test_buy_against_debt_and_memo_listing(cli_runner, temp_db):
    ledger = Ledger(temp_db)
    customer_id = ledger.debts.create_customer("Salem", Currency.LYD)
    ledger.add_debt(customer_id, Decimal("300"))

    result = _run(
        cli_runner, temp_db,
        "trade", "buy", "USD", "100", "--rate", "10", "--to", "cashUsdLibya",
        "--settle-debt", str(customer_id), "--from", "cashLydTripoli",
    )
    assert result.exit_code == 0, result.output
    assert ledger.debts.customer_balance(customer_id) == Decimal("0")

    result = _run(cli_runner, temp_db, "asset", "list", "--all")
    assert "-700.00 LYD" in result.output
    settlement_line = next(line for line in result.output.splitlines() if line.startswith("settlement"))
    assert settlement_line.rstrip().endswith("300.00 LYD")


def test_buy_against_debt_needs_source_for_remainder(cli_runner, temp_db):
    ledger = Ledger(temp_db)
    customer_id = ledger.debts.create_customer("Salem", Currency.LYD)
    ledger.add_debt(customer_id, Decimal("300"))

    result = _run(
        cli_runner, temp_db,
        "trade", "buy", "USD", "100", "--rate", "10", "--to", "cashUsdLibya",
        "--settle-debt", str(customer_id),
    )

    assert result.exit_code == 1
    assert "A LYD source is needed" in result.output


def test_buy_owed_to_seller(cli_runner, temp_db):
    result = _run(
        cli_runner, temp_db,
        "trade", "buy", "USD", "100", "--rate", "10", "--to", "cashUsdLibya", "--owe-to", "Ali",
    )

    assert result.exit_code == 0, result.output
    assert Ledger(temp_db).debts.outstanding_receivables() == {Currency.LYD: Decimal("1000")}


def test_memo_account_listed_per_currency(cli_runner, temp_db):
    ledger = Ledger(temp_db)
    ledger.add_debt(ledger.debts.create_customer("Salem", Currency.LYD), Decimal("1000"))
    ledger.add_debt(ledger.debts.create_customer("Omar", Currency.USD), Decimal("200"))

    result = _run(cli_runner, temp_db, "asset", "list", "--all")

    assert result.exit_code == 0
    external_line = next(line for line in result.output.splitlines() if line.startswith("external"))
    assert "-1,000.00 LYD, -200.00 USD" in external_line
    trade_debt_line = next(line for line in result.output.splitlines() if line.startswith("trade_debt"))
    assert trade_debt_line.rstrip().endswith("-")
