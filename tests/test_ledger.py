"""Tests for Ledger domain operations."""

from datetime import date
from decimal import Decimal

import pytest

from exledger.domain.entities import AssetKind, Channel, Currency, EntryType
from exledger.domain.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from exledger.domain.ledger import DEFAULT_CASH_VAULTS, Ledger, MEMO_ASSETS
from exledger.domain.operations import (
    BuyCurrency,
    CashExchange,
    OperatingCost,
    PosSale,
    SellCurrency,
)


def _balance(ledger, asset_id):
    return ledger.get_asset(asset_id).balance


class TestAssets:
    """Tests for default assets and banks."""

    def test_default_assets_are_seeded(self, ledger):
        balances = ledger.balances()

        for asset_id, _, currency in DEFAULT_CASH_VAULTS:
            assert balances[asset_id].currency == currency
            assert balances[asset_id].balance == Decimal("0")
        for asset_id, _ in MEMO_ASSETS:
            assert balances[asset_id].kind == AssetKind.MEMO
            assert balances[asset_id].currency is None

    def test_seeding_twice_does_not_duplicate(self, temp_db, clock):
        Ledger(temp_db, clock=clock)
        ledger = Ledger(temp_db, clock=clock)

        expected = len(DEFAULT_CASH_VAULTS) + len(MEMO_ASSETS)
        assert len(ledger.balances()) == expected

    def test_balances_snapshot_is_read_only(self, ledger):
        balances = ledger.balances()

        with pytest.raises(TypeError):
            balances["cashLydTripoli"] = None

    def test_add_bank_with_opening_balance(self, ledger):
        bank_id = ledger.add_bank("Jumhouria Bank", opening_balance=Decimal("15000"))

        bank = ledger.get_asset(bank_id)
        assert bank_id.startswith("bank_")
        assert bank.kind == AssetKind.BANK
        assert bank.currency == Currency.LYD
        assert bank.balance == Decimal("15000")
        assert bank.opening_balance == Decimal("15000")
        assert [b.id for b in ledger.list_banks()] == [bank_id]

    def test_add_bank_requires_name(self, ledger):
        with pytest.raises(ValidationError):
            ledger.add_bank("  ")

    def test_add_bank_duplicate_id(self, ledger):
        ledger.add_bank("Wahda Bank", bank_id="wahda")

        with pytest.raises(ConflictError):
            ledger.add_bank("Other", bank_id="wahda")

    def test_add_cash_vault(self, ledger):
        ledger.add_cash_vault("cashUsdBenghazi", "USD cash (Benghazi)", Currency.USD)

        assert ledger.get_asset("cashUsdBenghazi").kind == AssetKind.CASH


class TestTrading:
    """Tests for buying and selling currency."""

    def test_buy_with_cash(self, funded_ledger):
        group_id = funded_ledger.buy_currency(
            Currency.USD, Decimal("1000"), Decimal("6.5"), "cashLydTripoli", "cashUsdLibya"
        )

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("43500")
        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("1000")

        group = funded_ledger.log.get_group(group_id)
        assert len(group.transactions) == 2
        operation = group.primary.operation
        assert isinstance(operation, BuyCurrency)
        assert operation.channel == Channel.CASH
        assert operation.lyd_amount == Decimal("6500")

    def test_buy_from_bank_uses_bank_channel(self, funded_ledger):
        group_id = funded_ledger.buy_currency(
            Currency.EUR, Decimal("100"), Decimal("7"), "wahda", "cashEurLibya"
        )

        operation = funded_ledger.log.get_group(group_id).primary.operation
        assert operation.channel == Channel.BANK
        assert _balance(funded_ledger, "wahda") == Decimal("19300")

    def test_buy_with_explicit_lyd_amount(self, funded_ledger):
        funded_ledger.buy_currency(
            Currency.USD,
            Decimal("100"),
            Decimal("6.5"),
            "cashLydTripoli",
            "cashUsdLibya",
            lyd_amount=Decimal("640"),
        )

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49360")

    def test_buy_rejects_reference_currency(self, funded_ledger):
        with pytest.raises(ValidationError):
            funded_ledger.buy_currency(
                Currency.LYD, Decimal("1"), Decimal("1"), "cashLydTripoli", "cashLydMisrata"
            )

    def test_buy_rejects_wrong_destination_currency(self, funded_ledger):
        with pytest.raises(ValidationError):
            funded_ledger.buy_currency(
                Currency.USD, Decimal("100"), Decimal("6.5"), "cashLydTripoli", "cashEurLibya"
            )

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("50000")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_buy_rejects_non_positive_amount(self, funded_ledger, amount):
        with pytest.raises(ValidationError):
            funded_ledger.buy_currency(
                Currency.USD, amount, Decimal("6.5"), "cashLydTripoli", "cashUsdLibya"
            )

    def test_sell_for_cash(self, funded_ledger):
        funded_ledger.buy_currency(
            Currency.USD, Decimal("100"), Decimal("10"), "cashLydTripoli", "cashUsdLibya"
        )
        group_id = funded_ledger.sell_currency(
            Currency.USD, Decimal("50"), Decimal("12"), "cashUsdLibya", lyd_destination="wahda"
        )

        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("50")
        assert _balance(funded_ledger, "wahda") == Decimal("20600")
        operation = funded_ledger.log.get_group(group_id).primary.operation
        assert isinstance(operation, SellCurrency)
        assert operation.channel == Channel.BANK
        assert operation.debt_installment_id is None

    def test_sell_on_credit_creates_debt(self, funded_ledger, lyd_customer):
        funded_ledger.buy_currency(
            Currency.USD, Decimal("100"), Decimal("10"), "cashLydTripoli", "cashUsdLibya"
        )
        group_id = funded_ledger.sell_currency(
            Currency.USD, Decimal("50"), Decimal("12"), "cashUsdLibya", customer_id=lyd_customer
        )

        assert funded_ledger.debts.customer_balance(lyd_customer) == Decimal("600")
        assert _balance(funded_ledger, "trade_debt") == Decimal("600")
        group = funded_ledger.log.get_group(group_id)
        assert EntryType.NEW_DEBT in {t.entry_type for t in group.transactions}
        assert group.primary.operation.debt_installment_id is not None

    def test_sell_needs_exactly_one_counterparty(self, funded_ledger, lyd_customer):
        with pytest.raises(ValidationError):
            funded_ledger.sell_currency(
                Currency.USD, Decimal("1"), Decimal("12"), "cashUsdLibya"
            )
        with pytest.raises(ValidationError):
            funded_ledger.sell_currency(
                Currency.USD,
                Decimal("1"),
                Decimal("12"),
                "cashUsdLibya",
                lyd_destination="cashLydTripoli",
                customer_id=lyd_customer,
            )


def _installment_of(ledger, group_id):
    return ledger.log.get_group(group_id).primary.operation.installment_id


def _receivable_of(ledger, group_id):
    return ledger.log.get_group(group_id).primary.operation.receivable_id


class TestTradeSettlements:
    """Tests for buys and sells set against debts and receivables."""

    @pytest.fixture
    def indebted(self, funded_ledger, lyd_customer):
        """Salem owes two installments, 300 then 500 LYD."""
        first = _installment_of(
            funded_ledger, funded_ledger.add_debt(lyd_customer, Decimal("300"), "cashLydTripoli")
        )
        second = _installment_of(
            funded_ledger, funded_ledger.add_debt(lyd_customer, Decimal("500"), "cashLydTripoli")
        )
        return first, second

    def test_buy_settles_debt_then_pays_the_rest(self, funded_ledger, lyd_customer, indebted):
        first, second = indebted

        group_id = funded_ledger.buy_currency(
            Currency.USD,
            Decimal("100"),
            Decimal("10"),
            "cashLydTripoli",
            "cashUsdLibya",
            settle_debt_customer_id=lyd_customer,
        )

        assert funded_ledger.db.get_installment(first).paid == Decimal("300")
        assert funded_ledger.db.get_installment(second).paid == Decimal("500")
        assert funded_ledger.debts.customer_balance(lyd_customer) == Decimal("0")
        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49000")
        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("100")
        assert funded_ledger.memo_balances("settlement") == {Currency.LYD: Decimal("800")}
        group = funded_ledger.log.get_group(group_id)
        assert EntryType.SETTLEMENT in {t.entry_type for t in group.transactions}
        operation = group.primary.operation
        assert operation.settled_installments == ((first, Decimal("300")), (second, Decimal("500")))
        assert operation.lyd_source == "cashLydTripoli"

    def test_buy_fully_covered_by_debt_needs_no_source(self, funded_ledger, lyd_customer, indebted):
        first, second = indebted

        group_id = funded_ledger.buy_currency(
            Currency.USD,
            Decimal("40"),
            Decimal("10"),
            None,
            "cashUsdLibya",
            settle_debt_customer_id=lyd_customer,
        )

        assert funded_ledger.db.get_installment(first).paid == Decimal("300")
        assert funded_ledger.db.get_installment(second).paid == Decimal("100")
        assert funded_ledger.debts.customer_balance(lyd_customer) == Decimal("400")
        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49200")
        group = funded_ledger.log.get_group(group_id)
        assert len(group.transactions) == 2
        assert group.primary.operation.lyd_source is None

    def test_buy_beyond_debt_without_source_rejected(self, funded_ledger, lyd_customer, indebted):
        first, _ = indebted

        with pytest.raises(ValidationError, match="remaining 200"):
            funded_ledger.buy_currency(
                Currency.USD,
                Decimal("100"),
                Decimal("10"),
                None,
                "cashUsdLibya",
                settle_debt_customer_id=lyd_customer,
            )

        assert funded_ledger.db.get_installment(first).paid == Decimal("0")
        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("0")

    def test_buy_cannot_settle_and_owe_at_once(self, funded_ledger, lyd_customer):
        with pytest.raises(ValidationError, match="not both"):
            funded_ledger.buy_currency(
                Currency.USD,
                Decimal("10"),
                Decimal("10"),
                None,
                "cashUsdLibya",
                settle_debt_customer_id=lyd_customer,
                receivable_debtor="Ali",
            )

    def test_buy_owed_to_seller(self, funded_ledger):
        group_id = funded_ledger.buy_currency(
            Currency.USD, Decimal("100"), Decimal("10"), None, "cashUsdLibya", receivable_debtor="Ali"
        )

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("50000")
        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("100")
        assert funded_ledger.debts.outstanding_receivables() == {Currency.LYD: Decimal("1000")}
        assert funded_ledger.memo_balances("trade_liability") == {Currency.LYD: Decimal("1000")}
        receivable = funded_ledger.db.get_receivable(_receivable_of(funded_ledger, group_id))
        assert receivable.debtor == "Ali"
        assert receivable.amount == Decimal("1000")

    def test_buy_owed_to_seller_takes_no_source(self, funded_ledger):
        with pytest.raises(ValidationError, match="no LYD source"):
            funded_ledger.buy_currency(
                Currency.USD,
                Decimal("100"),
                Decimal("10"),
                "cashLydTripoli",
                "cashUsdLibya",
                receivable_debtor="Ali",
            )

    @pytest.fixture
    def owed_to_ali(self, funded_ledger):
        """300 LYD owed to Ali and 100 USD in stock."""
        receivable_id = _receivable_of(
            funded_ledger,
            funded_ledger.add_receivable("Ali", Currency.LYD, Decimal("300"), "cashLydTripoli"),
        )
        funded_ledger.buy_currency(
            Currency.USD, Decimal("100"), Decimal("10"), "cashLydTripoli", "cashUsdLibya"
        )
        return receivable_id

    def test_sell_settles_receivable_and_deposits_excess(self, funded_ledger, owed_to_ali):
        group_id = funded_ledger.sell_currency(
            Currency.USD,
            Decimal("50"),
            Decimal("12"),
            "cashUsdLibya",
            lyd_destination="wahda",
            settle_receivable_id=owed_to_ali,
        )

        assert funded_ledger.db.get_receivable(owed_to_ali).paid == Decimal("300")
        assert funded_ledger.debts.outstanding_receivables() == {}
        assert _balance(funded_ledger, "wahda") == Decimal("20300")
        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("50")
        operation = funded_ledger.log.get_group(group_id).primary.operation
        assert operation.settled_amount == Decimal("300")
        assert operation.lyd_destination == "wahda"
        assert operation.channel == Channel.BANK

    def test_sell_excess_owed_by_customer(self, funded_ledger, owed_to_ali, lyd_customer):
        group_id = funded_ledger.sell_currency(
            Currency.USD,
            Decimal("50"),
            Decimal("12"),
            "cashUsdLibya",
            settle_receivable_id=owed_to_ali,
            excess_customer_id=lyd_customer,
        )

        assert funded_ledger.debts.customer_balance(lyd_customer) == Decimal("300")
        assert funded_ledger.memo_balances("trade_debt") == {Currency.LYD: Decimal("300")}
        operation = funded_ledger.log.get_group(group_id).primary.operation
        assert operation.excess_installment_id is not None
        assert operation.lyd_destination == "settlement"

    def test_sell_within_receivable_needs_no_destination(self, funded_ledger, owed_to_ali):
        funded_ledger.sell_currency(
            Currency.USD, Decimal("20"), Decimal("12"), "cashUsdLibya", settle_receivable_id=owed_to_ali
        )

        assert funded_ledger.db.get_receivable(owed_to_ali).outstanding == Decimal("60")
        assert funded_ledger.memo_balances("settlement") == {Currency.LYD: Decimal("240")}

    def test_sell_excess_without_destination_rejected(self, funded_ledger, owed_to_ali):
        with pytest.raises(ValidationError, match="exceed the receivable by 300"):
            funded_ledger.sell_currency(
                Currency.USD,
                Decimal("50"),
                Decimal("12"),
                "cashUsdLibya",
                settle_receivable_id=owed_to_ali,
            )

        assert funded_ledger.db.get_receivable(owed_to_ali).paid == Decimal("0")
        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("100")

    def test_sell_against_paid_receivable_rejected(self, funded_ledger, owed_to_ali):
        funded_ledger.pay_receivable(owed_to_ali, Decimal("300"), "cashLydTripoli")

        with pytest.raises(ConflictError, match="already paid"):
            funded_ledger.sell_currency(
                Currency.USD,
                Decimal("10"),
                Decimal("12"),
                "cashUsdLibya",
                lyd_destination="wahda",
                settle_receivable_id=owed_to_ali,
            )

    def test_sell_settlement_options_are_exclusive(self, funded_ledger, owed_to_ali, lyd_customer):
        with pytest.raises(ValidationError):
            funded_ledger.sell_currency(
                Currency.USD,
                Decimal("10"),
                Decimal("12"),
                "cashUsdLibya",
                customer_id=lyd_customer,
                settle_receivable_id=owed_to_ali,
            )
        with pytest.raises(ValidationError, match="excess customer"):
            funded_ledger.sell_currency(
                Currency.USD,
                Decimal("10"),
                Decimal("12"),
                "cashUsdLibya",
                lyd_destination="wahda",
                excess_customer_id=lyd_customer,
            )
        with pytest.raises(NotFoundError):
            funded_ledger.sell_currency(
                Currency.USD, Decimal("10"), Decimal("12"), "cashUsdLibya", settle_receivable_id=999
            )


class TestTransfers:
    """Tests for transfers and exchanges between assets."""

    def test_transfer_between_banks(self, funded_ledger):
        funded_ledger.add_bank("Jumhouria Bank", bank_id="jumhouria")
        funded_ledger.transfer_between_banks("wahda", "jumhouria", Decimal("2500"))

        assert _balance(funded_ledger, "wahda") == Decimal("17500")
        assert _balance(funded_ledger, "jumhouria") == Decimal("2500")

    def test_transfer_to_same_bank_rejected(self, funded_ledger):
        with pytest.raises(ValidationError):
            funded_ledger.transfer_between_banks("wahda", "wahda", Decimal("1"))

    def test_bank_cash_exchanges(self, funded_ledger):
        funded_ledger.exchange_bank_to_cash("wahda", "cashLydMisrata", Decimal("3000"))
        funded_ledger.exchange_cash_to_bank("cashLydTripoli", "wahda", Decimal("1000"))

        assert _balance(funded_ledger, "wahda") == Decimal("18000")
        assert _balance(funded_ledger, "cashLydMisrata") == Decimal("3000")
        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49000")

    def test_cash_exchange_with_difference_and_fee(self, funded_ledger):
        funded_ledger.adjust_asset_balance("cashUsdLibya", Decimal("1000"))
        group_id = funded_ledger.exchange_between_cash_assets(
            "cashUsdLibya",
            "cashUsdTurkey",
            Decimal("1000"),
            received_amount=Decimal("990"),
            fee=Decimal("50"),
            fee_asset="cashLydTripoli",
        )

        assert _balance(funded_ledger, "cashUsdLibya") == Decimal("0")
        assert _balance(funded_ledger, "cashUsdTurkey") == Decimal("990")
        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("50050")
        group = funded_ledger.log.get_group(group_id)
        assert len(group.transactions) == 3
        operation = group.primary.operation
        assert isinstance(operation, CashExchange)
        assert operation.is_loss and not operation.is_profit

    def test_cash_exchange_requires_same_currency(self, funded_ledger):
        with pytest.raises(ValidationError):
            funded_ledger.exchange_between_cash_assets(
                "cashUsdLibya", "cashEurLibya", Decimal("10")
            )

    def test_cash_exchange_fee_needs_asset(self, funded_ledger):
        with pytest.raises(ValidationError):
            funded_ledger.exchange_between_cash_assets(
                "cashLydTripoli", "cashLydMisrata", Decimal("10"), fee=Decimal("1")
            )

    def test_cash_exchange_fee_owed_by_customer(self, funded_ledger, lyd_customer):
        funded_ledger.adjust_asset_balance("cashUsdLibya", Decimal("1000"))
        group_id = funded_ledger.exchange_between_cash_assets(
            "cashUsdLibya",
            "cashUsdTurkey",
            Decimal("1000"),
            fee=Decimal("50"),
            fee_customer_id=lyd_customer,
        )

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("50000")
        assert funded_ledger.debts.customer_balance(lyd_customer) == Decimal("50")
        assert funded_ledger.memo_balances("trade_debt") == {Currency.LYD: Decimal("50")}
        fee_leg = [t for t in funded_ledger.log.get_group(group_id).transactions if t.asset_id == "trade_debt"]
        assert fee_leg[0].operation.installment_id is not None
        assert fee_leg[0].entry_type == EntryType.NEW_DEBT

    def test_cash_exchange_fee_owed_to_debtor(self, funded_ledger):
        funded_ledger.exchange_between_cash_assets(
            "cashLydTripoli",
            "cashLydMisrata",
            Decimal("1000"),
            fee=Decimal("-30"),
            fee_debtor="Broker",
        )

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49000")
        assert funded_ledger.debts.outstanding_receivables() == {Currency.LYD: Decimal("30")}
        assert funded_ledger.memo_balances("trade_liability") == {Currency.LYD: Decimal("-30")}

    def test_cash_exchange_fee_direction_must_fit_handler(self, funded_ledger, lyd_customer):
        with pytest.raises(ValidationError, match="earns"):
            funded_ledger.exchange_between_cash_assets(
                "cashLydTripoli", "cashLydMisrata", Decimal("10"),
                fee=Decimal("-5"), fee_customer_id=lyd_customer,
            )
        with pytest.raises(ValidationError, match="pays"):
            funded_ledger.exchange_between_cash_assets(
                "cashLydTripoli", "cashLydMisrata", Decimal("10"),
                fee=Decimal("5"), fee_debtor="Broker",
            )
        with pytest.raises(ValidationError, match="owed by a customer"):
            funded_ledger.exchange_between_cash_assets(
                "cashLydTripoli", "cashLydMisrata", Decimal("10"),
                fee=Decimal("5"), fee_asset="cashLydTripoli", fee_customer_id=lyd_customer,
            )
        assert funded_ledger.debts.outstanding_receivables() == {}


class TestMemoBalances:
    """Memo accounts are reported per currency."""

    def test_memo_balances_split_by_currency(self, ledger, lyd_customer):
        usd_customer = ledger.debts.create_customer("Omar", Currency.USD)
        ledger.add_debt(lyd_customer, Decimal("1000"))
        usd_group = ledger.add_debt(usd_customer, Decimal("200"))

        assert ledger.memo_balances("external") == {
            Currency.LYD: Decimal("-1000"),
            Currency.USD: Decimal("-200"),
        }

        ledger.delete_group(usd_group)
        assert ledger.memo_balances("external") == {Currency.LYD: Decimal("-1000")}

    def test_untouched_memo_account_is_empty(self, ledger):
        assert ledger.memo_balances("settlement") == {}


class TestPos:
    """Tests for POS settlements."""

    def test_record_pos_transaction(self, funded_ledger):
        group_id = funded_ledger.record_pos_transaction(
            "wahda",
            "cashLydTripoli",
            total_amount=Decimal("1000"),
            commission_rate=Decimal("0.03"),
            bank_deposit=Decimal("1000"),
            cash_given=Decimal("970"),
            transaction_count=2,
        )

        assert _balance(funded_ledger, "wahda") == Decimal("21000")
        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49030")
        operation = funded_ledger.log.get_group(group_id).primary.operation
        assert isinstance(operation, PosSale)
        assert operation.net_profit == Decimal("30")

    def test_pos_requires_enabled_bank(self, funded_ledger):
        funded_ledger.add_bank("Jumhouria Bank", bank_id="jumhouria")

        with pytest.raises(ValidationError, match="POS"):
            funded_ledger.record_pos_transaction(
                "jumhouria",
                "cashLydTripoli",
                total_amount=Decimal("100"),
                commission_rate=Decimal("0.03"),
                bank_deposit=Decimal("100"),
                cash_given=Decimal("97"),
            )


class TestCostsAndAdjustments:
    """Tests for operating costs and manual adjustments."""

    def test_operating_cost_from_cash(self, funded_ledger):
        group_id = funded_ledger.add_operating_cost("Fuel", Decimal("100"), "cashLydTripoli")

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49900")
        operation = funded_ledger.log.get_group(group_id).primary.operation
        assert isinstance(operation, OperatingCost)
        assert operation.cost_date == date(2024, 1, 15)
        assert operation.is_external is False

    def test_external_operating_cost_leaves_capital_alone(self, funded_ledger):
        before = funded_ledger.compute_capital().totals[Currency.LYD]

        funded_ledger.add_operating_cost(
            "Rent", Decimal("500"), "external", cost_date=date(2024, 1, 10)
        )

        assert funded_ledger.compute_capital().totals[Currency.LYD] == before
        assert _balance(funded_ledger, "external") == Decimal("-500")

    def test_adjustment_flags_are_checked(self, funded_ledger):
        with pytest.raises(ValidationError):
            funded_ledger.adjust_asset_balance("cashLydTripoli", Decimal("-5"), is_profit=True)
        with pytest.raises(ValidationError):
            funded_ledger.adjust_asset_balance("cashLydTripoli", Decimal("5"), is_loss=True)
        with pytest.raises(ValidationError):
            funded_ledger.adjust_asset_balance("cashLydTripoli", Decimal("0"))

    def test_bank_adjustment_is_manual_update(self, funded_ledger):
        group_id = funded_ledger.adjust_asset_balance("wahda", Decimal("-20"), note="Bank fee")

        txn = funded_ledger.log.get_group(group_id).transactions[0]
        assert txn.entry_type == EntryType.MANUAL_BANK_UPDATE

    def test_set_asset_balance(self, funded_ledger):
        funded_ledger.set_asset_balance("cashLydTripoli", Decimal("48000"), note="Count")

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("48000")


class TestDebtOperations:
    """Tests for lending, collecting and receivables."""

    def test_add_and_pay_debt(self, funded_ledger, lyd_customer):
        group_id = funded_ledger.add_debt(lyd_customer, Decimal("1000"), "cashLydTripoli")
        installment_id = funded_ledger.log.get_group(group_id).primary.operation.installment_id

        funded_ledger.pay_debt(installment_id, Decimal("400"), "wahda")

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("49000")
        assert _balance(funded_ledger, "wahda") == Decimal("20400")
        assert funded_ledger.debts.customer_balance(lyd_customer) == Decimal("600")

    def test_overpayment_rejected(self, funded_ledger, lyd_customer):
        group_id = funded_ledger.add_debt(lyd_customer, Decimal("100"))
        installment_id = funded_ledger.log.get_group(group_id).primary.operation.installment_id

        with pytest.raises(ValidationError, match="exceeds"):
            funded_ledger.pay_debt(installment_id, Decimal("150"), "cashLydTripoli")

    def test_debt_for_archived_customer_rejected(self, funded_ledger, lyd_customer):
        funded_ledger.debts.archive_customer(lyd_customer)

        with pytest.raises(ConflictError):
            funded_ledger.add_debt(lyd_customer, Decimal("100"))

    def test_debt_for_unknown_customer(self, funded_ledger):
        with pytest.raises(NotFoundError):
            funded_ledger.add_debt(999, Decimal("100"))

    def test_add_and_pay_receivable(self, funded_ledger):
        group_id = funded_ledger.add_receivable(
            "Ali", Currency.LYD, Decimal("300"), "cashLydTripoli"
        )
        receivable_id = funded_ledger.log.get_group(group_id).primary.operation.receivable_id

        funded_ledger.pay_receivable(receivable_id, Decimal("100"), "cashLydTripoli")

        assert _balance(funded_ledger, "cashLydTripoli") == Decimal("50200")
        assert funded_ledger.debts.outstanding_receivables() == {Currency.LYD: Decimal("200")}


class TestAtomicity:
    """Tests for permission checks and unit-of-work rollback."""

    def test_permission_denied_before_mutation(self, temp_db, clock):
        ledger = Ledger(
            temp_db, clock=clock, has_permission=lambda category, action: category != "banks"
        )

        with pytest.raises(PermissionDeniedError):
            ledger.add_bank("Wahda Bank")

        assert ledger.list_banks() == []

    def test_actor_is_recorded(self, temp_db, clock):
        ledger = Ledger(temp_db, clock=clock, actor="cashier")
        group_id = ledger.adjust_asset_balance("cashLydTripoli", Decimal("10"))

        assert ledger.log.get_group(group_id).transactions[0].actor == "cashier"

    def test_failed_unit_of_work_rolls_back(self, ledger):
        with pytest.raises(RuntimeError):
            with ledger.db.atomic():
                ledger.db.apply_balance_delta("cashLydTripoli", Decimal("100"))
                raise RuntimeError("boom")

        assert _balance(ledger, "cashLydTripoli") == Decimal("0")
