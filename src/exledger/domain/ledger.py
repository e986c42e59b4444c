"""Ledger service: the domain operations of the exchange business.

Every operation posts one group of transactions sharing a group id and
applies the matching balance deltas inside a single unit of work, so a group
is either fully recorded or not at all. Balances are never written any other
way; reversal goes through ``GroupReversalService``.
"""

import dataclasses
import uuid
from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Any, Callable, Optional

from exledger.database.base import Database
from exledger.domain.capital import CapitalCalculator
from exledger.domain.clock import Clock, SystemClock
from exledger.domain.debts import DebtService
from exledger.domain.entities import (
    Asset,
    AssetKind,
    CapitalComputation,
    CapitalHistoryEntry,
    Channel,
    Currency,
    EntryType,
    REFERENCE_CURRENCY,
    TransactionDraft,
    TransactionGroup,
)
from exledger.domain.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    asset_not_found,
    installment_not_found,
    permission_denied,
    receivable_not_found,
)
from exledger.domain.operations import (
    AssetAdjustment,
    BankCashExchange,
    BankTransfer,
    BuyCurrency,
    CashExchange,
    DebtPayment,
    ExchangeFee,
    NewDebt,
    NewReceivable,
    OperatingCost,
    PosSale,
    ReceivablePayment,
    SellCurrency,
)
from exledger.domain.reversal import GroupReversalService
from exledger.domain.transaction_log import TransactionLog
from exledger.logging_config import get_logger

logger = get_logger("domain.ledger")

PermissionCheck = Callable[[str, str], bool]

# (asset id, display name, currency)
DEFAULT_CASH_VAULTS = (
    ("cashLydMisrata", "LYD cash (Misrata)", Currency.LYD),
    ("cashLydTripoli", "LYD cash (Tripoli)", Currency.LYD),
    ("cashLydZliten", "LYD cash (Zliten)", Currency.LYD),
    ("cashUsdLibya", "USD cash (Libya)", Currency.USD),
    ("cashUsdTurkey", "USD cash (Turkey)", Currency.USD),
    ("cashTnd", "TND cash", Currency.TND),
    ("cashEurLibya", "EUR cash (Libya)", Currency.EUR),
    ("cashEurTurkey", "EUR cash (Turkey)", Currency.EUR),
    ("cashSar", "SAR cash", Currency.SAR),
    ("cashEgp", "EGP cash", Currency.EGP),
)

SETTLEMENT = "settlement"
TRADE_DEBT = "trade_debt"
TRADE_LIABILITY = "trade_liability"
EXTERNAL = "external"

MEMO_ASSETS = (
    (SETTLEMENT, "Settlements"),
    (TRADE_DEBT, "Sales on credit"),
    (TRADE_LIABILITY, "Purchases on credit"),
    (EXTERNAL, "External funds"),
)


def seed_default_assets(db: Database, include_vaults: bool = True) -> None:
    """Create the default cash vaults and memo accounts that do not exist yet."""
    with db.atomic():
        if include_vaults:
            for asset_id, name, currency in DEFAULT_CASH_VAULTS:
                if db.get_asset(asset_id) is None:
                    db.create_asset(asset_id, name, AssetKind.CASH, currency)
        for asset_id, name in MEMO_ASSETS:
            if db.get_asset(asset_id) is None:
                db.create_asset(asset_id, name, AssetKind.MEMO, None)


def _amount(value: Any, name: str = "Amount") -> Decimal:
    """Coerce to a finite Decimal, raising ValidationError otherwise."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError):
            raise ValidationError(f"{name} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{name} must be finite, got {value!r}")
    return result


def _positive(value: Any, name: str = "Amount") -> Decimal:
    result = _amount(value, name)
    if result <= 0:
        raise ValidationError(f"{name} must be positive, got {result}")
    return result


class Ledger:
    """Entry point for every money-moving operation.

    Args:
        db: Database instance
        clock: Time source for transactions and closings
        has_permission: Optional ``(category, action) -> bool`` gate checked
            before every mutating operation
        actor: Name recorded on every transaction posted through this ledger
        seed_defaults: Create the default cash vaults and memo accounts when
            they are missing
    """

    def __init__(
        self,
        db: Database,
        clock: Optional[Clock] = None,
        has_permission: Optional[PermissionCheck] = None,
        actor: Optional[str] = None,
        seed_defaults: bool = True,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.has_permission = has_permission
        self.actor = actor
        self.log = TransactionLog(db, self.clock)
        self.reversal = GroupReversalService(db, self.log)
        self.debts = DebtService(db)
        self.capital = CapitalCalculator(db, self.clock)
        self.history = self.capital.history
        if seed_defaults:
            self.ensure_default_assets()

    # Assets
    def ensure_default_assets(self) -> None:
        """Create any missing default cash vault or memo account."""
        seed_default_assets(self.db)

    def balances(self) -> Mapping[str, Asset]:
        """Read-only snapshot of every asset keyed by id."""
        return MappingProxyType({asset.id: asset for asset in self.db.list_assets()})

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        """Get asset by ID."""
        return self.db.get_asset(asset_id)

    def memo_balances(self, asset_id: str) -> dict[Currency, Decimal]:
        """Totals per currency of the active transactions on a memo account.

        Memo accounts collect legs in several currencies, so their single
        stored balance is not meaningful on its own.
        """
        totals: dict[Currency, Decimal] = {}
        for txn in self.log.query(asset_id=asset_id, ascending=True):
            totals[txn.currency] = totals.get(txn.currency, Decimal("0")) + txn.amount
        return {currency: total for currency, total in totals.items() if total != 0}

    def list_banks(self) -> list[Asset]:
        return self.db.list_assets(kind=AssetKind.BANK)

    def add_bank(
        self,
        name: str,
        opening_balance: Decimal = Decimal("0"),
        is_pos_enabled: bool = False,
        bank_id: Optional[str] = None,
    ) -> str:
        """Open a LYD bank account.

        Args:
            name: Bank display name
            opening_balance: Balance the account starts with
            is_pos_enabled: Whether card payments settle into this account
            bank_id: Explicit id (generated when omitted)

        Returns:
            Bank asset ID

        Raises:
            ValidationError: If the name is empty or the balance is invalid
            ConflictError: If the id is already taken
        """
        self._check("banks", "create")
        if not name or not name.strip():
            raise ValidationError("Bank name is required")
        opening = _amount(opening_balance, "Opening balance")
        asset_id = bank_id or f"bank_{uuid.uuid4().hex[:8]}"
        if self.db.get_asset(asset_id) is not None:
            raise ConflictError(f"Asset '{asset_id}' already exists")
        with self.db.atomic():
            self.db.create_asset(
                asset_id,
                name.strip(),
                AssetKind.BANK,
                REFERENCE_CURRENCY,
                opening_balance=opening,
                is_pos_enabled=is_pos_enabled,
            )
        logger.info("Added bank %s (%s)", asset_id, name)
        return asset_id

    def add_cash_vault(
        self,
        asset_id: str,
        name: str,
        currency: Currency,
        opening_balance: Decimal = Decimal("0"),
    ) -> str:
        """Create an additional cash vault."""
        self._check("cash", "create")
        if not asset_id or not name:
            raise ValidationError("Cash vault id and name are required")
        if self.db.get_asset(asset_id) is not None:
            raise ConflictError(f"Asset '{asset_id}' already exists")
        with self.db.atomic():
            self.db.create_asset(
                asset_id,
                name,
                AssetKind.CASH,
                currency,
                opening_balance=_amount(opening_balance, "Opening balance"),
            )
        logger.info("Added cash vault %s (%s)", asset_id, currency.value)
        return asset_id

    # Currency trading
    def buy_currency(
        self,
        currency: Currency,
        foreign_amount: Decimal,
        rate: Decimal,
        lyd_source: Optional[str],
        destination: str,
        note: str = "",
        lyd_amount: Optional[Decimal] = None,
        settle_debt_customer_id: Optional[int] = None,
        receivable_debtor: Optional[str] = None,
    ) -> str:
        """Buy foreign currency with LYD.

        The price is paid from ``lyd_source``, or instead:

        - ``settle_debt_customer_id``: the seller owes the business LYD and
          the price pays down their open installments, oldest first. Anything
          above their outstanding debt is paid from ``lyd_source``.
        - ``receivable_debtor``: the price is owed to the seller as a new LYD
          receivable.

        Args:
            currency: Foreign currency bought
            foreign_amount: Amount of foreign currency received
            rate: LYD paid per unit
            lyd_source: LYD cash vault or bank paying for it
            destination: Cash vault receiving the foreign currency
            note: Free text
            lyd_amount: LYD actually paid (foreign_amount x rate by default)
            settle_debt_customer_id: LYD customer whose debt settles the price
            receivable_debtor: Party the price is owed to

        Returns:
            Group ID
        """
        self._check("trades", "buy")
        self._require_foreign(currency)
        if settle_debt_customer_id is not None and receivable_debtor is not None:
            raise ValidationError("A purchase is settled against a debt or owed as a receivable, not both")
        foreign_amount = _positive(foreign_amount, "Foreign amount")
        rate = _positive(rate, "Rate")
        lyd = _positive(lyd_amount, "LYD amount") if lyd_amount is not None else foreign_amount * rate
        target = self._require_asset(destination, currency, AssetKind.CASH)

        if receivable_debtor is not None:
            if lyd_source:
                raise ValidationError("A purchase owed to the seller has no LYD source")
            return self._buy_on_receivable(currency, foreign_amount, rate, lyd, target, receivable_debtor, note)

        settlements: list[tuple[int, Decimal]] = []
        party = ""
        if settle_debt_customer_id is not None:
            customer = self._require_active_customer(settle_debt_customer_id, REFERENCE_CURRENCY)
            settlements = self._allocate_to_installments(customer, lyd)
            party = customer.name
        settled = sum((amount for _, amount in settlements), Decimal("0"))
        remaining = lyd - settled

        source = None
        if remaining > 0:
            if not lyd_source:
                raise ValidationError(f"A LYD source is needed to pay the remaining {remaining}")
            source = self._require_money_asset(lyd_source, REFERENCE_CURRENCY)
        channel = Channel.BANK if source is not None and source.kind == AssetKind.BANK else Channel.CASH

        operation = BuyCurrency(
            currency=currency,
            foreign_amount=foreign_amount,
            rate=rate,
            lyd_amount=lyd,
            channel=channel,
            destination=target.id,
            lyd_source=source.id if source is not None else None,
            note=note,
            settled_installments=tuple(settlements),
        )
        description = f"Buy {foreign_amount} {currency.value} at {rate}"
        if party:
            description = f"{description} against the debt of {party}"
        drafts = []
        if settled > 0:
            drafts.append(
                self._draft(
                    self._require_asset(SETTLEMENT),
                    settled,
                    description,
                    operation,
                    currency=REFERENCE_CURRENCY,
                    entry_type=EntryType.SETTLEMENT,
                    related_party=party,
                )
            )
        if source is not None:
            drafts.append(self._draft(source, -remaining, description, operation, related_party=party))
        drafts.append(self._draft(target, foreign_amount, description, operation, related_party=party))

        with self.db.atomic():
            for installment_id, amount in settlements:
                installment = self.db.get_installment(installment_id)
                self.db.update_installment(installment_id, paid=installment.paid + amount)
            return self._post(description, drafts)

    def _buy_on_receivable(
        self,
        currency: Currency,
        foreign_amount: Decimal,
        rate: Decimal,
        lyd: Decimal,
        target: Asset,
        debtor: str,
        note: str,
    ) -> str:
        if not debtor.strip():
            raise ValidationError("Debtor name is required")
        debtor = debtor.strip()
        memo = self._require_asset(TRADE_LIABILITY)
        description = f"Buy {foreign_amount} {currency.value} at {rate} owed to {debtor}"
        with self.db.atomic():
            receivable_id = self.db.create_receivable(debtor, REFERENCE_CURRENCY, lyd, self.clock.now())
            operation = BuyCurrency(
                currency=currency,
                foreign_amount=foreign_amount,
                rate=rate,
                lyd_amount=lyd,
                channel=Channel.CASH,
                destination=target.id,
                note=note,
                receivable_id=receivable_id,
            )
            return self._post(
                description,
                [
                    self._draft(target, foreign_amount, description, operation, related_party=debtor),
                    self._draft(
                        memo,
                        lyd,
                        description,
                        operation,
                        currency=REFERENCE_CURRENCY,
                        entry_type=EntryType.NEW_RECEIVABLE,
                        related_party=debtor,
                    ),
                ],
            )

    def sell_currency(
        self,
        currency: Currency,
        foreign_amount: Decimal,
        rate: Decimal,
        source: str,
        lyd_destination: Optional[str] = None,
        customer_id: Optional[int] = None,
        note: str = "",
        lyd_amount: Optional[Decimal] = None,
        settle_receivable_id: Optional[int] = None,
        excess_customer_id: Optional[int] = None,
    ) -> str:
        """Sell foreign currency for LYD.

        The proceeds go to exactly one of:

        - ``lyd_destination``: a cash vault or bank, paid now
        - ``customer_id``: a LYD customer who owes them as a new installment
        - ``settle_receivable_id``: a LYD receivable the business owes the
          buyer, paid down by the proceeds. Proceeds above what is still
          owed are deposited into ``lyd_destination`` or become a new
          installment of ``excess_customer_id``.

        Returns:
            Group ID
        """
        self._check("trades", "sell")
        self._require_foreign(currency)
        if customer_id is not None and settle_receivable_id is not None:
            raise ValidationError("A sale is made on credit or settles a receivable, not both")
        if settle_receivable_id is None:
            if excess_customer_id is not None:
                raise ValidationError("An excess customer only applies when settling a receivable")
            if (lyd_destination is None) == (customer_id is None):
                raise ValidationError("Give either a LYD destination or a customer for a credit sale")
        foreign_amount = _positive(foreign_amount, "Foreign amount")
        rate = _positive(rate, "Rate")
        lyd = _positive(lyd_amount, "LYD amount") if lyd_amount is not None else foreign_amount * rate

        origin = self._require_asset(source, currency, AssetKind.CASH)
        description = f"Sell {foreign_amount} {currency.value} at {rate}"

        if settle_receivable_id is not None:
            return self._sell_against_receivable(
                currency, foreign_amount, rate, lyd, origin, settle_receivable_id,
                lyd_destination, excess_customer_id, note, description,
            )

        if customer_id is None:
            target = self._require_money_asset(lyd_destination, REFERENCE_CURRENCY)
            operation = SellCurrency(
                currency=currency,
                foreign_amount=foreign_amount,
                rate=rate,
                lyd_amount=lyd,
                channel=Channel.BANK if target.kind == AssetKind.BANK else Channel.CASH,
                source=origin.id,
                lyd_destination=target.id,
                note=note,
            )
            return self._post(
                description,
                [
                    self._draft(origin, -foreign_amount, description, operation),
                    self._draft(target, lyd, description, operation),
                ],
            )

        customer = self._require_active_customer(customer_id, REFERENCE_CURRENCY)
        memo = self._require_asset(TRADE_DEBT)
        with self.db.atomic():
            installment_id = self.db.create_installment(customer.id, lyd, self.clock.now())
            operation = SellCurrency(
                currency=currency,
                foreign_amount=foreign_amount,
                rate=rate,
                lyd_amount=lyd,
                channel=Channel.CASH,
                source=origin.id,
                lyd_destination=TRADE_DEBT,
                note=note,
                debt_installment_id=installment_id,
            )
            return self._post(
                description,
                [
                    self._draft(origin, -foreign_amount, description, operation),
                    self._draft(
                        memo,
                        lyd,
                        description,
                        operation,
                        currency=REFERENCE_CURRENCY,
                        entry_type=EntryType.NEW_DEBT,
                        related_party=customer.name,
                    ),
                ],
            )

    def _sell_against_receivable(
        self,
        currency: Currency,
        foreign_amount: Decimal,
        rate: Decimal,
        lyd: Decimal,
        origin: Asset,
        receivable_id: int,
        lyd_destination: Optional[str],
        excess_customer_id: Optional[int],
        note: str,
        description: str,
    ) -> str:
        receivable = self.db.get_receivable(receivable_id)
        if receivable is None:
            raise NotFoundError(receivable_not_found(receivable_id))
        if receivable.is_voided:
            raise ConflictError(f"Receivable {receivable_id} has been voided")
        if receivable.currency != REFERENCE_CURRENCY:
            raise ValidationError(
                f"Receivable {receivable_id} is held in {receivable.currency.value}, not LYD"
            )
        if receivable.outstanding <= 0:
            raise ConflictError(f"Receivable {receivable_id} is already paid")
        if lyd_destination is not None and excess_customer_id is not None:
            raise ValidationError("Excess proceeds go to a LYD destination or a customer, not both")

        settled = min(lyd, receivable.outstanding)
        excess = lyd - settled
        party = receivable.debtor
        description = f"{description} settling the receivable of {party}"

        target = None
        excess_customer = None
        if excess > 0:
            if excess_customer_id is not None:
                excess_customer = self._require_active_customer(excess_customer_id, REFERENCE_CURRENCY)
            elif lyd_destination is not None:
                target = self._require_money_asset(lyd_destination, REFERENCE_CURRENCY)
            else:
                raise ValidationError(
                    f"Proceeds exceed the receivable by {excess}; give a LYD destination or an excess customer"
                )

        with self.db.atomic():
            excess_installment_id = None
            if excess_customer is not None:
                excess_installment_id = self.db.create_installment(
                    excess_customer.id, excess, self.clock.now()
                )
            operation = SellCurrency(
                currency=currency,
                foreign_amount=foreign_amount,
                rate=rate,
                lyd_amount=lyd,
                channel=Channel.BANK if target is not None and target.kind == AssetKind.BANK else Channel.CASH,
                source=origin.id,
                lyd_destination=target.id if target is not None else SETTLEMENT,
                note=note,
                receivable_id=receivable.id,
                settled_amount=settled,
                excess_installment_id=excess_installment_id,
            )
            drafts = [self._draft(origin, -foreign_amount, description, operation, related_party=party)]
            if settled > 0:
                drafts.append(
                    self._draft(
                        self._require_asset(SETTLEMENT),
                        settled,
                        description,
                        operation,
                        currency=REFERENCE_CURRENCY,
                        entry_type=EntryType.SETTLEMENT,
                        related_party=party,
                    )
                )
            if target is not None:
                drafts.append(self._draft(target, excess, description, operation, related_party=party))
            if excess_customer is not None:
                drafts.append(
                    self._draft(
                        self._require_asset(TRADE_DEBT),
                        excess,
                        description,
                        operation,
                        currency=REFERENCE_CURRENCY,
                        entry_type=EntryType.NEW_DEBT,
                        related_party=excess_customer.name,
                    )
                )
            self.db.update_receivable(receivable.id, paid=receivable.paid + settled)
            return self._post(description, drafts)

    # Transfers
    def transfer_between_banks(
        self, from_bank: str, to_bank: str, amount: Decimal, note: str = ""
    ) -> str:
        """Move LYD from one bank account to another."""
        self._check("transfers", "bank")
        amount = _positive(amount)
        if from_bank == to_bank:
            raise ValidationError("Source and destination banks must differ")
        source = self._require_asset(from_bank, REFERENCE_CURRENCY, AssetKind.BANK)
        target = self._require_asset(to_bank, REFERENCE_CURRENCY, AssetKind.BANK)
        operation = BankTransfer(from_bank=source.id, to_bank=target.id, amount=amount)
        description = note or f"Transfer {amount} LYD from {source.name} to {target.name}"
        return self._post(
            description,
            [
                self._draft(source, -amount, description, operation),
                self._draft(target, amount, description, operation),
            ],
        )

    def exchange_bank_to_cash(
        self, bank_id: str, cash_asset_id: str, amount: Decimal, note: str = ""
    ) -> str:
        """Withdraw LYD from a bank into a cash vault."""
        self._check("transfers", "bank_cash")
        amount = _positive(amount)
        bank = self._require_asset(bank_id, REFERENCE_CURRENCY, AssetKind.BANK)
        cash = self._require_asset(cash_asset_id, REFERENCE_CURRENCY, AssetKind.CASH)
        operation = BankCashExchange(
            bank_id=bank.id, cash_asset_id=cash.id, amount=amount, to_cash=True
        )
        description = note or f"Withdraw {amount} LYD from {bank.name} to {cash.name}"
        return self._post(
            description,
            [
                self._draft(bank, -amount, description, operation),
                self._draft(cash, amount, description, operation),
            ],
        )

    def exchange_cash_to_bank(
        self, cash_asset_id: str, bank_id: str, amount: Decimal, note: str = ""
    ) -> str:
        """Deposit LYD from a cash vault into a bank."""
        self._check("transfers", "bank_cash")
        amount = _positive(amount)
        cash = self._require_asset(cash_asset_id, REFERENCE_CURRENCY, AssetKind.CASH)
        bank = self._require_asset(bank_id, REFERENCE_CURRENCY, AssetKind.BANK)
        operation = BankCashExchange(
            bank_id=bank.id, cash_asset_id=cash.id, amount=amount, to_cash=False
        )
        description = note or f"Deposit {amount} LYD from {cash.name} to {bank.name}"
        return self._post(
            description,
            [
                self._draft(cash, -amount, description, operation),
                self._draft(bank, amount, description, operation),
            ],
        )

    def exchange_between_cash_assets(
        self,
        from_asset: str,
        to_asset: str,
        amount: Decimal,
        received_amount: Optional[Decimal] = None,
        fee: Optional[Decimal] = None,
        fee_asset: Optional[str] = None,
        note: str = "",
        fee_customer_id: Optional[int] = None,
        fee_debtor: Optional[str] = None,
    ) -> str:
        """Move cash between two vaults of the same currency.

        Args:
            from_asset: Vault sending the money
            to_asset: Vault receiving it
            amount: Amount sent
            received_amount: Amount that arrived (defaults to amount); the
                difference is recorded as profit or loss
            fee: LYD fee, positive when earned and negative when paid
            fee_asset: LYD cash vault or bank the fee is settled in
            fee_customer_id: LYD customer who owes an earned fee instead
            fee_debtor: Party a paid fee is owed to instead

        Returns:
            Group ID
        """
        self._check("transfers", "cash")
        amount = _positive(amount)
        received = _amount(received_amount, "Received amount") if received_amount is not None else amount
        if received < 0:
            raise ValidationError(f"Received amount cannot be negative, got {received}")
        if from_asset == to_asset:
            raise ValidationError("Source and destination vaults must differ")

        source = self._require_asset(from_asset, kind=AssetKind.CASH)
        target = self._require_asset(to_asset, source.currency, AssetKind.CASH)

        operation = CashExchange(
            from_asset=source.id,
            to_asset=target.id,
            amount=amount,
            received_amount=received,
            is_profit=received > amount,
            is_loss=received < amount,
        )
        description = note or (
            f"Move {amount} {source.currency.value} from {source.name} to {target.name}"
        )
        drafts = [
            self._draft(source, -amount, description, operation),
            self._draft(target, received, description, operation),
        ]

        fee_value = _amount(fee, "Fee") if fee is not None else Decimal("0")
        if fee_value == 0:
            return self._post(description, drafts)

        handlers = [h for h in (fee_asset, fee_customer_id, fee_debtor) if h is not None]
        if len(handlers) != 1:
            raise ValidationError("A fee is settled in a LYD asset, owed by a customer or owed to a debtor")
        fee_description = f"Exchange fee: {description}"

        if fee_asset is not None:
            fee_target = self._require_money_asset(fee_asset, REFERENCE_CURRENCY)
            drafts.append(
                self._draft(
                    fee_target,
                    fee_value,
                    fee_description,
                    ExchangeFee(amount=fee_value, fee_asset=fee_target.id),
                    related_party="Exchange fee",
                )
            )
            return self._post(description, drafts)

        if fee_customer_id is not None:
            if fee_value < 0:
                raise ValidationError("Only a fee the business earns can be owed by a customer")
            customer = self._require_active_customer(fee_customer_id, REFERENCE_CURRENCY)
            with self.db.atomic():
                installment_id = self.db.create_installment(customer.id, fee_value, self.clock.now())
                drafts.append(
                    self._draft(
                        self._require_asset(TRADE_DEBT),
                        fee_value,
                        fee_description,
                        ExchangeFee(amount=fee_value, fee_asset=TRADE_DEBT, installment_id=installment_id),
                        currency=REFERENCE_CURRENCY,
                        entry_type=EntryType.NEW_DEBT,
                        related_party=customer.name,
                    )
                )
                return self._post(description, drafts)

        if fee_value > 0:
            raise ValidationError("Only a fee the business pays can be owed to a debtor")
        if not fee_debtor.strip():
            raise ValidationError("Debtor name is required")
        debtor = fee_debtor.strip()
        with self.db.atomic():
            receivable_id = self.db.create_receivable(debtor, REFERENCE_CURRENCY, -fee_value, self.clock.now())
            drafts.append(
                self._draft(
                    self._require_asset(TRADE_LIABILITY),
                    fee_value,
                    fee_description,
                    ExchangeFee(amount=fee_value, fee_asset=TRADE_LIABILITY, receivable_id=receivable_id),
                    currency=REFERENCE_CURRENCY,
                    entry_type=EntryType.NEW_RECEIVABLE,
                    related_party=debtor,
                )
            )
            return self._post(description, drafts)

    # Point of sale
    def record_pos_transaction(
        self,
        bank_id: str,
        cash_asset_id: str,
        total_amount: Decimal,
        commission_rate: Decimal,
        bank_deposit: Decimal,
        cash_given: Decimal,
        transaction_count: int = 1,
        note: str = "",
    ) -> str:
        """Record card payments settled into a bank in exchange for cash.

        The net profit is the bank deposit less the cash handed out.
        """
        self._check("pos", "create")
        total_amount = _positive(total_amount, "Total amount")
        commission_rate = _amount(commission_rate, "Commission rate")
        bank_deposit = _positive(bank_deposit, "Bank deposit")
        cash_given = _amount(cash_given, "Cash given")
        if cash_given < 0:
            raise ValidationError(f"Cash given cannot be negative, got {cash_given}")
        if transaction_count < 1:
            raise ValidationError("Transaction count must be at least 1")

        bank = self._require_asset(bank_id, REFERENCE_CURRENCY, AssetKind.BANK)
        if not bank.is_pos_enabled:
            raise ValidationError(f"Bank '{bank.id}' does not accept POS payments")
        cash = self._require_asset(cash_asset_id, REFERENCE_CURRENCY, AssetKind.CASH)

        operation = PosSale(
            bank_id=bank.id,
            cash_asset_id=cash.id,
            total_amount=total_amount,
            commission_rate=commission_rate,
            bank_deposit=bank_deposit,
            cash_given=cash_given,
            transaction_count=transaction_count,
            net_profit=bank_deposit - cash_given,
        )
        description = f"POS deposit ({transaction_count} transactions)"
        if note:
            description = f"{description} - {note}"
        drafts = [self._draft(bank, bank_deposit, description, operation)]
        if cash_given > 0:
            drafts.append(
                self._draft(cash, -cash_given, description, operation, related_party="POS customer")
            )
        return self._post(description, drafts)

    # Costs and adjustments
    def add_operating_cost(
        self,
        expense_category: str,
        amount: Decimal,
        source: str,
        cost_date: Optional[date] = None,
        note: str = "",
    ) -> str:
        """Record an operating expense paid in LYD.

        Args:
            expense_category: Expense type used to group costs
            amount: Amount spent
            source: LYD cash vault or bank, or "external" for money that did
                not come out of the business
            cost_date: Date the cost belongs to (today by default)

        Returns:
            Group ID
        """
        self._check("costs", "create")
        if not expense_category or not expense_category.strip():
            raise ValidationError("Expense category is required")
        amount = _positive(amount)
        is_external = source == EXTERNAL
        if is_external:
            payer = self._require_asset(EXTERNAL)
        else:
            payer = self._require_money_asset(source, REFERENCE_CURRENCY)

        operation = OperatingCost(
            expense_category=expense_category.strip(),
            amount=amount,
            cost_date=cost_date or self.clock.now().date(),
            source=payer.id,
            is_external=is_external,
            note=note,
        )
        description = f"Operating cost: {operation.expense_category}"
        if note:
            description = f"{description} - {note}"
        return self._post(
            description,
            [self._draft(payer, -amount, description, operation, currency=REFERENCE_CURRENCY)],
        )

    def adjust_asset_balance(
        self,
        asset_id: str,
        amount: Decimal,
        note: str = "",
        is_profit: bool = False,
        is_loss: bool = False,
    ) -> str:
        """Correct an asset balance by a signed amount.

        Flagged adjustments feed the profit report: ``is_profit`` needs a
        positive amount and ``is_loss`` a negative one.
        """
        self._check("assets", "adjust")
        amount = _amount(amount)
        if amount == 0:
            raise ValidationError("Adjustment amount cannot be zero")
        if is_profit and is_loss:
            raise ValidationError("An adjustment cannot be both profit and loss")
        if is_profit and amount < 0:
            raise ValidationError("A profit adjustment must increase the balance")
        if is_loss and amount > 0:
            raise ValidationError("A loss adjustment must decrease the balance")

        asset = self._require_asset(asset_id)
        if asset.kind == AssetKind.MEMO:
            raise ValidationError(f"Asset '{asset.id}' cannot be adjusted")

        operation = AssetAdjustment(
            asset_id=asset.id, note=note, is_profit=is_profit, is_loss=is_loss
        )
        description = note or f"Balance adjustment of {asset.name}"
        if asset.kind == AssetKind.BANK:
            entry_type = EntryType.MANUAL_BANK_UPDATE
        else:
            entry_type = EntryType.DEPOSIT if amount > 0 else EntryType.WITHDRAWAL
        return self._post(
            description,
            [self._draft(asset, amount, description, operation, entry_type=entry_type)],
        )

    def set_asset_balance(self, asset_id: str, new_balance: Decimal, note: str = "") -> str:
        """Bring an asset to an absolute balance through a logged adjustment."""
        asset = self._require_asset(asset_id)
        return self.adjust_asset_balance(
            asset_id, _amount(new_balance, "Balance") - asset.balance, note=note
        )

    # Debts and receivables
    def add_debt(
        self,
        customer_id: int,
        amount: Decimal,
        asset_id: Optional[str] = None,
        note: str = "",
    ) -> str:
        """Lend money to a customer.

        Args:
            customer_id: Customer taking the debt
            amount: Amount lent, in the customer's currency
            asset_id: Vault or bank paying it out; None records a debt with no
                cash movement

        Returns:
            Group ID
        """
        self._check("debts", "create")
        amount = _positive(amount)
        customer = self._require_active_customer(customer_id)
        if asset_id is None:
            payer = self._require_asset(EXTERNAL)
        else:
            payer = self._require_money_asset(asset_id, customer.currency)

        description = note or f"New debt for {customer.name}"
        with self.db.atomic():
            installment_id = self.db.create_installment(customer.id, amount, self.clock.now())
            operation = NewDebt(customer_id=customer.id, installment_id=installment_id, amount=amount)
            return self._post(
                description,
                [
                    self._draft(
                        payer,
                        -amount,
                        description,
                        operation,
                        currency=customer.currency,
                        entry_type=EntryType.NEW_DEBT,
                        related_party=customer.name,
                    )
                ],
            )

    def pay_debt(
        self, installment_id: int, amount: Decimal, asset_id: str, note: str = ""
    ) -> str:
        """Collect a payment against a debt installment."""
        self._check("debts", "collect")
        amount = _positive(amount)
        installment = self.db.get_installment(installment_id)
        if installment is None:
            raise NotFoundError(installment_not_found(installment_id))
        if installment.is_voided:
            raise ConflictError(f"Debt installment {installment_id} has been voided")
        if amount > installment.outstanding:
            raise ValidationError(
                f"Payment of {amount} exceeds the outstanding {installment.outstanding}"
            )
        customer = self.debts.require_customer(installment.customer_id)
        payee = self._require_money_asset(asset_id, customer.currency)

        operation = DebtPayment(customer_id=customer.id, installment_id=installment_id, amount=amount)
        description = note or f"Debt payment from {customer.name}"
        with self.db.atomic():
            self.db.update_installment(installment_id, paid=installment.paid + amount)
            return self._post(
                description,
                [
                    self._draft(
                        payee,
                        amount,
                        description,
                        operation,
                        entry_type=EntryType.DEBT_COLLECTION,
                        related_party=customer.name,
                    )
                ],
            )

    def add_receivable(
        self,
        debtor: str,
        currency: Currency,
        amount: Decimal,
        asset_id: Optional[str] = None,
        note: str = "",
    ) -> str:
        """Record money the business owes, optionally received into an asset."""
        self._check("receivables", "create")
        if not debtor or not debtor.strip():
            raise ValidationError("Debtor name is required")
        amount = _positive(amount)
        if asset_id is None:
            payee = self._require_asset(EXTERNAL)
        else:
            payee = self._require_money_asset(asset_id, currency)

        description = note or f"Receivable owed to {debtor}"
        with self.db.atomic():
            receivable_id = self.db.create_receivable(debtor.strip(), currency, amount, self.clock.now())
            operation = NewReceivable(receivable_id=receivable_id, amount=amount)
            return self._post(
                description,
                [
                    self._draft(
                        payee,
                        amount,
                        description,
                        operation,
                        currency=currency,
                        entry_type=EntryType.NEW_RECEIVABLE,
                        related_party=debtor.strip(),
                    )
                ],
            )

    def pay_receivable(
        self, receivable_id: int, amount: Decimal, asset_id: str, note: str = ""
    ) -> str:
        """Pay back part or all of a receivable from an asset."""
        self._check("receivables", "pay")
        amount = _positive(amount)
        receivable = self.db.get_receivable(receivable_id)
        if receivable is None:
            raise NotFoundError(receivable_not_found(receivable_id))
        if receivable.is_voided:
            raise ConflictError(f"Receivable {receivable_id} has been voided")
        if amount > receivable.outstanding:
            raise ValidationError(
                f"Payment of {amount} exceeds the outstanding {receivable.outstanding}"
            )
        payer = self._require_money_asset(asset_id, receivable.currency)

        operation = ReceivablePayment(receivable_id=receivable_id, amount=amount)
        description = note or f"Receivable payment to {receivable.debtor}"
        with self.db.atomic():
            self.db.update_receivable(receivable_id, paid=receivable.paid + amount)
            return self._post(
                description,
                [
                    self._draft(
                        payer,
                        -amount,
                        description,
                        operation,
                        entry_type=EntryType.RECEIVABLE_PAYMENT,
                        related_party=receivable.debtor,
                    )
                ],
            )

    # Reversal
    def delete_group(self, group_id: str) -> TransactionGroup:
        """Reverse a posted group. See GroupReversalService.delete_group."""
        self._check("transactions", "delete")
        return self.reversal.delete_group(group_id)

    def restore_group(self, group_id: str) -> TransactionGroup:
        """Re-apply a deleted group. See GroupReversalService.restore_group."""
        self._check("transactions", "restore")
        return self.reversal.restore_group(group_id)

    # Capital
    def compute_capital(
        self,
        detailed: bool = True,
        in_flight: Optional[Mapping[Currency, Decimal]] = None,
    ) -> CapitalComputation:
        """Compute capital per currency from the current ledger state."""
        return self.capital.compute_capital(
            self.balances().values(),
            self.debts.outstanding_debts(),
            self.debts.outstanding_receivables(),
            in_flight=in_flight,
            detailed=detailed,
        )

    def close_capital(
        self,
        rate_inputs: Mapping[Currency, Any],
        detailed: bool = True,
        in_flight: Optional[Mapping[Currency, Decimal]] = None,
    ) -> CapitalHistoryEntry:
        """Close capital at the given rates and record it in the history.

        ``in_flight`` is money already paid out for currency not yet
        received, per currency; it counts towards capital like a balance.
        """
        self._check("capital", "close")
        return self.capital.close_from_ledger(
            self, rate_inputs, detailed=detailed, in_flight=in_flight
        )

    # Internals
    def _check(self, category: str, action: str) -> None:
        if self.has_permission is not None and not self.has_permission(category, action):
            logger.warning("Permission denied for %s.%s", category, action)
            raise PermissionDeniedError(permission_denied(category, action))

    def _require_asset(
        self,
        asset_id: Optional[str],
        currency: Optional[Currency] = None,
        kind: Optional[AssetKind] = None,
    ) -> Asset:
        if not asset_id:
            raise ValidationError("Asset is required")
        asset = self.db.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(asset_not_found(asset_id))
        if kind is not None and asset.kind != kind:
            raise ValidationError(f"Asset '{asset_id}' is not a {kind.value} asset")
        if currency is not None and asset.currency != currency:
            raise ValidationError(f"Asset '{asset_id}' does not hold {currency.value}")
        return asset

    def _require_money_asset(self, asset_id: Optional[str], currency: Currency) -> Asset:
        """Require a cash vault or bank in the given currency."""
        asset = self._require_asset(asset_id, currency)
        if asset.kind == AssetKind.MEMO:
            raise ValidationError(f"Asset '{asset_id}' is not a cash vault or bank")
        return asset

    def _require_foreign(self, currency: Currency) -> None:
        if currency == REFERENCE_CURRENCY:
            raise ValidationError(f"Cannot trade {currency.value} against itself")

    def _require_active_customer(self, customer_id: int, currency: Optional[Currency] = None):
        customer = self.debts.require_customer(customer_id)
        if customer.is_archived:
            raise ConflictError(f"Customer {customer_id} is archived")
        if currency is not None and customer.currency != currency:
            raise ValidationError(
                f"Customer {customer_id} holds debts in {customer.currency.value}, not {currency.value}"
            )
        return customer

    def _allocate_to_installments(self, customer, amount: Decimal) -> list[tuple[int, Decimal]]:
        """Spread a payment over open installments, oldest first."""
        allocations = []
        left = amount
        open_debts = sorted(
            (d for d in customer.debts if not d.is_archived and not d.is_voided and d.outstanding > 0),
            key=lambda d: (d.date, d.id),
        )
        for debt in open_debts:
            if left <= 0:
                break
            paid = min(left, debt.outstanding)
            allocations.append((debt.id, paid))
            left -= paid
        return allocations

    def _draft(
        self,
        asset: Asset,
        amount: Decimal,
        description: str,
        operation,
        currency: Optional[Currency] = None,
        entry_type: Optional[EntryType] = None,
        related_party: str = "",
    ) -> TransactionDraft:
        if entry_type is None:
            if asset.kind == AssetKind.BANK:
                entry_type = EntryType.BANK_DEPOSIT if amount > 0 else EntryType.BANK_WITHDRAWAL
            else:
                entry_type = EntryType.DEPOSIT if amount > 0 else EntryType.WITHDRAWAL
        return TransactionDraft(
            currency=currency or asset.currency,
            amount=amount,
            asset_id=asset.id,
            entry_type=entry_type,
            description=description,
            related_party=related_party or asset.name,
            actor=self.actor,
            operation=operation,
        )

    def _post(self, description: str, drafts: list[TransactionDraft]) -> str:
        group_id = uuid.uuid4().hex
        with self.db.atomic():
            for draft in drafts:
                self.log.append(dataclasses.replace(draft, group_id=group_id))
                self.db.apply_balance_delta(draft.asset_id, draft.amount)
        kind = drafts[0].operation.kind.value if drafts[0].operation is not None else "-"
        logger.info("Posted %s group %s: %s", kind, group_id, description)
        return group_id
