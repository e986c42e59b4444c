"""Domain model entities for exledger.

These are pure data classes representing business concepts, independent of
database schema. Monetary values are always ``Decimal``.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from exledger.domain.operations import Operation


class Currency(str, Enum):
    """Currencies handled by the exchange business."""

    LYD = "LYD"
    USD = "USD"
    TND = "TND"
    EUR = "EUR"
    SAR = "SAR"
    EGP = "EGP"


REFERENCE_CURRENCY = Currency.LYD
FOREIGN_CURRENCIES = tuple(c for c in Currency if c is not REFERENCE_CURRENCY)


class AssetKind(str, Enum):
    """Kinds of stores of value."""

    CASH = "cash"
    BANK = "bank"
    # Off-book legs such as settlements; never part of capital
    MEMO = "memo"


class Channel(str, Enum):
    """Whether a trade was funded or settled through cash or a bank."""

    CASH = "cash"
    BANK = "bank"


class EntryType(str, Enum):
    """Human-facing type of a single ledger line."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BANK_DEPOSIT = "bank_deposit"
    BANK_WITHDRAWAL = "bank_withdrawal"
    MANUAL_BANK_UPDATE = "manual_bank_update"
    NEW_DEBT = "new_debt"
    DEBT_COLLECTION = "debt_collection"
    NEW_RECEIVABLE = "new_receivable"
    RECEIVABLE_PAYMENT = "receivable_payment"
    SETTLEMENT = "settlement"


@dataclass(frozen=True)
class Asset:
    """Cash vault, bank account or memo account with its current balance."""

    id: str
    name: str
    kind: AssetKind
    currency: Optional[Currency]
    balance: Decimal
    opening_balance: Decimal = Decimal("0")
    is_pos_enabled: bool = False


@dataclass(frozen=True)
class TransactionDraft:
    """Input for appending a transaction; the log assigns id and timestamp."""

    currency: Optional[Currency]
    amount: Optional[Decimal]
    asset_id: Optional[str]
    entry_type: EntryType
    description: str = ""
    related_party: str = ""
    group_id: Optional[str] = None
    actor: Optional[str] = None
    operation: Optional["Operation"] = None


@dataclass(frozen=True)
class Transaction:
    """Ledger transaction domain entity."""

    id: str
    timestamp: datetime
    currency: Currency
    amount: Decimal
    asset_id: str
    entry_type: EntryType
    description: str
    related_party: str
    group_id: Optional[str]
    actor: Optional[str]
    is_deleted: bool
    operation: Optional["Operation"]


@dataclass(frozen=True)
class TransactionGroup:
    """Derived view of all transactions sharing one group id."""

    group_id: str
    transactions: tuple[Transaction, ...]

    @property
    def primary(self) -> Optional[Transaction]:
        """First transaction carrying operation metadata."""
        for txn in self.transactions:
            if txn.operation is not None:
                return txn
        return None

    @property
    def is_deleted(self) -> bool:
        return all(txn.is_deleted for txn in self.transactions)

    @property
    def is_active(self) -> bool:
        return not any(txn.is_deleted for txn in self.transactions)

    @property
    def description(self) -> str:
        primary = self.primary
        if primary is not None:
            return primary.description
        return self.transactions[0].description if self.transactions else ""


@dataclass(frozen=True)
class DebtInstallment:
    """One amount owed by a customer to the business."""

    id: int
    customer_id: int
    amount: Decimal
    paid: Decimal
    date: datetime
    is_archived: bool = False
    is_voided: bool = False

    @property
    def outstanding(self) -> Decimal:
        remaining = self.amount - self.paid
        return remaining if remaining > 0 else Decimal("0")


@dataclass(frozen=True)
class Customer:
    """Customer or counterparty owing money in one currency."""

    id: int
    name: str
    currency: Currency
    is_archived: bool
    debts: tuple[DebtInstallment, ...] = ()


@dataclass(frozen=True)
class Receivable:
    """Amount the business owes to a debtor."""

    id: int
    debtor: str
    currency: Currency
    amount: Decimal
    paid: Decimal
    date: datetime
    is_archived: bool = False
    is_voided: bool = False

    @property
    def outstanding(self) -> Decimal:
        remaining = self.amount - self.paid
        return remaining if remaining > 0 else Decimal("0")


@dataclass(frozen=True)
class RatePart:
    """One slice of a split-rate allocation."""

    amount: Decimal
    rate: Decimal


RateInput = Union[Decimal, tuple[RatePart, ...]]


@dataclass(frozen=True)
class BreakdownItem:
    """Labelled contribution to a currency's capital; sign is '+' or '-'."""

    label: str
    value: Decimal
    sign: str = "+"

    @property
    def signed_value(self) -> Decimal:
        return self.value if self.sign == "+" else -self.value


@dataclass(frozen=True)
class CapitalComputation:
    """Per-currency capital totals with their itemized breakdown."""

    totals: dict[Currency, Decimal]
    breakdown: dict[Currency, tuple[BreakdownItem, ...]]


@dataclass(frozen=True)
class CapitalHistoryEntry:
    """Immutable snapshot produced by a capital closing."""

    timestamp: datetime
    total: Decimal
    capital_breakdown: dict[Currency, Decimal]
    rates: dict[Currency, RateInput]
    detailed_breakdown: Optional[dict[Currency, tuple[BreakdownItem, ...]]] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class CapitalEvolution:
    """Change in closed capital between two history entries."""

    start_total: Decimal
    end_total: Decimal
    change: Decimal
    percentage: Decimal
    start_at: datetime
    end_at: datetime


@dataclass(frozen=True)
class BreakdownEntry:
    """Labelled amount in a profit or cost breakdown."""

    label: str
    value: Decimal


@dataclass(frozen=True)
class TradingProfitDetail:
    """Profit attributed to one sell group."""

    group_id: str
    timestamp: datetime
    currency: Currency
    quantity: Decimal
    sale_rate: Decimal
    cost_rate: Decimal
    profit: Decimal


@dataclass(frozen=True)
class CurrencyProfitLoss:
    """Manual profit and loss recorded in a non-reference currency."""

    profit: Decimal = Decimal("0")
    loss: Decimal = Decimal("0")


@dataclass(frozen=True)
class ProfitReport:
    """Result of a profit/cost analysis over a date window."""

    start: datetime
    end: datetime
    total_profit: Decimal
    total_costs: Decimal
    net_profit: Decimal
    profit_breakdown: tuple[BreakdownEntry, ...]
    cost_breakdown: tuple[BreakdownEntry, ...]
    trading_details: tuple[TradingProfitDetail, ...] = ()
    cost_basis: dict[tuple[Currency, Channel], Decimal] = field(default_factory=dict)
    other_currency_results: dict[Currency, CurrencyProfitLoss] = field(default_factory=dict)


@dataclass(frozen=True)
class DateWindow:
    """Inclusive datetime window."""

    start: datetime
    end: datetime

    @classmethod
    def from_dates(cls, start: date, end: date) -> "DateWindow":
        return cls(
            start=datetime.combine(start, datetime.min.time()),
            end=datetime.combine(end, datetime.max.time()),
        )
