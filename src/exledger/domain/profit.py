"""Profit and cost analysis over a date window.

Pure read-side computation over the transaction log: nothing here writes to
the database or formats values for display.
"""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from exledger.database.base import Database
from exledger.domain.entities import (
    BreakdownEntry,
    Channel,
    Currency,
    CurrencyProfitLoss,
    DateWindow,
    FOREIGN_CURRENCIES,
    ProfitReport,
    REFERENCE_CURRENCY,
    TradingProfitDetail,
    Transaction,
)
from exledger.domain.operations import (
    AssetAdjustment,
    BuyCurrency,
    CashExchange,
    ExchangeFee,
    OperatingCost,
    OperationKind,
    PosSale,
    SellCurrency,
)
from exledger.domain.transaction_log import TransactionLog

# Breakdown entries at or below this magnitude are left out
NEGLIGIBLE = Decimal("0.001")

ZERO = Decimal("0")

TRADING_LABEL = "Currency trading"
POS_LABEL = "POS (net)"
EXCHANGE_FEES_LABEL = "Exchange fees"
MANUAL_PROFIT_LABEL = "Manual profit (LYD)"
MANUAL_LOSS_LABEL = "Manual losses (LYD)"
EXTERNAL_SUFFIX = " (external)"

CostBasisKey = tuple[Currency, Channel]


class _Totals:
    """Running sums for one analysis."""

    def __init__(self):
        self.trading = ZERO
        self.pos = ZERO
        self.fees = ZERO
        self.manual_profit = ZERO
        self.manual_loss = ZERO
        self.other: dict[Currency, list[Decimal]] = {c: [ZERO, ZERO] for c in FOREIGN_CURRENCIES}

    def add_profit(self, currency: Currency, amount: Decimal) -> None:
        if currency == REFERENCE_CURRENCY:
            self.manual_profit += amount
        else:
            self.other.setdefault(currency, [ZERO, ZERO])[0] += amount

    def add_loss(self, currency: Currency, amount: Decimal) -> None:
        if currency == REFERENCE_CURRENCY:
            self.manual_loss += amount
        else:
            self.other.setdefault(currency, [ZERO, ZERO])[1] += amount


def _window(start: Union[date, datetime], end: Union[date, datetime]) -> DateWindow:
    if not isinstance(start, datetime):
        start = DateWindow.from_dates(start, start).start
    if not isinstance(end, datetime):
        end = DateWindow.from_dates(end, end).end
    return DateWindow(start=start, end=end)


def _breakdown(entries: list[tuple[str, Decimal]]) -> tuple[BreakdownEntry, ...]:
    return tuple(
        BreakdownEntry(label=label, value=value)
        for label, value in entries
        if abs(value) > NEGLIGIBLE
    )


class ProfitAnalyzer:
    """Service for computing profit, costs and net result over a window."""

    def __init__(self, db: Database, log: Optional[TransactionLog] = None):
        """Initialize profit analyzer.

        Args:
            db: Database instance
            log: Transaction log to read (created from db if omitted)
        """
        self.db = db
        self.log = log or TransactionLog(db)

    def cost_basis(
        self, overrides: Optional[Mapping[CostBasisKey, Decimal]] = None
    ) -> dict[CostBasisKey, Decimal]:
        """Weighted-average LYD cost per foreign unit, per currency and channel.

        Computed over every active buy in the ledger as total LYD spent
        divided by total foreign currency acquired. A positive override
        replaces the computed value.
        """
        spent: dict[CostBasisKey, Decimal] = {}
        acquired: dict[CostBasisKey, Decimal] = {}
        seen: set[str] = set()
        for txn in self.log.query(operation=OperationKind.BUY_CURRENCY, ascending=True):
            if not self._first_in_group(txn, seen):
                continue
            match txn.operation:
                case BuyCurrency(currency=currency, channel=channel, lyd_amount=lyd, foreign_amount=qty):
                    key = (currency, channel)
                    spent[key] = spent.get(key, ZERO) + lyd
                    acquired[key] = acquired.get(key, ZERO) + qty

        basis = {key: spent[key] / qty for key, qty in acquired.items() if qty > 0}
        for key, rate in (overrides or {}).items():
            if rate is not None and rate > 0:
                basis[key] = rate
        return basis

    def analyze(
        self,
        start: Union[date, datetime],
        end: Union[date, datetime],
        cost_basis_overrides: Optional[Mapping[CostBasisKey, Decimal]] = None,
    ) -> ProfitReport:
        """Analyze profit and costs in an inclusive window.

        Args:
            start: Window start; a date means the start of that day
            end: Window end; a date means the end of that day
            cost_basis_overrides: Manual cost rates per (currency, channel)

        Returns:
            ProfitReport with totals and breakdowns in LYD, plus manual
            profit/loss per foreign currency
        """
        window = _window(start, end)
        basis = self.cost_basis(cost_basis_overrides)
        totals = _Totals()
        details: list[TradingProfitDetail] = []
        seen: set[str] = set()

        for txn in self.log.query(start=window.start, end=window.end, ascending=True):
            match txn.operation:
                case SellCurrency(currency=currency, channel=channel, rate=rate, foreign_amount=qty):
                    if not self._first_in_group(txn, seen):
                        continue
                    cost_rate = basis.get((currency, channel), ZERO)
                    if cost_rate <= 0:
                        continue
                    profit = (rate - cost_rate) * qty
                    totals.trading += profit
                    details.append(
                        TradingProfitDetail(
                            group_id=txn.group_id or txn.id,
                            timestamp=txn.timestamp,
                            currency=currency,
                            quantity=qty,
                            sale_rate=rate,
                            cost_rate=cost_rate,
                            profit=profit,
                        )
                    )
                case PosSale(net_profit=net_profit):
                    if self._first_in_group(txn, seen):
                        totals.pos += net_profit
                case ExchangeFee():
                    if txn.amount > 0:
                        totals.fees += txn.amount
                    else:
                        totals.add_loss(txn.currency, -txn.amount)
                case CashExchange(amount=sent, received_amount=received, is_profit=is_profit, is_loss=is_loss):
                    if not self._first_in_group(txn, seen):
                        continue
                    if is_profit and received > sent:
                        totals.add_profit(txn.currency, received - sent)
                    elif is_loss and sent > received:
                        totals.add_loss(txn.currency, sent - received)
                case AssetAdjustment(is_profit=is_profit, is_loss=is_loss):
                    if is_profit and txn.amount > 0:
                        totals.add_profit(txn.currency, txn.amount)
                    elif is_loss and txn.amount < 0:
                        totals.add_loss(txn.currency, -txn.amount)

        costs = self._operating_costs(window)
        operating_total = sum(costs.values(), ZERO)

        total_profit = totals.trading + totals.pos + totals.fees + totals.manual_profit
        total_costs = operating_total + totals.manual_loss

        return ProfitReport(
            start=window.start,
            end=window.end,
            total_profit=total_profit,
            total_costs=total_costs,
            net_profit=total_profit - total_costs,
            profit_breakdown=_breakdown(
                [
                    (TRADING_LABEL, totals.trading),
                    (POS_LABEL, totals.pos),
                    (EXCHANGE_FEES_LABEL, totals.fees),
                    (MANUAL_PROFIT_LABEL, totals.manual_profit),
                ]
            ),
            cost_breakdown=_breakdown(
                list(costs.items()) + [(MANUAL_LOSS_LABEL, totals.manual_loss)]
            ),
            trading_details=tuple(details),
            cost_basis=basis,
            other_currency_results={
                currency: CurrencyProfitLoss(profit=values[0], loss=values[1])
                for currency, values in totals.other.items()
            },
        )

    def _operating_costs(self, window: DateWindow) -> dict[str, Decimal]:
        """Sum operating costs whose cost date falls in the window, by label."""
        grouped: dict[str, Decimal] = {}
        seen: set[str] = set()
        first_day, last_day = window.start.date(), window.end.date()
        for txn in self.log.query(operation=OperationKind.OPERATING_COST, ascending=True):
            match txn.operation:
                case OperatingCost(expense_category=category, amount=amount, cost_date=cost_date, is_external=is_external):
                    if not self._first_in_group(txn, seen):
                        continue
                    if not first_day <= cost_date <= last_day:
                        continue
                    label = f"{category}{EXTERNAL_SUFFIX}" if is_external else category
                    grouped[label] = grouped.get(label, ZERO) + amount
        return grouped

    @staticmethod
    def _first_in_group(txn: Transaction, seen: set[str]) -> bool:
        key = txn.group_id or txn.id
        if key in seen:
            return False
        seen.add(key)
        return True
