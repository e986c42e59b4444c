"""Capital computation and closing.

Capital is computed per currency from asset balances, outstanding debts owed
to the business, and in-flight spend, less outstanding receivables. Closing
converts every foreign total into the reference currency, either at one rate
or split into parts bought at different rates, and appends the result to the
capital history.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Optional

from exledger.database.base import Database
from exledger.domain.clock import Clock, SystemClock
from exledger.domain.entities import (
    Asset,
    AssetKind,
    BreakdownItem,
    CapitalComputation,
    CapitalHistoryEntry,
    Currency,
    RateInput,
    RatePart,
    REFERENCE_CURRENCY,
)
from exledger.domain.errors import AllocationMismatchError, MissingRateError, ValidationError
from exledger.domain.history import CapitalHistoryService
from exledger.logging_config import get_logger

if TYPE_CHECKING:
    from exledger.domain.ledger import Ledger

logger = get_logger("domain.capital")

# Absolute tolerance between split parts and the currency total
ALLOCATION_TOLERANCE = Decimal("0.001")

ZERO = Decimal("0")


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class CapitalCalculator:
    """Service for computing and closing capital."""

    def __init__(self, db: Database, clock: Optional[Clock] = None):
        """Initialize capital calculator.

        Args:
            db: Database instance
            clock: Time source for closing timestamps (system time by default)
        """
        self.db = db
        self.clock = clock or SystemClock()
        self.history = CapitalHistoryService(db)

    def compute_capital(
        self,
        assets: Iterable[Asset],
        debts: Mapping[Currency, Decimal],
        receivables: Mapping[Currency, Decimal],
        in_flight: Optional[Mapping[Currency, Decimal]] = None,
        detailed: bool = True,
    ) -> CapitalComputation:
        """Compute capital per currency.

        Args:
            assets: Asset snapshots; memo assets are ignored
            debts: Outstanding debts owed to the business, per currency
            receivables: Outstanding amounts the business owes, per currency
            in_flight: Spend already paid out but not yet received, per currency
            detailed: List every cash vault and bank in the breakdown instead
                of one line per asset kind

        Returns:
            Totals and itemized breakdown for every currency
        """
        in_flight = self._validate_in_flight(in_flight or {})
        items: dict[Currency, list[BreakdownItem]] = {c: [] for c in Currency}

        cash_totals: dict[Currency, Decimal] = {}
        bank_totals: dict[Currency, Decimal] = {}
        for asset in assets:
            if asset.kind == AssetKind.MEMO or asset.currency is None:
                continue
            if detailed:
                items[asset.currency].append(BreakdownItem(asset.name, asset.balance))
            bucket = bank_totals if asset.kind == AssetKind.BANK else cash_totals
            bucket[asset.currency] = bucket.get(asset.currency, ZERO) + asset.balance

        if not detailed:
            for currency in Currency:
                if currency in cash_totals:
                    items[currency].append(BreakdownItem("Cash", cash_totals[currency]))
                if currency in bank_totals:
                    items[currency].append(BreakdownItem("Banks", bank_totals[currency]))

        for currency in Currency:
            debt = debts.get(currency, ZERO)
            if debt:
                items[currency].append(BreakdownItem("Debts", debt))
            spend = in_flight.get(currency, ZERO)
            if spend:
                items[currency].append(BreakdownItem("In-flight spend", spend))
            owed = receivables.get(currency, ZERO)
            if owed:
                items[currency].append(BreakdownItem("Receivables", owed, sign="-"))

        totals = {
            currency: sum((item.signed_value for item in entries), ZERO)
            for currency, entries in items.items()
        }
        return CapitalComputation(
            totals=totals,
            breakdown={currency: tuple(entries) for currency, entries in items.items()},
        )

    def close_capital(
        self,
        totals: Mapping[Currency, Decimal],
        rate_inputs: Mapping[Currency, Any],
        breakdown: Optional[Mapping[Currency, Sequence[BreakdownItem]]] = None,
    ) -> CapitalHistoryEntry:
        """Convert totals to the reference currency and record a closing.

        Args:
            totals: Capital per currency
            rate_inputs: Per foreign currency, either one rate or a sequence of
                RatePart slices whose amounts add up to the currency total
            breakdown: Itemized breakdown stored with the entry

        Returns:
            The appended history entry

        Raises:
            AllocationMismatchError: If split parts miss the total by more than
                the tolerance
            MissingRateError: If a currency with a non-zero total has no usable rate
            ValidationError: If a split part has a negative amount or an
                unusable rate
        """
        total = totals.get(REFERENCE_CURRENCY, ZERO)
        rates: dict[Currency, RateInput] = {}

        for currency, amount in totals.items():
            if currency == REFERENCE_CURRENCY:
                continue
            rate_input = rate_inputs.get(currency)
            if isinstance(rate_input, (list, tuple)):
                parts = self._validate_split(currency, amount, rate_input)
                rates[currency] = parts
                total += sum((part.amount * part.rate for part in parts), ZERO)
                continue

            rate = _to_decimal(rate_input)
            usable = rate is not None and rate.is_finite() and rate > 0
            if usable:
                rates[currency] = rate
                total += amount * rate
            elif amount != 0:
                logger.warning("Closing blocked: no usable rate for %s", currency.value)
                raise MissingRateError(currency.value)

        entry = CapitalHistoryEntry(
            timestamp=self.clock.now(),
            total=total,
            capital_breakdown=dict(totals),
            rates=rates,
            detailed_breakdown=(
                {currency: tuple(entries) for currency, entries in breakdown.items()}
                if breakdown is not None
                else None
            ),
        )
        with self.db.atomic():
            entry = self.history.append(entry)
        logger.info("Closed capital at %s %s", entry.total, REFERENCE_CURRENCY.value)
        return entry

    def close_from_ledger(
        self,
        ledger: "Ledger",
        rate_inputs: Mapping[Currency, Any],
        detailed: bool = True,
        in_flight: Optional[Mapping[Currency, Decimal]] = None,
    ) -> CapitalHistoryEntry:
        """Compute capital from the ledger's current state and close it."""
        computation = ledger.compute_capital(detailed=detailed, in_flight=in_flight)
        return self.close_capital(computation.totals, rate_inputs, computation.breakdown)

    def _validate_in_flight(self, in_flight: Mapping[Currency, Any]) -> dict[Currency, Decimal]:
        normalized = {}
        for currency, spend in in_flight.items():
            value = _to_decimal(spend)
            if value is None or not value.is_finite() or value < 0:
                raise ValidationError(
                    f"In-flight spend for {currency.value} must be a non-negative number"
                )
            normalized[currency] = value
        return normalized

    def _validate_split(
        self, currency: Currency, total: Decimal, parts: Sequence[Any]
    ) -> tuple[RatePart, ...]:
        normalized = []
        for part in parts:
            if not isinstance(part, RatePart):
                raise ValidationError(f"Split rate parts for {currency.value} must be RatePart")
            amount = _to_decimal(part.amount)
            rate = _to_decimal(part.rate)
            if amount is None or not amount.is_finite() or amount < 0:
                raise ValidationError(
                    f"Split part amount for {currency.value} must be a non-negative number"
                )
            if rate is None or not rate.is_finite() or rate < 0:
                raise ValidationError(
                    f"Split part rate for {currency.value} must be a non-negative number"
                )
            normalized.append(RatePart(amount=amount, rate=rate))

        allocated = sum((part.amount for part in normalized), ZERO)
        if abs(allocated - total) > ALLOCATION_TOLERANCE:
            logger.warning(
                "Closing blocked: %s split allocates %s of %s", currency.value, allocated, total
            )
            raise AllocationMismatchError(currency.value, allocated, total)

        kept = tuple(part for part in normalized if part.amount > 0)
        for part in kept:
            if part.rate == 0:
                raise ValidationError(
                    f"Split part of {part.amount} {currency.value} needs a rate above zero"
                )
        return kept
