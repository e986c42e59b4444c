"""Mapper functions to convert between domain models and SQLAlchemy models.

Capital history columns hold JSON; Decimals are written as strings so that
snapshots read back exactly as they were closed.
"""

from decimal import Decimal
from typing import Any, Optional

from exledger.domain import entities as domain
from exledger.domain.operations import from_payload
from exledger.database.models import (
    Asset as ORMAsset,
    Transaction as ORMTransaction,
    Customer as ORMCustomer,
    DebtInstallment as ORMDebtInstallment,
    Receivable as ORMReceivable,
    CapitalHistoryEntry as ORMCapitalHistoryEntry,
)


def _money(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def asset_to_domain(orm_asset: ORMAsset) -> domain.Asset:
    """Convert SQLAlchemy Asset model to domain Asset entity."""
    return domain.Asset(
        id=orm_asset.id,
        name=orm_asset.name,
        kind=domain.AssetKind(orm_asset.kind),
        currency=domain.Currency(orm_asset.currency) if orm_asset.currency else None,
        balance=_money(orm_asset.balance),
        opening_balance=_money(orm_asset.opening_balance),
        is_pos_enabled=bool(orm_asset.is_pos_enabled),
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    operation = None
    if orm_transaction.operation_payload:
        operation = from_payload(orm_transaction.operation_payload)
    return domain.Transaction(
        id=orm_transaction.id,
        timestamp=orm_transaction.timestamp,
        currency=domain.Currency(orm_transaction.currency),
        amount=_money(orm_transaction.amount),
        asset_id=orm_transaction.asset_id,
        entry_type=domain.EntryType(orm_transaction.entry_type),
        description=orm_transaction.description or "",
        related_party=orm_transaction.related_party or "",
        group_id=orm_transaction.group_id,
        actor=orm_transaction.actor,
        is_deleted=bool(orm_transaction.is_deleted),
        operation=operation,
    )


def installment_to_domain(orm_debt: ORMDebtInstallment) -> domain.DebtInstallment:
    """Convert SQLAlchemy DebtInstallment model to domain entity."""
    return domain.DebtInstallment(
        id=orm_debt.id,
        customer_id=orm_debt.customer_id,
        amount=_money(orm_debt.amount),
        paid=_money(orm_debt.paid),
        date=orm_debt.date,
        is_archived=bool(orm_debt.is_archived),
        is_voided=bool(orm_debt.is_voided),
    )


def customer_to_domain(orm_customer: ORMCustomer) -> domain.Customer:
    """Convert SQLAlchemy Customer model (with debts) to domain entity."""
    return domain.Customer(
        id=orm_customer.id,
        name=orm_customer.name,
        currency=domain.Currency(orm_customer.currency),
        is_archived=bool(orm_customer.is_archived),
        debts=tuple(installment_to_domain(d) for d in orm_customer.debts),
    )


def receivable_to_domain(orm_receivable: ORMReceivable) -> domain.Receivable:
    """Convert SQLAlchemy Receivable model to domain entity."""
    return domain.Receivable(
        id=orm_receivable.id,
        debtor=orm_receivable.debtor,
        currency=domain.Currency(orm_receivable.currency),
        amount=_money(orm_receivable.amount),
        paid=_money(orm_receivable.paid),
        date=orm_receivable.date,
        is_archived=bool(orm_receivable.is_archived),
        is_voided=bool(orm_receivable.is_voided),
    )


def rates_to_json(rates: dict[domain.Currency, domain.RateInput]) -> dict[str, Any]:
    """Encode closing rates, keeping split allocations as ordered lists."""
    encoded: dict[str, Any] = {}
    for currency, rate in rates.items():
        if isinstance(rate, tuple):
            encoded[currency.value] = [
                {"amount": str(part.amount), "rate": str(part.rate)} for part in rate
            ]
        else:
            encoded[currency.value] = str(rate)
    return encoded


def rates_from_json(data: dict[str, Any]) -> dict[domain.Currency, domain.RateInput]:
    """Decode closing rates written by rates_to_json."""
    rates: dict[domain.Currency, domain.RateInput] = {}
    for code, value in (data or {}).items():
        if isinstance(value, list):
            rates[domain.Currency(code)] = tuple(
                domain.RatePart(amount=_money(p["amount"]), rate=_money(p["rate"]))
                for p in value
            )
        else:
            rates[domain.Currency(code)] = _money(value)
    return rates


def amounts_to_json(amounts: dict[domain.Currency, Decimal]) -> dict[str, str]:
    """Encode a per-currency amount mapping."""
    return {currency.value: str(amount) for currency, amount in amounts.items()}


def amounts_from_json(data: dict[str, Any]) -> dict[domain.Currency, Decimal]:
    """Decode a per-currency amount mapping."""
    return {domain.Currency(code): _money(value) for code, value in (data or {}).items()}


def breakdown_to_json(
    breakdown: Optional[dict[domain.Currency, tuple[domain.BreakdownItem, ...]]],
) -> Optional[dict[str, list[dict[str, str]]]]:
    """Encode an itemized capital breakdown."""
    if breakdown is None:
        return None
    return {
        currency.value: [
            {"label": item.label, "value": str(item.value), "sign": item.sign}
            for item in items
        ]
        for currency, items in breakdown.items()
    }


def breakdown_from_json(
    data: Optional[dict[str, Any]],
) -> Optional[dict[domain.Currency, tuple[domain.BreakdownItem, ...]]]:
    """Decode an itemized capital breakdown."""
    if data is None:
        return None
    return {
        domain.Currency(code.upper()): tuple(
            domain.BreakdownItem(
                label=item["label"], value=_money(item["value"]), sign=item.get("sign", "+")
            )
            for item in items
        )
        for code, items in data.items()
    }


def capital_entry_to_domain(orm_entry: ORMCapitalHistoryEntry) -> domain.CapitalHistoryEntry:
    """Convert SQLAlchemy CapitalHistoryEntry model to domain entity."""
    return domain.CapitalHistoryEntry(
        id=orm_entry.id,
        timestamp=orm_entry.timestamp,
        total=_money(orm_entry.total),
        capital_breakdown=amounts_from_json(orm_entry.capital_breakdown),
        rates=rates_from_json(orm_entry.rates),
        detailed_breakdown=breakdown_from_json(orm_entry.detailed_breakdown),
    )
