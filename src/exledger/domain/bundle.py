"""Export and import of the whole ledger as one JSON document."""

import json
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from dateutil import parser as date_parser

from exledger.database.base import Database
from exledger.database.mappers import (
    amounts_from_json,
    amounts_to_json,
    breakdown_from_json,
    breakdown_to_json,
    rates_from_json,
    rates_to_json,
)
from exledger.domain.entities import (
    Asset,
    AssetKind,
    CapitalHistoryEntry,
    Currency,
    Customer,
    DebtInstallment,
    EntryType,
    Receivable,
    Transaction,
)
from exledger.domain.errors import DomainError, ValidationError
from exledger.domain.ledger import seed_default_assets
from exledger.domain.operations import from_payload, to_payload
from exledger.logging_config import get_logger

logger = get_logger("domain.bundle")

COLLECTIONS = (
    "assets",
    "banks",
    "transactions",
    "customers",
    "receivables",
    "capital_history",
    "settings",
)


def _asset_to_dict(asset: Asset) -> dict[str, Any]:
    return {
        "id": asset.id,
        "name": asset.name,
        "kind": asset.kind.value,
        "currency": asset.currency.value if asset.currency else None,
        "balance": str(asset.balance),
        "opening_balance": str(asset.opening_balance),
        "is_pos_enabled": asset.is_pos_enabled,
    }


def _asset_from_dict(data: dict[str, Any]) -> Asset:
    return Asset(
        id=data["id"],
        name=data["name"],
        kind=AssetKind(data["kind"]),
        currency=Currency(data["currency"]) if data.get("currency") else None,
        balance=Decimal(str(data["balance"])),
        opening_balance=Decimal(str(data.get("opening_balance", "0"))),
        is_pos_enabled=bool(data.get("is_pos_enabled", False)),
    )


def _transaction_to_dict(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "timestamp": txn.timestamp.isoformat(),
        "currency": txn.currency.value,
        "amount": str(txn.amount),
        "asset_id": txn.asset_id,
        "entry_type": txn.entry_type.value,
        "description": txn.description,
        "related_party": txn.related_party,
        "group_id": txn.group_id,
        "actor": txn.actor,
        "is_deleted": txn.is_deleted,
        "operation": to_payload(txn.operation) if txn.operation is not None else None,
    }


def _transaction_from_dict(data: dict[str, Any]) -> Transaction:
    return Transaction(
        id=data["id"],
        timestamp=date_parser.isoparse(data["timestamp"]),
        currency=Currency(data["currency"]),
        amount=Decimal(str(data["amount"])),
        asset_id=data["asset_id"],
        entry_type=EntryType(data["entry_type"]),
        description=data.get("description") or "",
        related_party=data.get("related_party") or "",
        group_id=data.get("group_id"),
        actor=data.get("actor"),
        is_deleted=bool(data.get("is_deleted", False)),
        operation=from_payload(data["operation"]) if data.get("operation") else None,
    )


def _customer_to_dict(customer: Customer) -> dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "currency": customer.currency.value,
        "is_archived": customer.is_archived,
        "debts": [
            {
                "id": debt.id,
                "amount": str(debt.amount),
                "paid": str(debt.paid),
                "date": debt.date.isoformat(),
                "is_archived": debt.is_archived,
                "is_voided": debt.is_voided,
            }
            for debt in customer.debts
        ],
    }


def _customer_from_dict(data: dict[str, Any]) -> Customer:
    customer_id = int(data["id"])
    return Customer(
        id=customer_id,
        name=data["name"],
        currency=Currency(data["currency"]),
        is_archived=bool(data.get("is_archived", False)),
        debts=tuple(
            DebtInstallment(
                id=int(debt["id"]),
                customer_id=customer_id,
                amount=Decimal(str(debt["amount"])),
                paid=Decimal(str(debt.get("paid", "0"))),
                date=date_parser.isoparse(debt["date"]),
                is_archived=bool(debt.get("is_archived", False)),
                is_voided=bool(debt.get("is_voided", False)),
            )
            for debt in data.get("debts", [])
        ),
    )


def _receivable_to_dict(receivable: Receivable) -> dict[str, Any]:
    return {
        "id": receivable.id,
        "debtor": receivable.debtor,
        "currency": receivable.currency.value,
        "amount": str(receivable.amount),
        "paid": str(receivable.paid),
        "date": receivable.date.isoformat(),
        "is_archived": receivable.is_archived,
        "is_voided": receivable.is_voided,
    }


def _receivable_from_dict(data: dict[str, Any]) -> Receivable:
    return Receivable(
        id=int(data["id"]),
        debtor=data["debtor"],
        currency=Currency(data["currency"]),
        amount=Decimal(str(data["amount"])),
        paid=Decimal(str(data.get("paid", "0"))),
        date=date_parser.isoparse(data["date"]),
        is_archived=bool(data.get("is_archived", False)),
        is_voided=bool(data.get("is_voided", False)),
    )


def _entry_to_dict(entry: CapitalHistoryEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "timestamp": entry.timestamp.isoformat(),
        "total": str(entry.total),
        "capital_breakdown": amounts_to_json(entry.capital_breakdown),
        "rates": rates_to_json(entry.rates),
        "detailed_breakdown": breakdown_to_json(entry.detailed_breakdown),
    }


def _entry_from_dict(data: dict[str, Any]) -> CapitalHistoryEntry:
    return CapitalHistoryEntry(
        timestamp=date_parser.isoparse(data["timestamp"]),
        total=Decimal(str(data["total"])),
        capital_breakdown=amounts_from_json(data.get("capital_breakdown")),
        rates=rates_from_json(data.get("rates")),
        detailed_breakdown=breakdown_from_json(data.get("detailed_breakdown")),
    )


class BundleService:
    """Service for backing up and restoring the ledger."""

    def __init__(self, db: Database):
        """Initialize bundle service.

        Args:
            db: Database instance
        """
        self.db = db

    def export_bundle(
        self, capital_history: Optional[list[CapitalHistoryEntry]] = None
    ) -> dict[str, Any]:
        """Serialize every collection.

        Args:
            capital_history: Entries to export instead of the stored history,
                e.g. when backing up right after a closing

        Returns:
            JSON-compatible dict
        """
        assets = self.db.list_assets()
        history = capital_history if capital_history is not None else self.db.list_capital_history()
        return {
            "assets": [_asset_to_dict(a) for a in assets if a.kind != AssetKind.BANK],
            "banks": [_asset_to_dict(a) for a in assets if a.kind == AssetKind.BANK],
            "transactions": [
                _transaction_to_dict(t)
                for t in self.db.iter_transactions(deleted=None, ascending=True)
            ],
            "customers": [_customer_to_dict(c) for c in self.db.list_customers()],
            "receivables": [_receivable_to_dict(r) for r in self.db.list_receivables()],
            "capital_history": [_entry_to_dict(e) for e in history],
            "settings": self.db.list_settings(),
        }

    def export_json(
        self, capital_history: Optional[list[CapitalHistoryEntry]] = None, indent: int = 2
    ) -> str:
        """Serialize every collection to a JSON string."""
        return json.dumps(self.export_bundle(capital_history), indent=indent, ensure_ascii=False)

    def import_bundle(self, data: dict[str, Any]) -> None:
        """Replace every collection with the bundle's contents.

        Collections missing from the bundle become empty; when assets are
        missing the default cash vaults are recreated.

        Raises:
            ValidationError: If the bundle is malformed; nothing is replaced
        """
        if not isinstance(data, dict):
            raise ValidationError("Bundle must be a JSON object")

        try:
            assets = [_asset_from_dict(a) for a in data.get("assets", [])]
            assets += [_asset_from_dict(b) for b in data.get("banks", [])]
            transactions = [_transaction_from_dict(t) for t in data.get("transactions", [])]
            customers = [_customer_from_dict(c) for c in data.get("customers", [])]
            receivables = [_receivable_from_dict(r) for r in data.get("receivables", [])]
            history = [_entry_from_dict(e) for e in data.get("capital_history", [])]
        except DomainError:
            raise
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise ValidationError(f"Malformed bundle: {e}")

        settings = data.get("settings") or {}
        if not isinstance(settings, dict):
            raise ValidationError("Bundle settings must be an object")

        with self.db.atomic():
            self.db.replace_all(
                assets=assets,
                transactions=transactions,
                customers=customers,
                receivables=receivables,
                capital_history=history,
                settings=settings,
            )
            seed_default_assets(self.db, include_vaults="assets" not in data)
        logger.info(
            "Imported bundle: %d assets, %d transactions, %d closings",
            len(assets),
            len(transactions),
            len(history),
        )

    def import_json(self, text: str) -> None:
        """Replace every collection from a JSON string."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Bundle is not valid JSON: {e}")
        self.import_bundle(data)

    # Layout and other configuration blobs
    def get_setting(self, key: str) -> Any:
        return self.db.get_setting(key)

    def set_setting(self, key: str, value: Any) -> None:
        self.db.set_setting(key, value)
