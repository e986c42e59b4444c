"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Optional

# Import entities directly; domain services import this module
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
from exledger.domain.operations import OperationKind


class Database(ABC):
    """Abstract database interface for exledger."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """Unit of work: commit once on success, roll back on any exception.

        Writes made inside the block are not committed individually. Nested
        calls join the outer unit of work.
        """
        pass

    # Asset operations
    @abstractmethod
    def create_asset(
        self,
        asset_id: str,
        name: str,
        kind: AssetKind,
        currency: Optional[Currency],
        opening_balance: Decimal = Decimal("0"),
        is_pos_enabled: bool = False,
    ) -> str:
        """Create an asset whose balance starts at its opening balance."""
        pass

    @abstractmethod
    def get_asset(self, asset_id: str) -> Optional[Asset]:
        """Get asset by ID."""
        pass

    @abstractmethod
    def list_assets(self, kind: Optional[AssetKind] = None) -> list[Asset]:
        """List assets, optionally filtered by kind."""
        pass

    @abstractmethod
    def apply_balance_delta(self, asset_id: str, delta: Decimal) -> Decimal:
        """Add delta to an asset balance. Returns the new balance."""
        pass

    @abstractmethod
    def delete_asset(self, asset_id: str) -> None:
        """Delete an asset."""
        pass

    # Transaction operations
    @abstractmethod
    def create_transaction(self, transaction: Transaction) -> str:
        """Store a fully built transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def iter_transactions(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        currency: Optional[Currency] = None,
        entry_type: Optional[EntryType] = None,
        operation: Optional[OperationKind] = None,
        group_id: Optional[str] = None,
        asset_id: Optional[str] = None,
        deleted: Optional[bool] = False,
        ascending: bool = False,
    ) -> Iterator[Transaction]:
        """Yield transactions matching the filters.

        Args:
            deleted: False for active only, True for soft-deleted only, None for both
            ascending: Order by timestamp ascending instead of descending
        """
        pass

    @abstractmethod
    def set_transactions_deleted(self, transaction_ids: list[str], is_deleted: bool) -> None:
        """Set the soft-delete flag on the given transactions."""
        pass

    # Customer and debt operations
    @abstractmethod
    def create_customer(self, name: str, currency: Currency) -> int:
        """Create a customer. Returns customer ID."""
        pass

    @abstractmethod
    def get_customer(self, customer_id: int) -> Optional[Customer]:
        """Get customer (with debt installments) by ID."""
        pass

    @abstractmethod
    def list_customers(
        self, currency: Optional[Currency] = None, include_archived: bool = True
    ) -> list[Customer]:
        """List customers with their debt installments."""
        pass

    @abstractmethod
    def set_customer_archived(self, customer_id: int, is_archived: bool) -> None:
        """Archive or restore a customer."""
        pass

    @abstractmethod
    def create_installment(self, customer_id: int, amount: Decimal, date: datetime) -> int:
        """Create a debt installment. Returns installment ID."""
        pass

    @abstractmethod
    def get_installment(self, installment_id: int) -> Optional[DebtInstallment]:
        """Get debt installment by ID."""
        pass

    @abstractmethod
    def update_installment(
        self,
        installment_id: int,
        paid: Optional[Decimal] = None,
        is_archived: Optional[bool] = None,
        is_voided: Optional[bool] = None,
    ) -> None:
        """Update debt installment fields that are not None."""
        pass

    # Receivable operations
    @abstractmethod
    def create_receivable(
        self, debtor: str, currency: Currency, amount: Decimal, date: datetime
    ) -> int:
        """Create a receivable. Returns receivable ID."""
        pass

    @abstractmethod
    def get_receivable(self, receivable_id: int) -> Optional[Receivable]:
        """Get receivable by ID."""
        pass

    @abstractmethod
    def list_receivables(
        self, currency: Optional[Currency] = None, include_archived: bool = True
    ) -> list[Receivable]:
        """List receivables."""
        pass

    @abstractmethod
    def update_receivable(
        self,
        receivable_id: int,
        paid: Optional[Decimal] = None,
        is_archived: Optional[bool] = None,
        is_voided: Optional[bool] = None,
    ) -> None:
        """Update receivable fields that are not None."""
        pass

    # Capital history operations
    @abstractmethod
    def add_capital_history_entry(self, entry: CapitalHistoryEntry) -> int:
        """Append a capital history entry. Returns entry ID."""
        pass

    @abstractmethod
    def list_capital_history(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[CapitalHistoryEntry]:
        """List capital history entries ordered by timestamp ascending."""
        pass

    @abstractmethod
    def latest_capital_history(
        self, at: Optional[datetime] = None, inclusive: bool = True
    ) -> Optional[CapitalHistoryEntry]:
        """Get the newest entry at or before (inclusive) or strictly before ``at``."""
        pass

    # Settings operations
    @abstractmethod
    def get_setting(self, key: str) -> Any:
        """Get a configuration blob by key (None if unset)."""
        pass

    @abstractmethod
    def set_setting(self, key: str, value: Any) -> None:
        """Store a configuration blob."""
        pass

    @abstractmethod
    def list_settings(self) -> dict[str, Any]:
        """Get all configuration blobs."""
        pass

    # Bulk replacement used by bundle import
    @abstractmethod
    def replace_all(
        self,
        assets: list[Asset],
        transactions: list[Transaction],
        customers: list[Customer],
        receivables: list[Receivable],
        capital_history: list[CapitalHistoryEntry],
        settings: dict[str, Any],
    ) -> None:
        """Replace every collection wholesale."""
        pass
