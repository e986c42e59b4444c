"""Generic SQLAlchemy database implementation."""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session

from exledger.database.base import Database
from exledger.database.models import (
    Asset,
    Transaction,
    Customer,
    DebtInstallment,
    Receivable,
    CapitalHistoryEntry,
    Setting,
    create_session_factory,
)
from exledger.database.mappers import (
    asset_to_domain,
    transaction_to_domain,
    customer_to_domain,
    installment_to_domain,
    receivable_to_domain,
    capital_entry_to_domain,
    amounts_to_json,
    rates_to_json,
    breakdown_to_json,
)
from exledger.domain.entities import (
    Asset as DomainAsset,
    AssetKind,
    CapitalHistoryEntry as DomainCapitalHistoryEntry,
    Currency,
    Customer as DomainCustomer,
    DebtInstallment as DomainDebtInstallment,
    EntryType,
    Receivable as DomainReceivable,
    Transaction as DomainTransaction,
)
from exledger.domain.errors import (
    NotFoundError,
    asset_not_found,
    customer_not_found,
    installment_not_found,
    receivable_not_found,
)
from exledger.domain.operations import OperationKind, to_payload


class SQLAlchemyDatabase(Database):
    """SQLAlchemy-based implementation of Database interface."""

    def __init__(self, database_url: str):
        """Initialize SQLAlchemy database.

        Args:
            database_url: SQLAlchemy database URL (e.g., 'sqlite:///path/to.db',
                'sqlite://' for an in-memory store, 'postgresql://...')
        """
        self.database_url = database_url
        self.session_factory = create_session_factory(database_url)
        self._session: Optional[Session] = None
        self._atomic_depth = 0

    def _get_session(self) -> Session:
        """Get current session, creating one if needed."""
        if self._session is None:
            self._session = self.session_factory()
        return self._session

    def _commit(self) -> None:
        """Commit now, or only flush when inside a unit of work."""
        session = self._get_session()
        if self._atomic_depth > 0:
            session.flush()
        else:
            session.commit()

    def connect(self) -> None:
        """Connect to the database."""
        # Connection is lazy, so this is a no-op
        pass

    def disconnect(self) -> None:
        """Disconnect from the database."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        # Schema is created automatically by create_session_factory
        pass

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the enclosed writes as one commit, rolling back on error."""
        session = self._get_session()
        self._atomic_depth += 1
        try:
            yield
        except Exception:
            self._atomic_depth -= 1
            if self._atomic_depth == 0:
                session.rollback()
            raise
        self._atomic_depth -= 1
        if self._atomic_depth == 0:
            session.commit()

    # Asset operations
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
        session = self._get_session()
        asset = Asset(
            id=asset_id,
            name=name,
            kind=kind.value,
            currency=currency.value if currency is not None else None,
            balance=opening_balance,
            opening_balance=opening_balance,
            is_pos_enabled=is_pos_enabled,
        )
        session.add(asset)
        self._commit()
        return asset.id

    def get_asset(self, asset_id: str) -> Optional[DomainAsset]:
        """Get asset by ID."""
        session = self._get_session()
        asset = session.query(Asset).filter(Asset.id == asset_id).first()
        if asset is None:
            return None
        return asset_to_domain(asset)

    def list_assets(self, kind: Optional[AssetKind] = None) -> list[DomainAsset]:
        """List assets, optionally filtered by kind."""
        session = self._get_session()
        query = session.query(Asset)
        if kind is not None:
            query = query.filter(Asset.kind == kind.value)
        assets = query.order_by(Asset.kind, Asset.created_at, Asset.id).all()
        return [asset_to_domain(a) for a in assets]

    def apply_balance_delta(self, asset_id: str, delta: Decimal) -> Decimal:
        """Add delta to an asset balance. Returns the new balance."""
        session = self._get_session()
        asset = session.query(Asset).filter(Asset.id == asset_id).first()
        if asset is None:
            raise NotFoundError(asset_not_found(asset_id))
        asset.balance = Decimal(str(asset.balance or 0)) + delta
        self._commit()
        return asset.balance

    def delete_asset(self, asset_id: str) -> None:
        """Delete an asset."""
        session = self._get_session()
        asset = session.query(Asset).filter(Asset.id == asset_id).first()
        if asset is None:
            raise NotFoundError(asset_not_found(asset_id))
        session.delete(asset)
        self._commit()

    # Transaction operations
    def create_transaction(self, transaction: DomainTransaction) -> str:
        """Store a fully built transaction. Returns transaction ID."""
        session = self._get_session()
        operation = transaction.operation
        row = Transaction(
            id=transaction.id,
            timestamp=transaction.timestamp,
            currency=transaction.currency.value,
            amount=transaction.amount,
            asset_id=transaction.asset_id,
            entry_type=transaction.entry_type.value,
            description=transaction.description,
            related_party=transaction.related_party,
            group_id=transaction.group_id,
            actor=transaction.actor,
            is_deleted=transaction.is_deleted,
            operation_kind=operation.kind.value if operation is not None else None,
            operation_payload=to_payload(operation) if operation is not None else None,
        )
        session.add(row)
        self._commit()
        return row.id

    def get_transaction(self, transaction_id: str) -> Optional[DomainTransaction]:
        """Get transaction by ID."""
        session = self._get_session()
        txn = session.query(Transaction).filter(Transaction.id == transaction_id).first()
        if txn is None:
            return None
        return transaction_to_domain(txn)

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
    ) -> Iterator[DomainTransaction]:
        """Yield transactions matching the filters."""
        session = self._get_session()
        query = session.query(Transaction)

        if start is not None:
            query = query.filter(Transaction.timestamp >= start)
        if end is not None:
            query = query.filter(Transaction.timestamp <= end)
        if currency is not None:
            query = query.filter(Transaction.currency == currency.value)
        if entry_type is not None:
            query = query.filter(Transaction.entry_type == entry_type.value)
        if operation is not None:
            query = query.filter(Transaction.operation_kind == operation.value)
        if group_id is not None:
            query = query.filter(Transaction.group_id == group_id)
        if asset_id is not None:
            query = query.filter(Transaction.asset_id == asset_id)
        if deleted is not None:
            query = query.filter(Transaction.is_deleted.is_(deleted))

        if ascending:
            query = query.order_by(Transaction.timestamp.asc(), Transaction.seq.asc())
        else:
            query = query.order_by(Transaction.timestamp.desc(), Transaction.seq.desc())

        for txn in query.all():
            yield transaction_to_domain(txn)

    def set_transactions_deleted(self, transaction_ids: list[str], is_deleted: bool) -> None:
        """Set the soft-delete flag on the given transactions."""
        session = self._get_session()
        rows = session.query(Transaction).filter(Transaction.id.in_(transaction_ids)).all()
        for row in rows:
            row.is_deleted = is_deleted
        self._commit()

    # Customer and debt operations
    def create_customer(self, name: str, currency: Currency) -> int:
        """Create a customer. Returns customer ID."""
        session = self._get_session()
        customer = Customer(name=name, currency=currency.value)
        session.add(customer)
        self._commit()
        return customer.id

    def get_customer(self, customer_id: int) -> Optional[DomainCustomer]:
        """Get customer (with debt installments) by ID."""
        session = self._get_session()
        customer = session.query(Customer).filter(Customer.id == customer_id).first()
        if customer is None:
            return None
        return customer_to_domain(customer)

    def list_customers(
        self, currency: Optional[Currency] = None, include_archived: bool = True
    ) -> list[DomainCustomer]:
        """List customers with their debt installments."""
        session = self._get_session()
        query = session.query(Customer)
        if currency is not None:
            query = query.filter(Customer.currency == currency.value)
        if not include_archived:
            query = query.filter(Customer.is_archived.is_(False))
        customers = query.order_by(Customer.name, Customer.id).all()
        return [customer_to_domain(c) for c in customers]

    def set_customer_archived(self, customer_id: int, is_archived: bool) -> None:
        """Archive or restore a customer."""
        session = self._get_session()
        customer = session.query(Customer).filter(Customer.id == customer_id).first()
        if customer is None:
            raise NotFoundError(customer_not_found(customer_id))
        customer.is_archived = is_archived
        self._commit()

    def create_installment(self, customer_id: int, amount: Decimal, date: datetime) -> int:
        """Create a debt installment. Returns installment ID."""
        session = self._get_session()
        installment = DebtInstallment(customer_id=customer_id, amount=amount, paid=0, date=date)
        session.add(installment)
        self._commit()
        return installment.id

    def get_installment(self, installment_id: int) -> Optional[DomainDebtInstallment]:
        """Get debt installment by ID."""
        session = self._get_session()
        row = session.query(DebtInstallment).filter(DebtInstallment.id == installment_id).first()
        if row is None:
            return None
        return installment_to_domain(row)

    def update_installment(
        self,
        installment_id: int,
        paid: Optional[Decimal] = None,
        is_archived: Optional[bool] = None,
        is_voided: Optional[bool] = None,
    ) -> None:
        """Update debt installment fields that are not None."""
        session = self._get_session()
        row = session.query(DebtInstallment).filter(DebtInstallment.id == installment_id).first()
        if row is None:
            raise NotFoundError(installment_not_found(installment_id))
        if paid is not None:
            row.paid = paid
        if is_archived is not None:
            row.is_archived = is_archived
        if is_voided is not None:
            row.is_voided = is_voided
        self._commit()

    # Receivable operations
    def create_receivable(
        self, debtor: str, currency: Currency, amount: Decimal, date: datetime
    ) -> int:
        """Create a receivable. Returns receivable ID."""
        session = self._get_session()
        receivable = Receivable(
            debtor=debtor, currency=currency.value, amount=amount, paid=0, date=date
        )
        session.add(receivable)
        self._commit()
        return receivable.id

    def get_receivable(self, receivable_id: int) -> Optional[DomainReceivable]:
        """Get receivable by ID."""
        session = self._get_session()
        row = session.query(Receivable).filter(Receivable.id == receivable_id).first()
        if row is None:
            return None
        return receivable_to_domain(row)

    def list_receivables(
        self, currency: Optional[Currency] = None, include_archived: bool = True
    ) -> list[DomainReceivable]:
        """List receivables."""
        session = self._get_session()
        query = session.query(Receivable)
        if currency is not None:
            query = query.filter(Receivable.currency == currency.value)
        if not include_archived:
            query = query.filter(Receivable.is_archived.is_(False))
        rows = query.order_by(Receivable.date, Receivable.id).all()
        return [receivable_to_domain(r) for r in rows]

    def update_receivable(
        self,
        receivable_id: int,
        paid: Optional[Decimal] = None,
        is_archived: Optional[bool] = None,
        is_voided: Optional[bool] = None,
    ) -> None:
        """Update receivable fields that are not None."""
        session = self._get_session()
        row = session.query(Receivable).filter(Receivable.id == receivable_id).first()
        if row is None:
            raise NotFoundError(receivable_not_found(receivable_id))
        if paid is not None:
            row.paid = paid
        if is_archived is not None:
            row.is_archived = is_archived
        if is_voided is not None:
            row.is_voided = is_voided
        self._commit()

    # Capital history operations
    def add_capital_history_entry(self, entry: DomainCapitalHistoryEntry) -> int:
        """Append a capital history entry. Returns entry ID."""
        session = self._get_session()
        row = CapitalHistoryEntry(
            timestamp=entry.timestamp,
            total=entry.total,
            capital_breakdown=amounts_to_json(entry.capital_breakdown),
            rates=rates_to_json(entry.rates),
            detailed_breakdown=breakdown_to_json(entry.detailed_breakdown),
        )
        session.add(row)
        self._commit()
        return row.id

    def list_capital_history(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[DomainCapitalHistoryEntry]:
        """List capital history entries ordered by timestamp ascending."""
        session = self._get_session()
        query = session.query(CapitalHistoryEntry)
        if start is not None:
            query = query.filter(CapitalHistoryEntry.timestamp >= start)
        if end is not None:
            query = query.filter(CapitalHistoryEntry.timestamp <= end)
        rows = query.order_by(CapitalHistoryEntry.timestamp, CapitalHistoryEntry.id).all()
        return [capital_entry_to_domain(r) for r in rows]

    def latest_capital_history(
        self, at: Optional[datetime] = None, inclusive: bool = True
    ) -> Optional[DomainCapitalHistoryEntry]:
        """Get the newest entry at or before (inclusive) or strictly before ``at``."""
        session = self._get_session()
        query = session.query(CapitalHistoryEntry)
        if at is not None:
            if inclusive:
                query = query.filter(CapitalHistoryEntry.timestamp <= at)
            else:
                query = query.filter(CapitalHistoryEntry.timestamp < at)
        row = query.order_by(
            CapitalHistoryEntry.timestamp.desc(), CapitalHistoryEntry.id.desc()
        ).first()
        if row is None:
            return None
        return capital_entry_to_domain(row)

    # Settings operations
    def get_setting(self, key: str) -> Any:
        """Get a configuration blob by key (None if unset)."""
        session = self._get_session()
        row = session.query(Setting).filter(Setting.key == key).first()
        return row.value if row is not None else None

    def set_setting(self, key: str, value: Any) -> None:
        """Store a configuration blob."""
        session = self._get_session()
        row = session.query(Setting).filter(Setting.key == key).first()
        if row is None:
            session.add(Setting(key=key, value=value))
        else:
            row.value = value
        self._commit()

    def list_settings(self) -> dict[str, Any]:
        """Get all configuration blobs."""
        session = self._get_session()
        return {row.key: row.value for row in session.query(Setting).order_by(Setting.key).all()}

    # Bulk replacement used by bundle import
    def replace_all(
        self,
        assets: list[DomainAsset],
        transactions: list[DomainTransaction],
        customers: list[DomainCustomer],
        receivables: list[DomainReceivable],
        capital_history: list[DomainCapitalHistoryEntry],
        settings: dict[str, Any],
    ) -> None:
        """Replace every collection wholesale."""
        session = self._get_session()
        with self.atomic():
            for model in (
                Transaction,
                DebtInstallment,
                Customer,
                Receivable,
                CapitalHistoryEntry,
                Setting,
                Asset,
            ):
                session.query(model).delete()
            session.flush()
            session.expunge_all()

            for asset in assets:
                session.add(
                    Asset(
                        id=asset.id,
                        name=asset.name,
                        kind=asset.kind.value,
                        currency=asset.currency.value if asset.currency else None,
                        balance=asset.balance,
                        opening_balance=asset.opening_balance,
                        is_pos_enabled=asset.is_pos_enabled,
                    )
                )
            for txn in transactions:
                self.create_transaction(txn)
            for customer in customers:
                session.add(
                    Customer(
                        id=customer.id,
                        name=customer.name,
                        currency=customer.currency.value,
                        is_archived=customer.is_archived,
                        debts=[
                            DebtInstallment(
                                id=debt.id,
                                amount=debt.amount,
                                paid=debt.paid,
                                date=debt.date,
                                is_archived=debt.is_archived,
                                is_voided=debt.is_voided,
                            )
                            for debt in customer.debts
                        ],
                    )
                )
            for receivable in receivables:
                session.add(
                    Receivable(
                        id=receivable.id,
                        debtor=receivable.debtor,
                        currency=receivable.currency.value,
                        amount=receivable.amount,
                        paid=receivable.paid,
                        date=receivable.date,
                        is_archived=receivable.is_archived,
                        is_voided=receivable.is_voided,
                    )
                )
            for entry in capital_history:
                self.add_capital_history_entry(entry)
            for key, value in settings.items():
                session.add(Setting(key=key, value=value))
