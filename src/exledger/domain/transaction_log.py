"""Transaction log domain service."""

import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterator, Optional

from exledger.database.base import Database
from exledger.domain.clock import Clock, SystemClock
from exledger.domain.entities import (
    AssetKind,
    Currency,
    EntryType,
    Transaction,
    TransactionDraft,
    TransactionGroup,
)
from exledger.domain.errors import NotFoundError, ValidationError, asset_not_found
from exledger.domain.operations import OperationKind


class TransactionQuery:
    """Lazy, restartable view over the log.

    Nothing is read until the query is iterated, and every iteration runs the
    query again, so a stored ``TransactionQuery`` always reflects the current
    state of the log.
    """

    def __init__(self, db: Database, **filters):
        self._db = db
        self._filters = filters

    def __iter__(self) -> Iterator[Transaction]:
        return self._db.iter_transactions(**self._filters)

    def all(self) -> list[Transaction]:
        """Materialize the query."""
        return list(self)

    def first(self) -> Optional[Transaction]:
        """Return the first matching transaction, or None."""
        return next(iter(self), None)

    def count(self) -> int:
        return sum(1 for _ in self)


class TransactionLog:
    """Append-only store of ledger transactions.

    Appending never touches balances; callers that move money apply the
    matching balance delta in the same unit of work.
    """

    def __init__(self, db: Database, clock: Optional[Clock] = None):
        """Initialize transaction log.

        Args:
            db: Database instance
            clock: Time source for transaction timestamps (system time by default)
        """
        self.db = db
        self.clock = clock or SystemClock()

    def append(self, draft: TransactionDraft) -> str:
        """Store a new transaction and return its id.

        Args:
            draft: Transaction content; id and timestamp are assigned here

        Returns:
            Transaction ID

        Raises:
            ValidationError: If currency, asset or amount is missing, the amount
                is not a finite number, or the currency does not match the asset
            NotFoundError: If the asset does not exist
        """
        if draft.currency is None:
            raise ValidationError("Transaction currency is required")
        if not draft.asset_id:
            raise ValidationError("Transaction asset is required")
        if draft.amount is None:
            raise ValidationError("Transaction amount is required")

        amount = draft.amount
        if not isinstance(amount, Decimal):
            try:
                amount = Decimal(str(amount))
            except InvalidOperation:
                raise ValidationError(f"Invalid transaction amount: {draft.amount!r}")
        if not amount.is_finite():
            raise ValidationError(f"Transaction amount must be finite, got {amount}")

        asset = self.db.get_asset(draft.asset_id)
        if asset is None:
            raise NotFoundError(asset_not_found(draft.asset_id))
        if asset.kind != AssetKind.MEMO and asset.currency != draft.currency:
            raise ValidationError(
                f"Asset '{asset.id}' holds {asset.currency.value}, "
                f"cannot record a {draft.currency.value} transaction"
            )

        transaction = Transaction(
            id=uuid.uuid4().hex,
            timestamp=self.clock.now(),
            currency=draft.currency,
            amount=amount,
            asset_id=draft.asset_id,
            entry_type=draft.entry_type,
            description=draft.description,
            related_party=draft.related_party,
            group_id=draft.group_id,
            actor=draft.actor,
            is_deleted=False,
            operation=draft.operation,
        )
        return self.db.create_transaction(transaction)

    def query(
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
    ) -> TransactionQuery:
        """Build a lazy query over the log.

        Args:
            start: Inclusive lower timestamp bound
            end: Inclusive upper timestamp bound
            currency: Only this currency
            entry_type: Only this entry type
            operation: Only transactions tagged with this operation kind
            group_id: Only members of this group
            asset_id: Only transactions on this asset
            deleted: False for active only, True for deleted only, None for both
            ascending: Oldest first (for computation) instead of newest first

        Returns:
            Restartable iterable of transactions
        """
        return TransactionQuery(
            self.db,
            start=start,
            end=end,
            currency=currency,
            entry_type=entry_type,
            operation=operation,
            group_id=group_id,
            asset_id=asset_id,
            deleted=deleted,
            ascending=ascending,
        )

    def get(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by ID."""
        return self.db.get_transaction(transaction_id)

    def get_group(self, group_id: str) -> Optional[TransactionGroup]:
        """Get every transaction sharing a group id, oldest first."""
        members = tuple(self.query(group_id=group_id, deleted=None, ascending=True))
        if not members:
            return None
        return TransactionGroup(group_id=group_id, transactions=members)

    def list_groups(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        deleted: Optional[bool] = False,
    ) -> list[TransactionGroup]:
        """List transaction groups, newest first.

        Transactions without a group id are not included.
        """
        grouped: dict[str, list[Transaction]] = {}
        for txn in self.query(start=start, end=end, deleted=deleted, ascending=True):
            if txn.group_id is None:
                continue
            grouped.setdefault(txn.group_id, []).append(txn)

        groups = [
            TransactionGroup(group_id=group_id, transactions=tuple(members))
            for group_id, members in grouped.items()
        ]
        groups.reverse()
        return groups
