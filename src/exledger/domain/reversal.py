"""Group delete/restore domain service.

A group moves between two states, active and deleted, and may cycle any
number of times. Deleting applies the negated amount of every member to its
asset and flags it deleted; restoring re-applies the original amounts.
Balances therefore always equal opening balance plus the sum of the
non-deleted transactions on each asset.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from exledger.database.base import Database
from exledger.domain.entities import Transaction, TransactionGroup
from exledger.domain.errors import (
    AlreadyActiveError,
    AlreadyDeletedError,
    DomainError,
    NotFoundError,
    PartialReversalError,
    group_not_found,
    installment_not_found,
    receivable_not_found,
)
from exledger.domain.operations import (
    BuyCurrency,
    DebtPayment,
    ExchangeFee,
    NewDebt,
    NewReceivable,
    Operation,
    ReceivablePayment,
    SellCurrency,
)
from exledger.domain.transaction_log import TransactionLog
from exledger.logging_config import get_logger

logger = get_logger("domain.reversal")


@dataclass(frozen=True)
class _SideEffect:
    """Pending change to a debt installment or receivable."""

    apply: Callable[[], None]
    description: str


class GroupReversalService:
    """Service for deleting and restoring transaction groups."""

    def __init__(self, db: Database, log: Optional[TransactionLog] = None):
        """Initialize reversal service.

        Args:
            db: Database instance
            log: Transaction log used to read groups (created from db if omitted)
        """
        self.db = db
        self.log = log or TransactionLog(db)

    def delete_group(self, group_id: str) -> TransactionGroup:
        """Reverse every active transaction of a group.

        Args:
            group_id: Group to delete

        Returns:
            The group as it was before deletion

        Raises:
            NotFoundError: If no transaction has this group id
            AlreadyDeletedError: If the group is already deleted
            PartialReversalError: If the group mixes active and deleted members
                or any member cannot be reversed; nothing is changed then
        """
        group = self._load(group_id)
        targets = [txn for txn in group.transactions if not txn.is_deleted]
        if not targets:
            logger.warning("Rejected delete of already deleted group %s", group_id)
            raise AlreadyDeletedError(f"Transaction group '{group_id}' is already deleted")

        effects = self._plan(group, targets, deleting=True)
        self._execute(targets, effects, deleting=True)
        logger.info("Deleted group %s (%d transactions)", group_id, len(targets))
        return group

    def restore_group(self, group_id: str) -> TransactionGroup:
        """Re-apply every deleted transaction of a group.

        Args:
            group_id: Group to restore

        Returns:
            The group as it was before restoring

        Raises:
            NotFoundError: If no transaction has this group id
            AlreadyActiveError: If the group is already active
            PartialReversalError: If the group mixes active and deleted members
                or any member cannot be restored; nothing is changed then
        """
        group = self._load(group_id)
        targets = [txn for txn in group.transactions if txn.is_deleted]
        if not targets:
            logger.warning("Rejected restore of already active group %s", group_id)
            raise AlreadyActiveError(f"Transaction group '{group_id}' is already active")

        effects = self._plan(group, targets, deleting=False)
        self._execute(targets, effects, deleting=False)
        logger.info("Restored group %s (%d transactions)", group_id, len(targets))
        return group

    def _load(self, group_id: str) -> TransactionGroup:
        group = self.log.get_group(group_id)
        if group is None:
            raise NotFoundError(group_not_found(group_id))
        if not group.is_active and not group.is_deleted:
            deleted = sum(1 for txn in group.transactions if txn.is_deleted)
            logger.warning(
                "Group %s has %d of %d members deleted", group_id, deleted, len(group.transactions)
            )
            raise PartialReversalError(
                f"Transaction group '{group_id}' has both active and deleted members "
                f"({deleted} of {len(group.transactions)} deleted)"
            )
        return group

    def _plan(
        self, group: TransactionGroup, targets: list[Transaction], deleting: bool
    ) -> list[_SideEffect]:
        """Validate every member and collect debt side effects, mutating nothing."""
        problems = []
        for txn in targets:
            if self.db.get_asset(txn.asset_id) is None:
                problems.append(f"asset '{txn.asset_id}' no longer exists")

        effects: list[_SideEffect] = []
        for operation in _distinct_operations(group):
            try:
                effects.extend(self._side_effects(operation, deleting))
            except DomainError as e:
                problems.append(str(e))

        if problems:
            action = "delete" if deleting else "restore"
            logger.warning("Cannot %s group %s: %s", action, group.group_id, "; ".join(problems))
            raise PartialReversalError(
                f"Cannot {action} transaction group '{group.group_id}': " + "; ".join(problems)
            )
        return effects

    def _side_effects(self, operation: Optional[Operation], deleting: bool) -> list[_SideEffect]:
        sign = -1 if deleting else 1
        match operation:
            case NewDebt(installment_id=installment_id):
                return [self._void_installment(installment_id, deleting)]
            case BuyCurrency(settled_installments=settled, receivable_id=receivable_id):
                effects = [
                    self._adjust_installment_paid(installment_id, sign * amount)
                    for installment_id, amount in settled
                ]
                if receivable_id is not None:
                    effects.append(self._void_receivable(receivable_id, deleting))
                return effects
            case SellCurrency(
                debt_installment_id=debt_id,
                receivable_id=receivable_id,
                settled_amount=settled,
                excess_installment_id=excess_id,
            ):
                effects = []
                if debt_id is not None:
                    effects.append(self._void_installment(debt_id, deleting))
                if receivable_id is not None and settled:
                    effects.append(self._adjust_receivable_paid(receivable_id, sign * settled))
                if excess_id is not None:
                    effects.append(self._void_installment(excess_id, deleting))
                return effects
            case ExchangeFee(installment_id=installment_id, receivable_id=receivable_id):
                effects = []
                if installment_id is not None:
                    effects.append(self._void_installment(installment_id, deleting))
                if receivable_id is not None:
                    effects.append(self._void_receivable(receivable_id, deleting))
                return effects
            case DebtPayment(installment_id=installment_id, amount=amount):
                return [self._adjust_installment_paid(installment_id, sign * amount)]
            case NewReceivable(receivable_id=receivable_id):
                return [self._void_receivable(receivable_id, deleting)]
            case ReceivablePayment(receivable_id=receivable_id, amount=amount):
                return [self._adjust_receivable_paid(receivable_id, sign * amount)]
            case _:
                return []

    def _void_installment(self, installment_id: int, voided: bool) -> _SideEffect:
        installment = self.db.get_installment(installment_id)
        if installment is None:
            raise NotFoundError(installment_not_found(installment_id))
        return _SideEffect(
            apply=lambda: self.db.update_installment(installment_id, is_voided=voided),
            description=f"{'void' if voided else 'reinstate'} debt installment {installment_id}",
        )

    def _adjust_installment_paid(self, installment_id: int, delta: Decimal) -> _SideEffect:
        installment = self.db.get_installment(installment_id)
        if installment is None:
            raise NotFoundError(installment_not_found(installment_id))
        paid = installment.paid + delta
        if paid < 0 or paid > installment.amount:
            raise DomainError(
                f"debt installment {installment_id} would have paid {paid} "
                f"outside 0..{installment.amount}"
            )
        return _SideEffect(
            apply=lambda: self.db.update_installment(installment_id, paid=paid),
            description=f"set paid of debt installment {installment_id} to {paid}",
        )

    def _void_receivable(self, receivable_id: int, voided: bool) -> _SideEffect:
        receivable = self.db.get_receivable(receivable_id)
        if receivable is None:
            raise NotFoundError(receivable_not_found(receivable_id))
        return _SideEffect(
            apply=lambda: self.db.update_receivable(receivable_id, is_voided=voided),
            description=f"{'void' if voided else 'reinstate'} receivable {receivable_id}",
        )

    def _adjust_receivable_paid(self, receivable_id: int, delta: Decimal) -> _SideEffect:
        receivable = self.db.get_receivable(receivable_id)
        if receivable is None:
            raise NotFoundError(receivable_not_found(receivable_id))
        paid = receivable.paid + delta
        if paid < 0 or paid > receivable.amount:
            raise DomainError(
                f"receivable {receivable_id} would have paid {paid} "
                f"outside 0..{receivable.amount}"
            )
        return _SideEffect(
            apply=lambda: self.db.update_receivable(receivable_id, paid=paid),
            description=f"set paid of receivable {receivable_id} to {paid}",
        )

    def _execute(
        self, targets: list[Transaction], effects: list[_SideEffect], deleting: bool
    ) -> None:
        with self.db.atomic():
            for txn in targets:
                delta = -txn.amount if deleting else txn.amount
                self.db.apply_balance_delta(txn.asset_id, delta)
            self.db.set_transactions_deleted([txn.id for txn in targets], deleting)
            for effect in effects:
                logger.debug("Reversal side effect: %s", effect.description)
                effect.apply()


def _distinct_operations(group: TransactionGroup) -> list[Operation]:
    """Operations tagged on the group's members, each once, in posting order."""
    operations: list[Operation] = []
    for txn in group.transactions:
        if txn.operation is not None and txn.operation not in operations:
            operations.append(txn.operation)
    return operations
