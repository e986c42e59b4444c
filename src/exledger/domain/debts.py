"""Customer debt and receivable domain service."""

from decimal import Decimal
from typing import Optional

from exledger.database.base import Database
from exledger.domain.entities import Currency, Customer, Receivable
from exledger.domain.errors import (
    NotFoundError,
    ValidationError,
    customer_not_found,
    installment_not_found,
    receivable_not_found,
)
from exledger.logging_config import get_logger

logger = get_logger("domain.debts")


class DebtService:
    """Service for customers, their debts, and receivables.

    Money movements (lending, collecting, repaying) go through ``Ledger`` so
    that they are logged; this service owns the counterparties and the
    outstanding totals that feed capital.
    """

    def __init__(self, db: Database):
        """Initialize debt service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_customer(self, name: str, currency: Currency) -> int:
        """Create a customer.

        Args:
            name: Customer name
            currency: Currency all of the customer's debts are held in

        Returns:
            Customer ID

        Raises:
            ValidationError: If the name is empty
        """
        if not name or not name.strip():
            raise ValidationError("Customer name is required")
        customer_id = self.db.create_customer(name.strip(), currency)
        logger.info("Created customer %s (%s)", customer_id, currency.value)
        return customer_id

    def get_customer(self, customer_id: int) -> Optional[Customer]:
        """Get customer by ID."""
        return self.db.get_customer(customer_id)

    def require_customer(self, customer_id: int) -> Customer:
        """Get customer by ID or raise NotFoundError."""
        customer = self.db.get_customer(customer_id)
        if customer is None:
            raise NotFoundError(customer_not_found(customer_id))
        return customer

    def list_customers(
        self, currency: Optional[Currency] = None, include_archived: bool = False
    ) -> list[Customer]:
        """List customers, active ones only unless include_archived is set."""
        return self.db.list_customers(currency=currency, include_archived=include_archived)

    def archive_customer(self, customer_id: int) -> None:
        """Archive a customer; its debts stop counting towards capital."""
        self.require_customer(customer_id)
        self.db.set_customer_archived(customer_id, True)

    def restore_customer(self, customer_id: int) -> None:
        """Bring an archived customer back."""
        self.require_customer(customer_id)
        self.db.set_customer_archived(customer_id, False)

    def archive_installment(self, installment_id: int, archived: bool = True) -> None:
        """Archive (or unarchive) a single debt installment."""
        if self.db.get_installment(installment_id) is None:
            raise NotFoundError(installment_not_found(installment_id))
        self.db.update_installment(installment_id, is_archived=archived)

    def customer_balance(self, customer_id: int) -> Decimal:
        """Outstanding amount of one customer over active installments."""
        customer = self.require_customer(customer_id)
        return sum(
            (
                debt.outstanding
                for debt in customer.debts
                if not debt.is_archived and not debt.is_voided
            ),
            Decimal("0"),
        )

    def outstanding_debts(self) -> dict[Currency, Decimal]:
        """Total owed to the business per currency.

        Archived customers, archived installments and voided installments are
        excluded; overpaid installments count as zero.
        """
        totals: dict[Currency, Decimal] = {}
        for customer in self.db.list_customers(include_archived=False):
            for debt in customer.debts:
                if debt.is_archived or debt.is_voided:
                    continue
                totals[customer.currency] = totals.get(customer.currency, Decimal("0")) + debt.outstanding
        return totals

    # Receivables
    def get_receivable(self, receivable_id: int) -> Optional[Receivable]:
        """Get receivable by ID."""
        return self.db.get_receivable(receivable_id)

    def list_receivables(
        self, currency: Optional[Currency] = None, include_archived: bool = False
    ) -> list[Receivable]:
        """List receivables, active ones only unless include_archived is set."""
        return self.db.list_receivables(currency=currency, include_archived=include_archived)

    def archive_receivable(self, receivable_id: int, archived: bool = True) -> None:
        """Archive (or unarchive) a receivable."""
        if self.db.get_receivable(receivable_id) is None:
            raise NotFoundError(receivable_not_found(receivable_id))
        self.db.update_receivable(receivable_id, is_archived=archived)

    def outstanding_receivables(self) -> dict[Currency, Decimal]:
        """Total the business still owes per currency."""
        totals: dict[Currency, Decimal] = {}
        for receivable in self.db.list_receivables(include_archived=False):
            if receivable.is_voided:
                continue
            totals[receivable.currency] = (
                totals.get(receivable.currency, Decimal("0")) + receivable.outstanding
            )
        return totals
