"""Shared domain error messages and error types."""

from decimal import Decimal


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested asset, group or record does not exist."""


class ConflictError(DomainError):
    """Operation conflicts with the current state of the ledger."""


class AlreadyDeletedError(ConflictError):
    """Transaction group is already reversed."""


class AlreadyActiveError(ConflictError):
    """Transaction group is already active."""


class PartialReversalError(ValidationError):
    """A group could not be reversed or restored as a whole.

    Raised before any member of the group is touched, so balances are
    unchanged when this error propagates.
    """


class AllocationMismatchError(ValidationError):
    """Split-rate allocation parts do not add up to the currency total."""

    def __init__(self, currency: str, allocated: Decimal, total: Decimal):
        self.currency = currency
        self.allocated = allocated
        self.total = total
        self.discrepancy = allocated - total
        super().__init__(allocation_mismatch(currency, allocated, total))


class MissingRateError(ValidationError):
    """No usable exchange rate for a currency with a non-zero total."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"A valid exchange rate is required for {currency}")


class PermissionDeniedError(DomainError):
    """Caller is not allowed to run the requested operation."""


def asset_not_found(asset_id: str) -> str:
    """Return message for missing asset."""
    return f"Asset '{asset_id}' not found"


def group_not_found(group_id: str) -> str:
    """Return message for a group id with no transactions."""
    return f"Transaction group '{group_id}' not found"


def customer_not_found(customer_id: int) -> str:
    """Return message for missing customer."""
    return f"Customer {customer_id} not found"


def installment_not_found(installment_id: int) -> str:
    """Return message for missing debt installment."""
    return f"Debt installment {installment_id} not found"


def receivable_not_found(receivable_id: int) -> str:
    """Return message for missing receivable."""
    return f"Receivable {receivable_id} not found"


def allocation_mismatch(currency: str, allocated: Decimal, total: Decimal) -> str:
    """Return message for split allocation parts that miss the total."""
    return (
        f"Allocated amounts for {currency} ({allocated}) do not equal the "
        f"capital total ({total}); discrepancy {allocated - total}"
    )


def permission_denied(category: str, action: str) -> str:
    """Return message for a failed permission check."""
    return f"Permission denied: {category}.{action}"
