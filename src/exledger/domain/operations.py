"""Typed operation metadata attached to ledger transactions.

Every domain operation tags the transactions it produces with one variant of
the ``Operation`` union. Variants carry only the fields that operation needs
and are consumed with ``match`` statements.
"""

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Optional, Union, get_args, get_origin, get_type_hints

from exledger.domain.entities import Channel, Currency
from exledger.domain.errors import ValidationError


class OperationKind(str, Enum):
    """Semantic operation a transaction belongs to."""

    BUY_CURRENCY = "BUY_CURRENCY"
    SELL_CURRENCY = "SELL_CURRENCY"
    BANK_TRANSFER = "BANK_TRANSFER"
    BANK_CASH_EXCHANGE = "BANK_CASH_EXCHANGE"
    CASH_EXCHANGE = "CASH_EXCHANGE"
    EXCHANGE_FEE = "EXCHANGE_FEE"
    POS_SALE = "POS_SALE"
    OPERATING_COST = "OPERATING_COST"
    ASSET_ADJUSTMENT = "ASSET_ADJUSTMENT"
    NEW_DEBT = "NEW_DEBT"
    DEBT_PAYMENT = "DEBT_PAYMENT"
    NEW_RECEIVABLE = "NEW_RECEIVABLE"
    RECEIVABLE_PAYMENT = "RECEIVABLE_PAYMENT"


@dataclass(frozen=True)
class BuyCurrency:
    kind: ClassVar[OperationKind] = OperationKind.BUY_CURRENCY

    currency: Currency
    foreign_amount: Decimal
    rate: Decimal
    lyd_amount: Decimal
    channel: Channel
    destination: str
    # None when the whole price was settled against a debt or owed as a receivable
    lyd_source: Optional[str] = None
    note: str = ""
    # (installment id, amount) pairs paid off by handing over the currency
    settled_installments: tuple[tuple[int, Decimal], ...] = ()
    # Receivable created when the price is owed to the seller
    receivable_id: Optional[int] = None


@dataclass(frozen=True)
class SellCurrency:
    kind: ClassVar[OperationKind] = OperationKind.SELL_CURRENCY

    currency: Currency
    foreign_amount: Decimal
    rate: Decimal
    lyd_amount: Decimal
    channel: Channel
    source: str
    lyd_destination: str
    note: str = ""
    # Set when the sale was made on credit
    debt_installment_id: Optional[int] = None
    # Receivable paid down by the sale, and the LYD applied to it
    receivable_id: Optional[int] = None
    settled_amount: Optional[Decimal] = None
    # Installment holding proceeds beyond the receivable
    excess_installment_id: Optional[int] = None


@dataclass(frozen=True)
class BankTransfer:
    kind: ClassVar[OperationKind] = OperationKind.BANK_TRANSFER

    from_bank: str
    to_bank: str
    amount: Decimal


@dataclass(frozen=True)
class BankCashExchange:
    kind: ClassVar[OperationKind] = OperationKind.BANK_CASH_EXCHANGE

    bank_id: str
    cash_asset_id: str
    amount: Decimal
    to_cash: bool


@dataclass(frozen=True)
class CashExchange:
    kind: ClassVar[OperationKind] = OperationKind.CASH_EXCHANGE

    from_asset: str
    to_asset: str
    amount: Decimal
    received_amount: Decimal
    is_profit: bool = False
    is_loss: bool = False


@dataclass(frozen=True)
class ExchangeFee:
    kind: ClassVar[OperationKind] = OperationKind.EXCHANGE_FEE

    amount: Decimal
    fee_asset: str
    # Set when the fee is owed by a customer or to a debtor instead of paid
    installment_id: Optional[int] = None
    receivable_id: Optional[int] = None


@dataclass(frozen=True)
class PosSale:
    kind: ClassVar[OperationKind] = OperationKind.POS_SALE

    bank_id: str
    cash_asset_id: str
    total_amount: Decimal
    commission_rate: Decimal
    bank_deposit: Decimal
    cash_given: Decimal
    transaction_count: int
    net_profit: Decimal


@dataclass(frozen=True)
class OperatingCost:
    kind: ClassVar[OperationKind] = OperationKind.OPERATING_COST

    expense_category: str
    amount: Decimal
    cost_date: date
    source: str
    is_external: bool = False
    note: str = ""


@dataclass(frozen=True)
class AssetAdjustment:
    kind: ClassVar[OperationKind] = OperationKind.ASSET_ADJUSTMENT

    asset_id: str
    note: str = ""
    is_profit: bool = False
    is_loss: bool = False


@dataclass(frozen=True)
class NewDebt:
    kind: ClassVar[OperationKind] = OperationKind.NEW_DEBT

    customer_id: int
    installment_id: int
    amount: Decimal


@dataclass(frozen=True)
class DebtPayment:
    kind: ClassVar[OperationKind] = OperationKind.DEBT_PAYMENT

    customer_id: int
    installment_id: int
    amount: Decimal


@dataclass(frozen=True)
class NewReceivable:
    kind: ClassVar[OperationKind] = OperationKind.NEW_RECEIVABLE

    receivable_id: int
    amount: Decimal


@dataclass(frozen=True)
class ReceivablePayment:
    kind: ClassVar[OperationKind] = OperationKind.RECEIVABLE_PAYMENT

    receivable_id: int
    amount: Decimal


Operation = Union[
    BuyCurrency,
    SellCurrency,
    BankTransfer,
    BankCashExchange,
    CashExchange,
    ExchangeFee,
    PosSale,
    OperatingCost,
    AssetAdjustment,
    NewDebt,
    DebtPayment,
    NewReceivable,
    ReceivablePayment,
]

VARIANTS: dict[OperationKind, type] = {cls.kind: cls for cls in get_args(Operation)}


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_encode(item) for item in value]
    return value


def _decode(field_type: Any, value: Any) -> Any:
    if value is None:
        return None
    if get_origin(field_type) is Union:
        field_type = next(arg for arg in get_args(field_type) if arg is not type(None))
    if get_origin(field_type) is tuple:
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"expected a list, got {value!r}")
        args = get_args(field_type)
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(_decode(args[0], item) for item in value)
        if len(args) != len(value):
            raise ValueError(f"expected {len(args)} items, got {len(value)}")
        return tuple(_decode(arg, item) for arg, item in zip(args, value))
    if field_type is Decimal:
        return Decimal(str(value))
    if isinstance(field_type, type) and issubclass(field_type, Enum):
        return field_type(value)
    if field_type is date:
        return date.fromisoformat(value)
    if field_type is int:
        return int(value)
    if field_type is bool:
        return bool(value)
    return value


def to_payload(operation: Operation) -> dict[str, Any]:
    """Serialize an operation to a JSON-compatible dict."""
    payload: dict[str, Any] = {"kind": operation.kind.value}
    for f in fields(operation):
        payload[f.name] = _encode(getattr(operation, f.name))
    return payload


def from_payload(payload: dict[str, Any]) -> Operation:
    """Rebuild an operation from its serialized dict.

    Raises:
        ValidationError: If the kind is unknown or a field is malformed
    """
    try:
        kind = OperationKind(payload.get("kind"))
    except ValueError:
        raise ValidationError(f"Unknown operation kind: {payload.get('kind')!r}")

    cls = VARIANTS[kind]
    hints = get_type_hints(cls)
    values = {}
    for f in fields(cls):
        if f.name not in payload:
            continue
        try:
            values[f.name] = _decode(hints[f.name], payload[f.name])
        except (ValueError, TypeError, InvalidOperation) as e:
            raise ValidationError(f"Invalid {kind.value} field '{f.name}': {e}")
    try:
        return cls(**values)
    except TypeError as e:
        raise ValidationError(f"Incomplete {kind.value} metadata: {e}")
