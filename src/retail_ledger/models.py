"""Domain model for the retail ledger.

The dataclasses here are the shared vocabulary of the engine: they carry no
behavior beyond construction. Every money and quantity field is a
:class:`~decimal.Decimal`; raw values coming from the workbook or the command
line pass through :func:`to_decimal`, which never raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Tuple

from . import log
from .constants import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    DaySessionStatus,
    PaymentMethod,
    ProductKind,
    PurchaseOrderStatus,
    TransactionStatus,
    TransactionType,
)


ZERO = Decimal("0")


def to_decimal(value: Any, fallback: Decimal = ZERO) -> Decimal:
    """Coerce ``value`` into a finite :class:`Decimal`.

    Args:
        value (Any): Raw cell, JSON, or command-line value. ``Decimal``,
            ``int``, ``float`` and numeric strings are accepted.
        fallback (Decimal): Value returned when coercion fails.

    Returns:
        Decimal: The parsed number, or ``fallback`` for ``None``, blank
            strings, non-numeric text, booleans, NaN, and infinities.
    """

    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, Decimal):
        candidate = value
    else:
        text = str(value).strip()
        if not text:
            return fallback
        try:
            candidate = Decimal(text)
        except (InvalidOperation, ValueError):
            return fallback
    if not candidate.is_finite():
        return fallback
    return candidate


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """
    if quantity <= ZERO:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


@dataclass(frozen=True)
class Category:
    """A product grouping; a name containing ``RELOAD`` marks reload goods."""

    category_id: str
    name: str


@dataclass(frozen=True)
class Product:
    """A sellable item and its per-branch stock buckets.

    ``branch_stocks`` is authoritative. ``stock`` caches the sum of its values
    and is only ever recomputed from it. ``kind`` is ``None`` for legacy
    documents written before the kind was stored; it is then derived from the
    category on demand.
    """

    product_id: str
    name: str
    sku: str
    category_id: str
    cost: Decimal
    price: Decimal
    branch_stocks: Mapping[str, Decimal] = field(default_factory=dict)
    stock: Decimal = ZERO
    low_stock_threshold: Decimal = DEFAULT_LOW_STOCK_THRESHOLD
    kind: Optional[ProductKind] = None


@dataclass(frozen=True)
class Customer:
    """A customer with a signed credit balance (positive means they owe us)."""

    customer_id: str
    name: str
    total_credit: Decimal
    credit_limit: Decimal = ZERO
    phone: Optional[str] = None


@dataclass(frozen=True)
class Vendor:
    """A supplier with a signed payable balance (positive means we owe them)."""

    vendor_id: str
    name: str
    total_balance: Decimal
    phone: Optional[str] = None


@dataclass(frozen=True)
class BankAccount:
    account_id: str
    name: str
    balance: Decimal
    account_number: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    """One sale line. ``price`` is the unit selling price."""

    product_id: str
    quantity: Decimal
    price: Decimal
    discount: Decimal = ZERO


@dataclass(frozen=True)
class PurchaseOrderLine:
    product_id: str
    quantity: Decimal
    cost: Decimal


@dataclass(frozen=True)
class Transaction:
    """A financial event.

    Only a ``COMPLETED`` transaction has side effects on stock, customers,
    vendors, or accounts. ``paid_amount`` is ``None`` when the caller never
    supplied one, which lets realized inflow fall back to ``amount``.
    """

    transaction_id: str
    transaction_type: TransactionType
    amount: Decimal
    payment_method: PaymentMethod
    status: TransactionStatus = TransactionStatus.COMPLETED
    paid_amount: Optional[Decimal] = None
    balance_due: Decimal = ZERO
    account_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    customer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    parent_tx_id: Optional[str] = None
    items: Tuple[LineItem, ...] = ()
    cost_basis: Decimal = ZERO
    branch_id: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_draft(self) -> bool:
        return self.status is TransactionStatus.DRAFT


@dataclass(frozen=True)
class PurchaseOrder:
    """A supplier order; receiving it is the only way it turns into stock."""

    po_id: str
    vendor_id: Optional[str]
    items: Tuple[PurchaseOrderLine, ...]
    status: PurchaseOrderStatus
    total_amount: Decimal
    payment_method: PaymentMethod
    account_id: Optional[str] = None
    date: Optional[str] = None
    received_date: Optional[str] = None


@dataclass(frozen=True)
class DaySession:
    """Opening/closing cash count for one branch on one date."""

    session_id: str
    date: str
    branch_id: str
    opening_balance: Decimal
    status: DaySessionStatus = DaySessionStatus.OPEN
    expected_closing: Optional[Decimal] = None
    actual_closing: Optional[Decimal] = None


__all__ = [
    "ZERO",
    "to_decimal",
    "require_positive_quantity",
    "require_nonnegative_money",
    "Category",
    "Product",
    "Customer",
    "Vendor",
    "BankAccount",
    "LineItem",
    "PurchaseOrderLine",
    "Transaction",
    "PurchaseOrder",
    "DaySession",
]
