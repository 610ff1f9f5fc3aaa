"""Enumerations and fixed values shared across the retail ledger modules.

Centralises domain constants so that the gateway, the stock ledger, the
reconciliation engine, and the CLI agree on identifiers and on the handful of
business numbers (reload cost ratio, branch aliases) the engine depends on.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Reload goods are stocked as wallet value; their supplier cost is 96% of price.
RELOAD_COST_RATIO = Decimal("0.96")
RELOAD_TOKEN = "RELOAD"

DEFAULT_CASH_ACCOUNT_ID = "cash"
DEFAULT_BRANCH = "Main Branch"
DEFAULT_MASTER_BRANCH = "CASHIER 1"
DEFAULT_BRANCH_ALIASES: tuple[str, ...] = (
    "CASHIER 2",
    "SHOP 2",
    "LOCAL NODE",
    "BOOKSHOP",
    "MAIN BRANCH",
)
DEFAULT_LOW_STOCK_THRESHOLD = Decimal("5")

# Branch identifiers the gateway treats as missing.
INVALID_BRANCH_VALUES = frozenset({"", "undefined", "null", "none"})


class TransactionType(str, Enum):
    """Enumerate the transaction types that drive ledger side effects."""

    SALE = "SALE"
    PURCHASE = "PURCHASE"
    CREDIT_PAYMENT = "CREDIT_PAYMENT"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class TransactionStatus(str, Enum):
    """Lifecycle of a transaction; only COMPLETED ones carry side effects."""

    DRAFT = "DRAFT"
    COMPLETED = "COMPLETED"


class PaymentMethod(str, Enum):
    """Enumerate the tender types accepted at the till."""

    CASH = "CASH"
    BANK = "BANK"
    CARD = "CARD"
    CREDIT = "CREDIT"
    CHEQUE = "CHEQUE"


class PurchaseOrderStatus(str, Enum):
    """Lifecycle of a purchase order."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


class ProductKind(str, Enum):
    """How stock for a product is counted."""

    STANDARD = "STANDARD"
    RELOAD = "RELOAD"


class DaySessionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Collection(str, Enum):
    """Enumerate the document collections (one worksheet each)."""

    PRODUCTS = "Products"
    CATEGORIES = "Categories"
    TRANSACTIONS = "Transactions"
    CUSTOMERS = "Customers"
    VENDORS = "Vendors"
    ACCOUNTS = "Accounts"
    PURCHASE_ORDERS = "PurchaseOrders"
    DAY_SESSIONS = "DaySessions"


# Columns whose cells hold JSON text rather than scalars.
JSON_COLUMNS = frozenset({"Items", "BranchStocks"})


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "RELOAD_COST_RATIO",
    "RELOAD_TOKEN",
    "DEFAULT_CASH_ACCOUNT_ID",
    "DEFAULT_BRANCH",
    "DEFAULT_MASTER_BRANCH",
    "DEFAULT_BRANCH_ALIASES",
    "DEFAULT_LOW_STOCK_THRESHOLD",
    "INVALID_BRANCH_VALUES",
    "TransactionType",
    "TransactionStatus",
    "PaymentMethod",
    "PurchaseOrderStatus",
    "ProductKind",
    "DaySessionStatus",
    "Collection",
    "JSON_COLUMNS",
]
