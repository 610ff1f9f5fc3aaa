"""Pure impact functions.

Each function maps one transaction state to the signed amount it contributes
to an aggregate, keyed by the aggregate's id. A ``None`` transaction or a
DRAFT one contributes nothing. Creating, amending, and deleting a transaction
all reduce to ``net_change(impact(old), impact(new))``, which is why the same
functions serve the apply and the reconciliation paths.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Hashable, Mapping, Optional, Sequence, Tuple, TypeVar

from .constants import (
    DEFAULT_BRANCH_ALIASES,
    DEFAULT_CASH_ACCOUNT_ID,
    DEFAULT_MASTER_BRANCH,
    PaymentMethod,
    ProductKind,
    TransactionStatus,
    TransactionType,
)
from .models import ZERO, Transaction
from .snapshot import LedgerSnapshot
from .stock_ledger import deduction_amount, kind_of, resolve_stock_branch

K = TypeVar("K", bound=Hashable)
StockKey = Tuple[str, str]


def is_effective(tx: Optional[Transaction]) -> bool:
    """Return ``True`` when ``tx`` carries side effects."""

    return tx is not None and tx.status is TransactionStatus.COMPLETED


def realized_inflow(tx: Transaction) -> Decimal:
    """Money actually received for ``tx``.

    A non-zero ``paid_amount`` wins. Otherwise the full amount counts unless
    the sale went on credit.
    """

    if tx.paid_amount is not None and tx.paid_amount != ZERO:
        return tx.paid_amount
    if tx.payment_method is not PaymentMethod.CREDIT:
        return tx.amount
    return ZERO


def credit_impact(tx: Transaction) -> Decimal:
    """Signed change to the customer's ``total_credit``."""

    if tx.transaction_type is TransactionType.CREDIT_PAYMENT:
        return -tx.amount
    if tx.transaction_type is not TransactionType.SALE:
        return ZERO
    if tx.payment_method is PaymentMethod.CREDIT:
        return tx.amount
    return tx.balance_due


def vendor_impact(tx: Transaction) -> Decimal:
    """Signed change to the vendor's ``total_balance``.

    Every purchase charges the vendor by its amount whatever the payment
    method; when it is not on CREDIT the account is debited as well.
    """

    if tx.transaction_type is TransactionType.PURCHASE:
        return tx.amount
    if tx.transaction_type is TransactionType.CREDIT_PAYMENT:
        return -tx.amount
    return ZERO


def settlement_account(tx: Transaction, cash_account_id: str = DEFAULT_CASH_ACCOUNT_ID) -> Optional[str]:
    """Account named by ``tx``; cash payments with none land in the drawer."""

    if tx.account_id:
        return tx.account_id
    if tx.payment_method is PaymentMethod.CASH:
        return cash_account_id
    return None


def customer_impacts(tx: Optional[Transaction]) -> Dict[str, Decimal]:
    if not is_effective(tx) or not tx.customer_id:
        return {}
    amount = credit_impact(tx)
    return {tx.customer_id: amount} if amount != ZERO else {}


def vendor_impacts(tx: Optional[Transaction]) -> Dict[str, Decimal]:
    if not is_effective(tx) or not tx.vendor_id:
        return {}
    # A customer payment that happens to carry a vendor id settles the customer.
    if tx.transaction_type is TransactionType.CREDIT_PAYMENT and tx.customer_id:
        return {}
    amount = vendor_impact(tx)
    return {tx.vendor_id: amount} if amount != ZERO else {}


def account_impacts(tx: Optional[Transaction], *, cash_account_id: str = DEFAULT_CASH_ACCOUNT_ID) -> Dict[str, Decimal]:
    """Signed balance changes per account id.

    Sales add their realized inflow. Expenses, non-credit purchases, and
    vendor settlements are outflows; customer payments are inflows. A
    transfer moves its amount from ``account_id`` to
    ``destination_account_id``.

    Args:
        tx (Transaction | None): Transaction state to evaluate.
        cash_account_id (str): Drawer account used when a cash transaction
            names no account.

    Returns:
        dict[str, Decimal]: Non-zero changes keyed by account id.
    """

    if not is_effective(tx):
        return {}

    changes: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    account = settlement_account(tx, cash_account_id)
    tx_type = tx.transaction_type

    if tx_type is TransactionType.TRANSFER:
        if tx.account_id:
            changes[tx.account_id] -= tx.amount
        if tx.destination_account_id:
            changes[tx.destination_account_id] += tx.amount
    elif account is None:
        return {}
    elif tx_type is TransactionType.EXPENSE:
        changes[account] -= tx.amount
    elif tx_type is TransactionType.PURCHASE:
        if tx.payment_method is not PaymentMethod.CREDIT:
            changes[account] -= tx.amount
    elif tx_type is TransactionType.CREDIT_PAYMENT:
        if tx.customer_id:
            changes[account] += tx.amount
        elif tx.vendor_id:
            changes[account] -= tx.amount
    else:
        changes[account] += realized_inflow(tx)

    return {key: value for key, value in changes.items() if value != ZERO}


def parent_link_impacts(tx: Optional[Transaction]) -> Dict[str, Decimal]:
    """Amount a customer payment applies to the invoice it settles."""

    if not is_effective(tx):
        return {}
    if tx.transaction_type is not TransactionType.CREDIT_PAYMENT or not tx.customer_id or not tx.parent_tx_id:
        return {}
    return {tx.parent_tx_id: tx.amount} if tx.amount != ZERO else {}


def stock_changes(
    tx: Optional[Transaction],
    snapshot: LedgerSnapshot,
    *,
    master: str = DEFAULT_MASTER_BRANCH,
    aliases: Sequence[str] = DEFAULT_BRANCH_ALIASES,
) -> Dict[StockKey, Decimal]:
    """Signed stock movement per ``(product_id, stock_branch)`` for a sale.

    Deductions are negative. Each line uses its own product's kind; products
    the snapshot does not know are treated as STANDARD so the caller can
    report the miss.
    """

    if not is_effective(tx) or tx.transaction_type is not TransactionType.SALE:
        return {}

    branch = resolve_stock_branch(tx.branch_id, master=master, aliases=aliases)
    changes: Dict[StockKey, Decimal] = defaultdict(lambda: ZERO)
    for item in tx.items:
        product = snapshot.product(item.product_id)
        kind = kind_of(snapshot, product) if product is not None else ProductKind.STANDARD
        changes[(item.product_id, branch)] -= deduction_amount(item, kind)
    return dict(changes)


def net_change(old: Mapping[K, Decimal], new: Mapping[K, Decimal]) -> Dict[K, Decimal]:
    """Return ``new - old`` per key, dropping keys whose change is zero."""

    result: Dict[K, Decimal] = {}
    for key in list(old) + [key for key in new if key not in old]:
        delta = new.get(key, ZERO) - old.get(key, ZERO)
        if delta != ZERO:
            result[key] = delta
    return result
