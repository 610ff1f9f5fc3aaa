"""Apply and reconciliation engine for the retail ledger.

Every operation in this module is a transition between two states of one
transaction: creating is ``None -> new``, amending is ``old -> new``, and
deleting is ``old -> None``. :func:`plan_transition` turns such a pair into
one :class:`~retail_ledger.unit_of_work.PlannedWrite` per affected document by
netting the pure impacts of both states, and the unit of work executes them
against the gateway. The snapshot, refreshed by gateway broadcasts, is the
only read source.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Container, Dict, List, Optional, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, impacts, log
from .constants import (
    EXPECTED_SCHEMA_VERSION,
    Collection,
    DaySessionStatus,
    PaymentMethod,
    PurchaseOrderStatus,
    TransactionStatus,
    TransactionType,
)
from .models import (
    ZERO,
    BankAccount,
    Customer,
    DaySession,
    Product,
    Transaction,
    require_nonnegative_money,
    require_positive_quantity,
)
from .snapshot import LedgerSnapshot
from .stock_ledger import (
    apply_stock_delta,
    classify,
    compute_cost_basis,
    kind_of,
    resolve_stock_branch,
)
from .unit_of_work import PlannedWrite, commit

SALE_PREFIX = "TX-"
CUSTOMER_PAYMENT_PREFIX = "CP-"
VENDOR_PAYMENT_PREFIX = "PV-"
PURCHASE_PREFIX = "PU-"
EXPENSE_PREFIX = "EX-"
TRANSFER_PREFIX = "TR-"
CLOSURE_PREFIX = "TR-CLOSE-"


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


@dataclass(frozen=True)
class RuntimeContext:
    """Settings, workbook, gateway, and the snapshot the gateway keeps fresh."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    gateway: data_manager.PersistenceGateway
    snapshot: LedgerSnapshot


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    return candidate if candidate is not None else datetime.now(UTC)


def create_runtime_context(settings: data_manager.ConfigSettings, workbook: Workbook) -> RuntimeContext:
    """Wire a gateway over ``workbook`` and attach a fresh snapshot to it."""

    gateway = data_manager.PersistenceGateway(workbook, default_branch=settings.default_branch)
    snapshot = LedgerSnapshot()
    snapshot.attach(gateway)
    return RuntimeContext(settings=settings, workbook=workbook, gateway=gateway, snapshot=snapshot)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the engine.

    Resolves ``config.ini``, parses settings, opens the workbook, and
    subscribes a :class:`LedgerSnapshot` to every collection so the first
    operation already sees current data.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the gateway performs its upward search from the
            current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for engine operations.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return create_runtime_context(settings, workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to disk."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    The old snapshot is detached from its gateway and a new context with a
    freshly loaded snapshot is returned.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    context.snapshot.detach()
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return create_runtime_context(context.settings, workbook)


def generate_transaction_id(
    *,
    prefix: str = SALE_PREFIX,
    when: Optional[datetime] = None,
    taken: Container[str] = (),
) -> str:
    """Generate a sortable transaction identifier using UTC timestamps.

    Args:
        prefix (str): Designator prepended to the identifier, for example
            ``"CP-"`` for customer payments.
        when (datetime | None): Timestamp used for deterministically producing
            the identifier. When ``None`` the current UTC time is used.
        taken (Container[str]): Identifiers already in use. On a clash the
            timestamp advances one microsecond at a time until the id is free.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``.
    """
    when = when or _resolve_timestamp(None)
    candidate = f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"
    while candidate in taken:
        when += timedelta(microseconds=1)
        candidate = f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"
    return candidate


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def _document_write(
    collection: Collection,
    key: str,
    record: Any,
    previous: Any,
    description: str,
) -> PlannedWrite:
    return PlannedWrite(
        collection=collection,
        key=key,
        document=data_manager.serialize_document(collection, record) if record is not None else None,
        previous=data_manager.serialize_document(collection, previous) if previous is not None else None,
        description=description,
    )


def _plan_stock(
    snapshot: LedgerSnapshot,
    old: Optional[Transaction],
    new: Optional[Transaction],
    settings: data_manager.ConfigSettings,
) -> List[PlannedWrite]:
    options = {"master": settings.master_branch, "aliases": settings.branch_aliases}
    delta = impacts.net_change(
        impacts.stock_changes(old, snapshot, **options),
        impacts.stock_changes(new, snapshot, **options),
    )
    moves: Dict[str, List[Tuple[str, Decimal]]] = defaultdict(list)
    for (product_id, branch), amount in delta.items():
        moves[product_id].append((branch, amount))

    writes: List[PlannedWrite] = []
    for product_id, product_moves in moves.items():
        product = snapshot.product(product_id)
        if product is None:
            log.warning("Skipping stock correction for unknown product '%s'", product_id)
            continue
        kind = kind_of(snapshot, product)
        updated = product
        for branch, amount in product_moves:
            updated = apply_stock_delta(updated, branch, amount, kind)
        summary = ", ".join(f"{branch} {amount:+}" for branch, amount in product_moves)
        writes.append(_document_write(Collection.PRODUCTS, product_id, updated, product, f"stock {summary}"))
    return writes


def _plan_balances(
    snapshot: LedgerSnapshot,
    collection: Collection,
    delta: Dict[str, Decimal],
    field_name: str,
    label: str,
) -> List[PlannedWrite]:
    writes: List[PlannedWrite] = []
    for key, amount in delta.items():
        record = snapshot.get(collection, key)
        if record is None:
            log.warning("Skipping %s correction of %s for unknown id '%s'", label, amount, key)
            continue
        updated = replace(record, **{field_name: getattr(record, field_name) + amount})
        writes.append(_document_write(collection, key, updated, record, f"{label} {amount:+}"))
    return writes


def _plan_parent_links(snapshot: LedgerSnapshot, delta: Dict[str, Decimal]) -> List[PlannedWrite]:
    writes: List[PlannedWrite] = []
    for parent_id, amount in delta.items():
        parent = snapshot.transaction(parent_id)
        if parent is None:
            log.warning("Skipping invoice settlement of %s for unknown transaction '%s'", amount, parent_id)
            continue
        updated = replace(
            parent,
            paid_amount=max(ZERO, (parent.paid_amount or ZERO) + amount),
            balance_due=max(ZERO, parent.balance_due - amount),
        )
        writes.append(_document_write(Collection.TRANSACTIONS, parent_id, updated, parent, f"settled {amount:+}"))
    return writes


def plan_transition(
    snapshot: LedgerSnapshot,
    old: Optional[Transaction],
    new: Optional[Transaction],
    *,
    settings: data_manager.ConfigSettings,
) -> List[PlannedWrite]:
    """Plan every write needed to move a transaction from ``old`` to ``new``.

    For each aggregate the change is ``impact(new) - impact(old)`` added to
    the value currently held in ``snapshot``. DRAFT states have no impact, so
    a DRAFT on either side contributes nothing. Impacts are keyed by id, which
    means moving a transaction to another customer, vendor, or account
    reverses the old holder and charges the new one. Unknown aggregates are
    skipped with a warning.

    The transaction document itself is written last: upserted when ``new``
    is given, otherwise deleted.

    Args:
        snapshot (LedgerSnapshot): Current read model.
        old (Transaction | None): Stored state, or ``None`` when creating.
        new (Transaction | None): Target state, or ``None`` when deleting.
        settings (ConfigSettings): Supplies branch aliases and the cash
            account id.

    Returns:
        list[PlannedWrite]: Writes in execution order.
    """

    cash_id = settings.cash_account_id
    writes = _plan_stock(snapshot, old, new, settings)
    writes += _plan_balances(
        snapshot,
        Collection.CUSTOMERS,
        impacts.net_change(impacts.customer_impacts(old), impacts.customer_impacts(new)),
        "total_credit",
        "customer credit",
    )
    writes += _plan_balances(
        snapshot,
        Collection.VENDORS,
        impacts.net_change(impacts.vendor_impacts(old), impacts.vendor_impacts(new)),
        "total_balance",
        "vendor balance",
    )
    writes += _plan_balances(
        snapshot,
        Collection.ACCOUNTS,
        impacts.net_change(
            impacts.account_impacts(old, cash_account_id=cash_id),
            impacts.account_impacts(new, cash_account_id=cash_id),
        ),
        "balance",
        "account balance",
    )
    writes += _plan_parent_links(
        snapshot,
        impacts.net_change(impacts.parent_link_impacts(old), impacts.parent_link_impacts(new)),
    )

    if new is not None:
        writes.append(_document_write(Collection.TRANSACTIONS, new.transaction_id, new, old, new.status.value.lower()))
    elif old is not None:
        writes.append(_document_write(Collection.TRANSACTIONS, old.transaction_id, None, old, "deleted"))

    log.debug("Planned %d write(s) for transition %s -> %s", len(writes),
              old.transaction_id if old else None, new.transaction_id if new else None)
    return writes


# ---------------------------------------------------------------------------
# Apply operations
# ---------------------------------------------------------------------------


def _require_type(tx: Transaction, *allowed: TransactionType) -> None:
    if tx.transaction_type not in allowed:
        names = ", ".join(item.value for item in allowed)
        log.error("Transaction type %s rejected; expected %s", tx.transaction_type.value, names)
        raise BusinessRuleViolation(
            f"Expected a {names} transaction, got {tx.transaction_type.value}"
        )


_REFERENCE_FIELDS = (
    "transaction_id",
    "account_id",
    "destination_account_id",
    "customer_id",
    "vendor_id",
    "parent_tx_id",
)


def _clean_references(tx: Transaction) -> Transaction:
    """Key every id ``tx`` refers to the way the gateway stores documents."""

    cleaned = {
        name: data_manager.sanitize_id(getattr(tx, name))
        for name in _REFERENCE_FIELDS
        if getattr(tx, name)
    }
    items = tuple(
        replace(item, product_id=data_manager.sanitize_id(item.product_id)) if item.product_id else item
        for item in tx.items
    )
    return replace(tx, items=items, **cleaned)


def _prepare(context: RuntimeContext, tx: Transaction, *, prefix: str, when: Optional[datetime]) -> Transaction:
    """Fill in id, date, branch, and the drawer account for cash payments."""

    tx = _clean_references(tx)
    timestamp = _resolve_timestamp(when)
    transaction_id = tx.transaction_id or generate_transaction_id(
        prefix=prefix,
        when=timestamp,
        taken=context.snapshot.ids(Collection.TRANSACTIONS),
    )
    account_id = tx.account_id
    if not account_id and tx.payment_method is PaymentMethod.CASH and tx.transaction_type is not TransactionType.TRANSFER:
        account_id = context.settings.cash_account_id
    return replace(
        tx,
        transaction_id=data_manager.sanitize_id(transaction_id),
        date=tx.date or timestamp.isoformat(),
        branch_id=data_manager.normalize_branch(tx.branch_id, context.settings.default_branch),
        account_id=account_id,
    )


def _apply(context: RuntimeContext, old: Optional[Transaction], new: Optional[Transaction]) -> None:
    writes = plan_transition(context.snapshot, old, new, settings=context.settings)
    commit(context.gateway, writes)


def _validate_items(tx: Transaction) -> None:
    for item in tx.items:
        require_positive_quantity(item.quantity)
        require_nonnegative_money(item.price)


def _cost_basis(context: RuntimeContext, tx: Transaction) -> Decimal:
    if tx.cost_basis != ZERO:
        return tx.cost_basis
    return compute_cost_basis(tx.items, context.snapshot)


def complete_sale(context: RuntimeContext, tx: Transaction, *, when: Optional[datetime] = None) -> Optional[Transaction]:
    """Finalize a sale and propagate its side effects.

    Each line item deducts stock from the resolved stock branch (units for
    STANDARD goods, ``price * quantity * 0.96`` for RELOAD goods); lines for
    the same product net into one product write. The customer is charged the
    full amount on CREDIT, otherwise any ``balance_due``. The realized inflow
    is added to the sale's account. A stored DRAFT with the same id is
    promoted in place.

    Args:
        context (RuntimeContext): Runtime context providing the gateway and
            snapshot.
        tx (Transaction): Sale to complete. An empty ``transaction_id``
            allocates a ``TX-`` id.
        when (datetime | None): Timestamp used for the id and default date.

    Returns:
        Transaction | None: The stored COMPLETED sale, or ``None`` when the
            sale was already completed.

    Raises:
        BusinessRuleViolation: If ``tx`` is not a SALE.
        ValueError: When quantities or amounts fail validation.
        PartialWriteError: If a gateway write fails midway.
    """
    _require_type(tx, TransactionType.SALE)
    tx = _clean_references(tx)
    require_nonnegative_money(tx.amount)
    _validate_items(tx)

    existing = context.snapshot.transaction(tx.transaction_id) if tx.transaction_id else None
    if existing is not None and not existing.is_draft:
        log.warning("Sale '%s' is already completed; ignoring", tx.transaction_id)
        return None

    prepared = _prepare(context, tx, prefix=SALE_PREFIX, when=when)
    completed = replace(prepared, status=TransactionStatus.COMPLETED, cost_basis=_cost_basis(context, prepared))
    _apply(context, existing, completed)
    log.info(
        "Completed SALE '%s' (amount=%s, method=%s, items=%d)",
        completed.transaction_id,
        completed.amount,
        completed.payment_method.value,
        len(completed.items),
    )
    return completed


def save_draft_sale(context: RuntimeContext, tx: Transaction, *, when: Optional[datetime] = None) -> Optional[Transaction]:
    """Store a sale as DRAFT without touching any other aggregate.

    Returns ``None`` for a sale without items or when the stored transaction
    with the same id is already completed.
    """
    _require_type(tx, TransactionType.SALE)
    tx = _clean_references(tx)
    if not tx.items:
        log.warning("Draft sale has no items; nothing saved")
        return None
    _validate_items(tx)

    existing = context.snapshot.transaction(tx.transaction_id) if tx.transaction_id else None
    if existing is not None and not existing.is_draft:
        log.warning("Transaction '%s' is completed and cannot return to draft", tx.transaction_id)
        return None

    prepared = _prepare(context, tx, prefix=SALE_PREFIX, when=when)
    draft = replace(prepared, status=TransactionStatus.DRAFT, cost_basis=_cost_basis(context, prepared))
    _apply(context, existing, draft)
    log.info("Saved draft sale '%s' (amount=%s)", draft.transaction_id, draft.amount)
    return draft


def receive_purchase_order(
    context: RuntimeContext,
    po_id: str,
    *,
    branch: Optional[str] = None,
    when: Optional[datetime] = None,
) -> Optional[Transaction]:
    """Turn a PENDING purchase order into stock and a PURCHASE transaction.

    Every line adds its quantity at the resolved stock branch and sets the
    product cost to the line cost. The emitted PURCHASE mirrors the order's
    total, payment method, vendor, and account: on CREDIT the vendor balance
    grows, otherwise only the account pays. The order is marked RECEIVED first so
    it cannot be received twice.

    Args:
        context (RuntimeContext): Runtime context providing the gateway and
            snapshot.
        po_id (str): Purchase order to receive.
        branch (str | None): Receiving branch. Defaults to the configured
            default branch.
        when (datetime | None): Timestamp for ``received_date`` and the
            transaction id.

    Returns:
        Transaction | None: The PURCHASE transaction, or ``None`` when the
            order is unknown or not PENDING.
    """
    po_id = data_manager.sanitize_id(po_id)
    order = context.snapshot.purchase_order(po_id)
    if order is None:
        log.warning("Purchase order '%s' not found; nothing received", po_id)
        return None
    if order.status is not PurchaseOrderStatus.PENDING:
        log.warning("Purchase order '%s' is %s, not PENDING; ignoring", po_id, order.status.value)
        return None

    settings = context.settings
    timestamp = _resolve_timestamp(when)
    receiving_branch = data_manager.normalize_branch(branch, settings.default_branch)
    stock_branch = resolve_stock_branch(
        receiving_branch, master=settings.master_branch, aliases=settings.branch_aliases
    )

    received = replace(order, status=PurchaseOrderStatus.RECEIVED, received_date=timestamp.isoformat())
    writes = [_document_write(Collection.PURCHASE_ORDERS, order.po_id, received, order, "received")]

    originals: Dict[str, Product] = {}
    updates: Dict[str, Product] = {}
    for line in order.items:
        product = updates.get(line.product_id) or context.snapshot.product(line.product_id)
        if product is None:
            log.warning("Purchase order '%s' references unknown product '%s'; line skipped", po_id, line.product_id)
            continue
        originals.setdefault(line.product_id, product)
        restocked = apply_stock_delta(product, stock_branch, line.quantity, kind_of(context.snapshot, product))
        updates[line.product_id] = replace(restocked, cost=line.cost)
    for product_id, updated in updates.items():
        writes.append(
            _document_write(Collection.PRODUCTS, product_id, updated, originals[product_id], f"restock at {stock_branch}")
        )

    purchase = Transaction(
        transaction_id=generate_transaction_id(
            prefix=PURCHASE_PREFIX, when=timestamp, taken=context.snapshot.ids(Collection.TRANSACTIONS)
        ),
        transaction_type=TransactionType.PURCHASE,
        amount=order.total_amount,
        payment_method=order.payment_method,
        status=TransactionStatus.COMPLETED,
        account_id=order.account_id,
        vendor_id=order.vendor_id,
        branch_id=receiving_branch,
        date=timestamp.isoformat(),
        description=f"Stock Received against PO: {order.po_id}",
    )
    transition = plan_transition(context.snapshot, None, purchase, settings=settings)
    if order.payment_method is not PaymentMethod.CREDIT:
        # Orders paid on receipt never become a payable.
        transition = [write for write in transition if write.collection is not Collection.VENDORS]
    writes += transition
    commit(context.gateway, writes)
    log.info(
        "Received purchase order '%s' into %s as '%s' (total=%s)",
        po_id,
        stock_branch,
        purchase.transaction_id,
        purchase.amount,
    )
    return purchase


def record_customer_payment(context: RuntimeContext, tx: Transaction, *, when: Optional[datetime] = None) -> Transaction:
    """Record money received from a customer against their credit.

    The customer's ``total_credit`` falls by ``amount`` and the account rises
    by it; cash payments without an account go to the cash drawer. When
    ``parent_tx_id`` names an invoice, its ``paid_amount`` rises and its
    ``balance_due`` falls (not below zero).

    Raises:
        BusinessRuleViolation: If ``tx`` is not a CREDIT_PAYMENT or names no
            customer.
        ValueError: If ``amount`` is negative.
    """
    _require_type(tx, TransactionType.CREDIT_PAYMENT)
    if not tx.customer_id:
        raise BusinessRuleViolation("Customer payment requires a customer")
    require_nonnegative_money(tx.amount)

    payment = _prepare(context, tx, prefix=CUSTOMER_PAYMENT_PREFIX, when=when)
    payment = replace(payment, status=TransactionStatus.COMPLETED)
    _apply(context, None, payment)
    log.info(
        "Recorded customer payment '%s' from '%s' (amount=%s)",
        payment.transaction_id,
        payment.customer_id,
        payment.amount,
    )
    return payment


def record_vendor_payment(context: RuntimeContext, tx: Transaction, *, when: Optional[datetime] = None) -> Transaction:
    """Record a vendor settlement or a direct vendor charge.

    A CREDIT_PAYMENT lowers both the vendor balance and the paying account.
    A PURCHASE raises the vendor balance by its amount; when it is not on
    CREDIT it also debits the account.

    Raises:
        BusinessRuleViolation: If ``tx`` is neither CREDIT_PAYMENT nor
            PURCHASE, or names no vendor.
        ValueError: If ``amount`` is negative.
    """
    _require_type(tx, TransactionType.CREDIT_PAYMENT, TransactionType.PURCHASE)
    if not tx.vendor_id:
        raise BusinessRuleViolation("Vendor payment requires a vendor")
    if tx.customer_id:
        raise BusinessRuleViolation("Vendor payment cannot name a customer")
    require_nonnegative_money(tx.amount)

    payment = _prepare(context, tx, prefix=VENDOR_PAYMENT_PREFIX, when=when)
    payment = replace(payment, status=TransactionStatus.COMPLETED)
    _apply(context, None, payment)
    log.info(
        "Recorded vendor %s '%s' for '%s' (amount=%s)",
        payment.transaction_type.value,
        payment.transaction_id,
        payment.vendor_id,
        payment.amount,
    )
    return payment


def record_expense(context: RuntimeContext, tx: Transaction, *, when: Optional[datetime] = None) -> Transaction:
    """Debit the named account by the expense amount."""
    _require_type(tx, TransactionType.EXPENSE)
    require_nonnegative_money(tx.amount)

    expense = _prepare(context, tx, prefix=EXPENSE_PREFIX, when=when)
    expense = replace(expense, status=TransactionStatus.COMPLETED)
    _apply(context, None, expense)
    log.info("Recorded expense '%s' (amount=%s, account=%s)", expense.transaction_id, expense.amount, expense.account_id)
    return expense


def record_transfer(context: RuntimeContext, tx: Transaction, *, when: Optional[datetime] = None) -> Transaction:
    """Move ``amount`` from ``account_id`` to ``destination_account_id``.

    Raises:
        BusinessRuleViolation: If either account is missing or both are the
            same.
    """
    _require_type(tx, TransactionType.TRANSFER)
    tx = _clean_references(tx)
    if not tx.account_id or not tx.destination_account_id:
        raise BusinessRuleViolation("Transfer requires a source and a destination account")
    if tx.account_id == tx.destination_account_id:
        raise BusinessRuleViolation("Transfer source and destination must differ")
    require_nonnegative_money(tx.amount)

    transfer = _prepare(context, tx, prefix=TRANSFER_PREFIX, when=when)
    transfer = replace(transfer, status=TransactionStatus.COMPLETED)
    _apply(context, None, transfer)
    log.info(
        "Recorded transfer '%s' of %s from '%s' to '%s'",
        transfer.transaction_id,
        transfer.amount,
        transfer.account_id,
        transfer.destination_account_id,
    )
    return transfer


def close_account(context: RuntimeContext, account_id: str, *, when: Optional[datetime] = None) -> Optional[BankAccount]:
    """Merge an account into the cash drawer and delete it.

    A non-zero balance first produces an audit TRANSFER of its absolute
    value: from the account to cash when positive, from cash to the account
    when negative. Either way the account ends at zero before it is deleted.

    Args:
        context (RuntimeContext): Runtime context providing the gateway and
            snapshot.
        account_id (str): Account to close.
        when (datetime | None): Timestamp for the audit transfer.

    Returns:
        BankAccount | None: The account as it was before closing, or ``None``
            when it does not exist.

    Raises:
        BusinessRuleViolation: If ``account_id`` is the cash drawer.
    """
    account_id = data_manager.sanitize_id(account_id)
    cash_id = context.settings.cash_account_id
    if account_id == cash_id:
        log.error("Refusing to close the cash drawer account '%s'", cash_id)
        raise BusinessRuleViolation("The cash drawer account cannot be closed")

    account = context.snapshot.account(account_id)
    if account is None:
        log.warning("Account '%s' not found; nothing closed", account_id)
        return None

    writes: List[PlannedWrite] = []
    remaining = account
    if account.balance != ZERO:
        timestamp = _resolve_timestamp(when)
        positive = account.balance > ZERO
        transfer = Transaction(
            transaction_id=generate_transaction_id(
                prefix=CLOSURE_PREFIX, when=timestamp, taken=context.snapshot.ids(Collection.TRANSACTIONS)
            ),
            transaction_type=TransactionType.TRANSFER,
            amount=abs(account.balance),
            payment_method=PaymentMethod.CASH,
            status=TransactionStatus.COMPLETED,
            account_id=account_id if positive else cash_id,
            destination_account_id=cash_id if positive else account_id,
            branch_id=context.settings.default_branch,
            date=timestamp.isoformat(),
            description=f"ACCOUNT CLOSURE: {account.name} MERGED TO CASH",
        )
        writes += plan_transition(context.snapshot, None, transfer, settings=context.settings)
        remaining = replace(account, balance=ZERO)
        log.info("Closing account '%s' moves %s via '%s'", account_id, transfer.amount, transfer.transaction_id)

    writes.append(_document_write(Collection.ACCOUNTS, account_id, None, remaining, "closed"))
    commit(context.gateway, writes)
    log.info("Closed account '%s'", account_id)
    return account


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def _recost(context: RuntimeContext, stored: Transaction, updated: Transaction) -> Transaction:
    if updated.transaction_type is TransactionType.SALE and updated.items != stored.items:
        return replace(updated, cost_basis=compute_cost_basis(updated.items, context.snapshot))
    return updated


def update_transaction(context: RuntimeContext, updated: Transaction) -> Optional[Transaction]:
    """Amend a stored transaction and correct every aggregate by the delta.

    ``DRAFT -> DRAFT`` overwrites the document. ``DRAFT -> COMPLETED`` goes
    through :func:`complete_sale`. ``COMPLETED -> DRAFT`` is refused as a
    no-op. ``COMPLETED -> COMPLETED`` applies ``impact(new) - impact(old)``
    to stock, customers, vendors, accounts, and any settled invoice.

    Args:
        context (RuntimeContext): Runtime context providing the gateway and
            snapshot.
        updated (Transaction): New state; its id selects the stored one.

    Returns:
        Transaction | None: The stored new state, or ``None`` for a no-op.
    """
    updated = _clean_references(updated)
    stored = context.snapshot.transaction(updated.transaction_id)
    if stored is None:
        log.warning("Transaction '%s' not found; nothing updated", updated.transaction_id)
        return None

    if stored.is_draft and not updated.is_draft:
        return complete_sale(context, _recost(context, stored, updated))
    if not stored.is_draft and updated.is_draft:
        log.warning("Transaction '%s' is completed and cannot return to draft", updated.transaction_id)
        return None

    if updated.transaction_type is TransactionType.SALE:
        _validate_items(updated)
    require_nonnegative_money(updated.amount)
    amended = replace(
        updated,
        date=updated.date or stored.date,
        branch_id=data_manager.normalize_branch(updated.branch_id, context.settings.default_branch),
    )
    amended = _recost(context, stored, amended)
    _apply(context, stored, amended)
    log.info("Updated transaction '%s' (%s)", amended.transaction_id, amended.status.value)
    return amended


def delete_transaction(context: RuntimeContext, transaction_id: str) -> Optional[Transaction]:
    """Delete a transaction, fully reversing its side effects when COMPLETED.

    Returns:
        Transaction | None: The deleted transaction, or ``None`` when it does
            not exist.
    """
    transaction_id = data_manager.sanitize_id(transaction_id)
    stored = context.snapshot.transaction(transaction_id)
    if stored is None:
        log.warning("Transaction '%s' not found; nothing deleted", transaction_id)
        return None

    _apply(context, stored, None)
    log.info("Deleted transaction '%s' (%s)", transaction_id, stored.status.value)
    return stored


def assign_category(context: RuntimeContext, product_id: str, category_id: str) -> Optional[Product]:
    """Move a product to ``category_id`` and store its derived kind."""
    product_id = data_manager.sanitize_id(product_id)
    category_id = data_manager.sanitize_id(category_id)
    product = context.snapshot.product(product_id)
    if product is None:
        log.warning("Product '%s' not found; category not assigned", product_id)
        return None
    category = context.snapshot.category(category_id)
    if category is None:
        log.warning("Category '%s' not found; kind derived from its id", category_id)

    updated = replace(product, category_id=category_id, kind=classify(category_id, category))
    commit(
        context.gateway,
        [_document_write(Collection.PRODUCTS, product_id, updated, product, f"category {category_id}")],
    )
    log.info("Assigned product '%s' to category '%s' (%s)", product_id, category_id, updated.kind.value)
    return updated


# ---------------------------------------------------------------------------
# Reports and day sessions
# ---------------------------------------------------------------------------


def calculate_inventory(snapshot: LedgerSnapshot) -> Dict[str, Decimal]:
    """Return total stock per product id."""
    inventory = {product.product_id: product.stock for product in snapshot.all(Collection.PRODUCTS)}
    log.debug("Calculated inventory balances for %d products", len(inventory))
    return inventory


def low_stock_products(snapshot: LedgerSnapshot) -> List[Product]:
    """Return products at or below their threshold, lowest stock first."""
    flagged = [
        product
        for product in snapshot.all(Collection.PRODUCTS)
        if product.stock <= product.low_stock_threshold
    ]
    return sorted(flagged, key=lambda product: (product.stock, product.product_id))


def calculate_outstanding_debts(snapshot: LedgerSnapshot) -> Dict[str, Decimal]:
    """Return customer id to amount owed, for customers who owe anything."""
    return {
        customer.customer_id: customer.total_credit
        for customer in snapshot.all(Collection.CUSTOMERS)
        if customer.total_credit > ZERO
    }


def customers_over_limit(snapshot: LedgerSnapshot) -> List[Customer]:
    """Return customers whose credit is strictly above their credit limit."""
    return [
        customer
        for customer in snapshot.all(Collection.CUSTOMERS)
        if customer.total_credit > customer.credit_limit
    ]


def calculate_vendor_payables(snapshot: LedgerSnapshot) -> Dict[str, Decimal]:
    """Return vendor id to amount the business owes, for positive balances."""
    return {
        vendor.vendor_id: vendor.total_balance
        for vendor in snapshot.all(Collection.VENDORS)
        if vendor.total_balance > ZERO
    }


def _session_key(context: RuntimeContext, branch: Optional[str], date: Optional[str]) -> Tuple[str, str, str]:
    session_branch = data_manager.normalize_branch(branch, context.settings.default_branch)
    session_date = date or datetime.now(UTC).date().isoformat()
    return data_manager.sanitize_id(f"{session_date}{session_branch}"), session_date, session_branch


def expected_closing(
    snapshot: LedgerSnapshot,
    session: DaySession,
    *,
    cash_account_id: str,
    default_branch: str,
) -> Decimal:
    """Opening balance plus the drawer impact of that day's completed transactions."""
    total = session.opening_balance
    branch = session.branch_id.upper()
    for tx in snapshot.all(Collection.TRANSACTIONS):
        if not (tx.date or "").startswith(session.date):
            continue
        if data_manager.normalize_branch(tx.branch_id, default_branch).upper() != branch:
            continue
        total += impacts.account_impacts(tx, cash_account_id=cash_account_id).get(cash_account_id, ZERO)
    return total


def open_day(
    context: RuntimeContext,
    opening_balance: Decimal,
    *,
    branch: Optional[str] = None,
    date: Optional[str] = None,
) -> Optional[DaySession]:
    """Start the cash session for one branch and date.

    Returns ``None`` when a session for that branch and date already exists.
    """
    require_nonnegative_money(opening_balance)
    session_id, session_date, session_branch = _session_key(context, branch, date)
    if context.snapshot.day_session(session_id) is not None:
        log.warning("Day session '%s' already exists", session_id)
        return None

    session = DaySession(
        session_id=session_id,
        date=session_date,
        branch_id=session_branch,
        opening_balance=opening_balance,
    )
    commit(context.gateway, [_document_write(Collection.DAY_SESSIONS, session_id, session, None, "opened")])
    log.info("Opened day session '%s' with %s", session_id, opening_balance)
    return session


def close_day(
    context: RuntimeContext,
    actual_closing: Decimal,
    *,
    branch: Optional[str] = None,
    date: Optional[str] = None,
) -> Optional[DaySession]:
    """Close an open day session, stamping expected and counted cash.

    Returns ``None`` when the session is missing or already closed.
    """
    require_nonnegative_money(actual_closing)
    session_id, _, _ = _session_key(context, branch, date)
    session = context.snapshot.day_session(session_id)
    if session is None:
        log.warning("Day session '%s' not found; nothing closed", session_id)
        return None
    if session.status is DaySessionStatus.CLOSED:
        log.warning("Day session '%s' is already closed", session_id)
        return None

    expected = expected_closing(
        context.snapshot,
        session,
        cash_account_id=context.settings.cash_account_id,
        default_branch=context.settings.default_branch,
    )
    closed = replace(
        session,
        status=DaySessionStatus.CLOSED,
        expected_closing=expected,
        actual_closing=actual_closing,
    )
    commit(context.gateway, [_document_write(Collection.DAY_SESSIONS, session_id, closed, session, "closed")])
    if expected != actual_closing:
        log.warning("Day session '%s' closed off by %s", session_id, actual_closing - expected)
    log.info("Closed day session '%s' (expected=%s, actual=%s)", session_id, expected, actual_closing)
    return closed
