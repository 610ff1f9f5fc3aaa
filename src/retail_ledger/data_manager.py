"""Persistence gateway for the retail ledger.

This module provides the low-level helpers that read from and write to the
master workbook. Ledger rules belong elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel file.
3. Document operations: each collection lives on its own worksheet whose
   header row names the document fields. Documents are merged, appended, or
   removed one row at a time; nested values are stored as JSON text.
4. :class:`PersistenceGateway`, the document-store facade the engine talks
   to. It sanitizes identifiers, stamps ``UpdatedAt``, normalizes branches,
   and re-broadcasts a collection to its subscribers after every write.
"""


from __future__ import annotations

import configparser
import json
import random
import re
import string
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_BRANCH,
    DEFAULT_BRANCH_ALIASES,
    DEFAULT_CASH_ACCOUNT_ID,
    DEFAULT_LOW_STOCK_THRESHOLD,
    DEFAULT_MASTER_BRANCH,
    INVALID_BRANCH_VALUES,
    JSON_COLUMNS,
    Collection,
    DaySessionStatus,
    PaymentMethod,
    ProductKind,
    PurchaseOrderStatus,
    TransactionStatus,
    TransactionType,
)
from .models import (
    BankAccount,
    Category,
    Customer,
    DaySession,
    LineItem,
    Product,
    PurchaseOrder,
    PurchaseOrderLine,
    Transaction,
    Vendor,
    to_decimal,
)


CONFIG_FILE_NAME = "config.ini"
ID_COLUMN = "ID"
UPDATED_AT_COLUMN = "UpdatedAt"
BRANCH_COLUMN = "BranchID"

_UNSAFE_ID_CHARS = re.compile(r"[/.\s#$\[\]]")

Document = Dict[str, Any]
ChangeListener = Callable[[List[Document]], None]
E = TypeVar("E")


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    master_branch: str = DEFAULT_MASTER_BRANCH
    branch_aliases: Tuple[str, ...] = DEFAULT_BRANCH_ALIASES
    default_branch: str = DEFAULT_BRANCH
    cash_account_id: str = DEFAULT_CASH_ACCOUNT_ID


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the gateway behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data. Validation happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` entries are mandatory. ``[Branches]`` and ``[Defaults]``
    are optional and fall back to the values in :mod:`retail_ledger.constants`.
    ``Aliases`` is a comma-separated list of branch names that share the
    master branch's inventory. Relative ``DataFile`` paths are anchored to
    ``base_path`` (or the working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor a relative
            ``DataFile`` entry.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required ``[System]`` options is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    master_branch = parser.get("Branches", "MasterBranch", fallback=DEFAULT_MASTER_BRANCH).strip()
    aliases_raw = parser.get("Branches", "Aliases", fallback=None)
    if aliases_raw is None:
        branch_aliases = DEFAULT_BRANCH_ALIASES
    else:
        branch_aliases = tuple(alias.strip() for alias in aliases_raw.split(",") if alias.strip())
    default_branch = parser.get("Branches", "DefaultBranch", fallback=DEFAULT_BRANCH).strip()
    cash_account_id = parser.get("Defaults", "CashAccountID", fallback=DEFAULT_CASH_ACCOUNT_ID).strip()

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        master_branch=master_branch or DEFAULT_MASTER_BRANCH,
        branch_aliases=branch_aliases,
        default_branch=default_branch or DEFAULT_BRANCH,
        cash_account_id=cash_account_id or DEFAULT_CASH_ACCOUNT_ID,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the master workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def sanitize_id(raw_id: Any) -> str:
    """Turn an arbitrary identifier into a safe document key.

    Identifiers are trimmed and the characters ``/ . # $ [ ]`` plus any
    whitespace are replaced by ``_``. Empty identifiers receive a generated
    ``ID-<millis>-<suffix>`` key.
    """

    text = "" if raw_id is None else str(raw_id).strip()
    if not text:
        millis = int(datetime.now(UTC).timestamp() * 1000)
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=5))
        return f"ID-{millis}-{suffix}"
    return _UNSAFE_ID_CHARS.sub("_", text)


def normalize_branch(branch: Any, default: str = DEFAULT_BRANCH) -> str:
    """Return ``branch`` trimmed, or ``default`` when it is absent or invalid."""

    text = "" if branch is None else str(branch).strip()
    if text.lower() in INVALID_BRANCH_VALUES:
        return default
    return text


def header_map(workbook: Workbook, collection: Collection) -> Dict[str, int]:
    """Map each header title of ``collection``'s sheet to its 1-based column."""

    sheet = workbook[collection.value]
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1]) if cell.value is not None}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the column that stores the
            lookup key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    headers = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in headers:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = headers[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def encode_cell(column: str, value: Any) -> Any:
    """Convert a document value into something a worksheet cell can hold."""

    if value is None:
        return None
    if column in JSON_COLUMNS:
        return json.dumps(value, default=str, sort_keys=True)
    if isinstance(value, (TransactionType, TransactionStatus, PaymentMethod, PurchaseOrderStatus, ProductKind, DaySessionStatus)):
        return value.value
    return value


def decode_cell(column: str, value: Any) -> Any:
    """Convert a raw cell back into a document value.

    JSON columns that fail to parse decode to ``None`` and are logged rather
    than raised, so a single damaged cell cannot stop a collection load.
    """

    if value is None or column not in JSON_COLUMNS:
        return value
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        log.warning("Discarding malformed JSON in column '%s': %r", column, value)
        return None


def iter_documents(workbook: Workbook, collection: Collection) -> Iterator[Document]:
    """Stream the documents stored on ``collection``'s worksheet.

    Header and fully empty rows are skipped. Each remaining row becomes a
    dictionary keyed by header title with JSON columns decoded.

    Args:
        workbook (Workbook): Workbook containing the collection sheet.
        collection (Collection): Collection to read.

    Yields:
        dict[str, Any]: One document per populated row.
    """

    sheet = workbook[collection.value]
    headers = [cell.value for cell in sheet[1]]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if not any(cell is not None for cell in raw):
            continue
        yield {
            header: decode_cell(header, value)
            for header, value in zip(headers, raw)
            if header is not None
        }


def document_exists(workbook: Workbook, collection: Collection, doc_id: str) -> bool:
    return locate_row(workbook, collection.value, ID_COLUMN, doc_id) is not None


def upsert_document(workbook: Workbook, collection: Collection, doc_id: str, patch: Mapping[str, Any]) -> None:
    """Merge ``patch`` into the document ``doc_id``, appending it when absent.

    Only the supplied fields are written; other columns keep their values.
    The ``ID`` column is always set to ``doc_id``.

    Args:
        workbook (Workbook): Workbook containing the collection sheet.
        collection (Collection): Target collection.
        doc_id (str): Already-sanitized document key.
        patch (Mapping[str, Any]): Field values keyed by header title.

    Raises:
        KeyError: If ``patch`` references a column the sheet does not define.
    """

    columns = header_map(workbook, collection)
    unknown = [field for field in patch if field not in columns]
    if unknown:
        raise KeyError(f"Unknown {collection.value} field(s): {', '.join(sorted(unknown))}")

    values = dict(patch)
    values[ID_COLUMN] = doc_id
    sheet = workbook[collection.value]
    row_index = locate_row(workbook, collection.value, ID_COLUMN, doc_id)
    if row_index is None:
        row: List[Any] = [None] * max(columns.values())
        for field, value in values.items():
            row[columns[field] - 1] = encode_cell(field, value)
        sheet.append(row)
        return

    for field, value in values.items():
        sheet.cell(row=row_index, column=columns[field], value=encode_cell(field, value))


def delete_document(workbook: Workbook, collection: Collection, doc_id: str) -> bool:
    """Remove the row holding ``doc_id``; return ``False`` when it was absent."""

    row_index = locate_row(workbook, collection.value, ID_COLUMN, doc_id)
    if row_index is None:
        return False
    workbook[collection.value].delete_rows(row_index)
    return True


class PersistenceGateway:
    """Document-store facade over the workbook.

    Every write re-broadcasts the full document list of the touched
    collection to its subscribers, which is how the in-memory snapshot stays
    current. No write spans more than one collection and nothing here is
    transactional.
    """

    def __init__(self, workbook: Workbook, *, default_branch: str = DEFAULT_BRANCH) -> None:
        self.workbook = workbook
        self.default_branch = default_branch
        self._listeners: Dict[Collection, List[ChangeListener]] = {}

    def documents(self, collection: Collection) -> List[Document]:
        return list(iter_documents(self.workbook, collection))

    def subscribe(self, collection: Collection, on_change: ChangeListener) -> Callable[[], None]:
        """Register ``on_change`` and deliver the current documents at once.

        Returns:
            Callable[[], None]: Handle that removes the subscription. Calling
                it twice is harmless.
        """

        listeners = self._listeners.setdefault(collection, [])
        listeners.append(on_change)
        on_change(self.documents(collection))

        def unsubscribe() -> None:
            if on_change in listeners:
                listeners.remove(on_change)

        return unsubscribe

    def upsert(self, collection: Collection, doc_id: Any, patch: Mapping[str, Any]) -> str:
        """Merge ``patch`` into ``doc_id`` and return the sanitized key."""

        safe_id = sanitize_id(doc_id)
        self._write(collection, safe_id, patch)
        self._broadcast(collection)
        return safe_id

    def delete(self, collection: Collection, doc_id: Any) -> None:
        safe_id = sanitize_id(doc_id)
        if delete_document(self.workbook, collection, safe_id):
            log.debug("Deleted %s document '%s'", collection.value, safe_id)
            self._broadcast(collection)
        else:
            log.debug("Delete skipped; %s document '%s' not found", collection.value, safe_id)

    def bulk_upsert(self, collection: Collection, documents: Iterable[Mapping[str, Any]]) -> List[str]:
        """Deduplicate ``documents`` by id and merge each one.

        Products and transactions are normalized the way imports expect:
        product names and SKUs are upper-cased and numeric fields coerced;
        transactions get a date, an upper-cased type, and a valid branch. The
        collection is broadcast once after all documents are written.

        Returns:
            list[str]: Sanitized ids written, in first-seen order.
        """

        unique: Dict[str, Document] = {}
        for raw in documents:
            normalized = self._normalize_import(collection, raw)
            fallback_key = normalized.get("SKU") if collection is Collection.PRODUCTS else None
            safe_id = sanitize_id(raw.get(ID_COLUMN) or fallback_key)
            normalized[ID_COLUMN] = safe_id
            unique[safe_id] = normalized

        if not unique:
            return []

        for safe_id, document in unique.items():
            self._write(collection, safe_id, document)
        self._broadcast(collection)
        log.info("Bulk upserted %d %s document(s)", len(unique), collection.value)
        return list(unique)

    def _write(self, collection: Collection, safe_id: str, patch: Mapping[str, Any]) -> None:
        values = dict(patch)
        values[UPDATED_AT_COLUMN] = datetime.now(UTC).isoformat()
        if BRANCH_COLUMN in header_map(self.workbook, collection):
            if BRANCH_COLUMN in values:
                values[BRANCH_COLUMN] = normalize_branch(values[BRANCH_COLUMN], self.default_branch)
            elif not document_exists(self.workbook, collection, safe_id):
                values[BRANCH_COLUMN] = self.default_branch
        upsert_document(self.workbook, collection, safe_id, values)
        log.debug("Upserted %s document '%s'", collection.value, safe_id)

    def _broadcast(self, collection: Collection) -> None:
        listeners = list(self._listeners.get(collection, ()))
        if not listeners:
            return
        snapshot = self.documents(collection)
        for listener in listeners:
            listener(list(snapshot))

    def _normalize_import(self, collection: Collection, raw: Mapping[str, Any]) -> Document:
        document = dict(raw)
        if collection is Collection.PRODUCTS:
            document["Name"] = str(raw.get("Name") or "UNNAMED").upper()
            document["SKU"] = str(raw.get("SKU") or raw.get(ID_COLUMN) or sanitize_id(None)).upper()
            document["Price"] = to_decimal(raw.get("Price"))
            document["Cost"] = to_decimal(raw.get("Cost"))
            document["Stock"] = to_decimal(raw.get("Stock"))
            document["CategoryID"] = raw.get("CategoryID") or "UNGROUPED"
        elif collection is Collection.TRANSACTIONS:
            document["Amount"] = to_decimal(raw.get("Amount"))
            document["Date"] = raw.get("Date") or datetime.now(UTC).isoformat()
            document["Type"] = str(raw.get("Type") or TransactionType.SALE.value).upper()
            document[BRANCH_COLUMN] = normalize_branch(raw.get(BRANCH_COLUMN), self.default_branch)
        return document


# ---------------------------------------------------------------------------
# Document (de)serialization
# ---------------------------------------------------------------------------


def _parse_enum(enum_cls: Type[E], raw: Any, default: E) -> E:
    if raw is None:
        return default
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).strip().upper())  # type: ignore[call-arg]
    except ValueError:
        log.warning("Unrecognized %s value %r; using %s", enum_cls.__name__, raw, default)
        return default


def _optional_text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _optional_decimal(raw: Any):
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return to_decimal(raw)


def serialize_product(record: Product) -> Document:
    return {
        "ID": record.product_id,
        "Name": record.name,
        "SKU": record.sku,
        "CategoryID": record.category_id,
        "Kind": record.kind,
        "Cost": record.cost,
        "Price": record.price,
        "BranchStocks": dict(record.branch_stocks),
        "Stock": record.stock,
        "LowStockThreshold": record.low_stock_threshold,
    }


def deserialize_product(document: Mapping[str, Any]) -> Product:
    """Convert a product document into a :class:`Product`.

    ``BranchStocks`` values are coerced individually. A blank ``Kind`` stays
    ``None`` so the stock ledger can derive it from the category.
    """

    raw_stocks = document.get("BranchStocks") or {}
    if not isinstance(raw_stocks, Mapping):
        raw_stocks = {}
    branch_stocks = {str(branch): to_decimal(qty) for branch, qty in raw_stocks.items()}
    raw_kind = _optional_text(document.get("Kind"))
    kind = _parse_enum(ProductKind, raw_kind, ProductKind.STANDARD) if raw_kind else None
    threshold = document.get("LowStockThreshold")
    return Product(
        product_id=str(document.get("ID")),
        name=str(document.get("Name") or ""),
        sku=str(document.get("SKU") or ""),
        category_id=str(document.get("CategoryID") or ""),
        cost=to_decimal(document.get("Cost")),
        price=to_decimal(document.get("Price")),
        branch_stocks=branch_stocks,
        stock=to_decimal(document.get("Stock")),
        low_stock_threshold=to_decimal(threshold, DEFAULT_LOW_STOCK_THRESHOLD),
        kind=kind,
    )


def serialize_category(record: Category) -> Document:
    return {"ID": record.category_id, "Name": record.name}


def deserialize_category(document: Mapping[str, Any]) -> Category:
    return Category(category_id=str(document.get("ID")), name=str(document.get("Name") or ""))


def serialize_customer(record: Customer) -> Document:
    return {
        "ID": record.customer_id,
        "Name": record.name,
        "Phone": record.phone,
        "CreditLimit": record.credit_limit,
        "TotalCredit": record.total_credit,
    }


def deserialize_customer(document: Mapping[str, Any]) -> Customer:
    return Customer(
        customer_id=str(document.get("ID")),
        name=str(document.get("Name") or ""),
        total_credit=to_decimal(document.get("TotalCredit")),
        credit_limit=to_decimal(document.get("CreditLimit")),
        phone=_optional_text(document.get("Phone")),
    )


def serialize_vendor(record: Vendor) -> Document:
    return {
        "ID": record.vendor_id,
        "Name": record.name,
        "Phone": record.phone,
        "TotalBalance": record.total_balance,
    }


def deserialize_vendor(document: Mapping[str, Any]) -> Vendor:
    return Vendor(
        vendor_id=str(document.get("ID")),
        name=str(document.get("Name") or ""),
        total_balance=to_decimal(document.get("TotalBalance")),
        phone=_optional_text(document.get("Phone")),
    )


def serialize_account(record: BankAccount) -> Document:
    return {
        "ID": record.account_id,
        "Name": record.name,
        "AccountNumber": record.account_number,
        "Balance": record.balance,
    }


def deserialize_account(document: Mapping[str, Any]) -> BankAccount:
    return BankAccount(
        account_id=str(document.get("ID")),
        name=str(document.get("Name") or ""),
        balance=to_decimal(document.get("Balance")),
        account_number=_optional_text(document.get("AccountNumber")),
    )


def serialize_transaction(record: Transaction) -> Document:
    """Convert a :class:`Transaction` into its document form.

    Line items keep the camelCase keys of the original document format so
    exported data stays readable by other tools.
    """

    return {
        "ID": record.transaction_id,
        "Date": record.date,
        "Type": record.transaction_type,
        "Status": record.status,
        "Amount": record.amount,
        "PaidAmount": record.paid_amount,
        "BalanceDue": record.balance_due,
        "PaymentMethod": record.payment_method,
        "AccountID": record.account_id,
        "DestinationAccountID": record.destination_account_id,
        "CustomerID": record.customer_id,
        "VendorID": record.vendor_id,
        "ParentTxID": record.parent_tx_id,
        "Items": [
            {
                "productId": item.product_id,
                "quantity": item.quantity,
                "price": item.price,
                "discount": item.discount,
            }
            for item in record.items
        ],
        "CostBasis": record.cost_basis,
        "BranchID": record.branch_id,
        "Description": record.description,
    }


def deserialize_transaction(document: Mapping[str, Any]) -> Transaction:
    """Convert a transaction document into a :class:`Transaction`.

    Missing status reads as ``COMPLETED``: payments, expenses, and transfers
    are written without a draft phase. Item entries that are not objects are
    dropped.
    """

    raw_items = document.get("Items") or []
    items = tuple(
        LineItem(
            product_id=str(entry.get("productId")),
            quantity=to_decimal(entry.get("quantity")),
            price=to_decimal(entry.get("price")),
            discount=to_decimal(entry.get("discount")),
        )
        for entry in raw_items
        if isinstance(entry, Mapping)
    )
    return Transaction(
        transaction_id=str(document.get("ID")),
        transaction_type=_parse_enum(TransactionType, document.get("Type"), TransactionType.SALE),
        amount=to_decimal(document.get("Amount")),
        payment_method=_parse_enum(PaymentMethod, document.get("PaymentMethod"), PaymentMethod.CASH),
        status=_parse_enum(TransactionStatus, _optional_text(document.get("Status")), TransactionStatus.COMPLETED),
        paid_amount=_optional_decimal(document.get("PaidAmount")),
        balance_due=to_decimal(document.get("BalanceDue")),
        account_id=_optional_text(document.get("AccountID")),
        destination_account_id=_optional_text(document.get("DestinationAccountID")),
        customer_id=_optional_text(document.get("CustomerID")),
        vendor_id=_optional_text(document.get("VendorID")),
        parent_tx_id=_optional_text(document.get("ParentTxID")),
        items=items,
        cost_basis=to_decimal(document.get("CostBasis")),
        branch_id=_optional_text(document.get("BranchID")),
        date=_optional_text(document.get("Date")),
        description=_optional_text(document.get("Description")),
    )


def serialize_purchase_order(record: PurchaseOrder) -> Document:
    return {
        "ID": record.po_id,
        "Date": record.date,
        "ReceivedDate": record.received_date,
        "VendorID": record.vendor_id,
        "Items": [
            {"productId": line.product_id, "quantity": line.quantity, "cost": line.cost}
            for line in record.items
        ],
        "Status": record.status,
        "TotalAmount": record.total_amount,
        "PaymentMethod": record.payment_method,
        "AccountID": record.account_id,
    }


def deserialize_purchase_order(document: Mapping[str, Any]) -> PurchaseOrder:
    raw_items = document.get("Items") or []
    lines = tuple(
        PurchaseOrderLine(
            product_id=str(entry.get("productId")),
            quantity=to_decimal(entry.get("quantity")),
            cost=to_decimal(entry.get("cost")),
        )
        for entry in raw_items
        if isinstance(entry, Mapping)
    )
    return PurchaseOrder(
        po_id=str(document.get("ID")),
        vendor_id=_optional_text(document.get("VendorID")),
        items=lines,
        status=_parse_enum(PurchaseOrderStatus, document.get("Status"), PurchaseOrderStatus.DRAFT),
        total_amount=to_decimal(document.get("TotalAmount")),
        payment_method=_parse_enum(PaymentMethod, document.get("PaymentMethod"), PaymentMethod.CASH),
        account_id=_optional_text(document.get("AccountID")),
        date=_optional_text(document.get("Date")),
        received_date=_optional_text(document.get("ReceivedDate")),
    )


def serialize_day_session(record: DaySession) -> Document:
    return {
        "ID": record.session_id,
        "Date": record.date,
        "BranchID": record.branch_id,
        "OpeningBalance": record.opening_balance,
        "ExpectedClosing": record.expected_closing,
        "ActualClosing": record.actual_closing,
        "Status": record.status,
    }


def deserialize_day_session(document: Mapping[str, Any]) -> DaySession:
    return DaySession(
        session_id=str(document.get("ID")),
        date=str(document.get("Date") or ""),
        branch_id=str(document.get("BranchID") or ""),
        opening_balance=to_decimal(document.get("OpeningBalance")),
        status=_parse_enum(DaySessionStatus, document.get("Status"), DaySessionStatus.OPEN),
        expected_closing=_optional_decimal(document.get("ExpectedClosing")),
        actual_closing=_optional_decimal(document.get("ActualClosing")),
    )


SERIALIZERS: Mapping[Collection, Callable[[Any], Document]] = {
    Collection.PRODUCTS: serialize_product,
    Collection.CATEGORIES: serialize_category,
    Collection.TRANSACTIONS: serialize_transaction,
    Collection.CUSTOMERS: serialize_customer,
    Collection.VENDORS: serialize_vendor,
    Collection.ACCOUNTS: serialize_account,
    Collection.PURCHASE_ORDERS: serialize_purchase_order,
    Collection.DAY_SESSIONS: serialize_day_session,
}

DESERIALIZERS: Mapping[Collection, Callable[[Mapping[str, Any]], Any]] = {
    Collection.PRODUCTS: deserialize_product,
    Collection.CATEGORIES: deserialize_category,
    Collection.TRANSACTIONS: deserialize_transaction,
    Collection.CUSTOMERS: deserialize_customer,
    Collection.VENDORS: deserialize_vendor,
    Collection.ACCOUNTS: deserialize_account,
    Collection.PURCHASE_ORDERS: deserialize_purchase_order,
    Collection.DAY_SESSIONS: deserialize_day_session,
}


def serialize_document(collection: Collection, record: Any) -> Document:
    return SERIALIZERS[collection](record)


def deserialize_documents(collection: Collection, documents: Sequence[Mapping[str, Any]]) -> List[Any]:
    return [DESERIALIZERS[collection](document) for document in documents]
