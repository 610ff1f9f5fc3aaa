"""In-memory read model of the ledger collections.

:class:`LedgerSnapshot` holds one table per collection, indexed by document
id. It never reads the workbook on its own: :meth:`LedgerSnapshot.attach`
subscribes to the gateway, which pushes the full document list of a
collection after every write. Planning code receives the snapshot as an
explicit argument instead of reaching for shared state.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, KeysView, List, Mapping, Optional

from . import data_manager, log
from .constants import Collection
from .models import (
    BankAccount,
    Category,
    Customer,
    DaySession,
    Product,
    PurchaseOrder,
    Transaction,
    Vendor,
)

_KEY_OF: Mapping[Collection, Callable[[Any], str]] = {
    Collection.PRODUCTS: lambda record: record.product_id,
    Collection.CATEGORIES: lambda record: record.category_id,
    Collection.TRANSACTIONS: lambda record: record.transaction_id,
    Collection.CUSTOMERS: lambda record: record.customer_id,
    Collection.VENDORS: lambda record: record.vendor_id,
    Collection.ACCOUNTS: lambda record: record.account_id,
    Collection.PURCHASE_ORDERS: lambda record: record.po_id,
    Collection.DAY_SESSIONS: lambda record: record.session_id,
}


class LedgerSnapshot:
    """Indexed tables of domain records, one per collection."""

    def __init__(self) -> None:
        self._tables: Dict[Collection, Dict[str, Any]] = {collection: {} for collection in Collection}
        self._unsubscribers: List[Callable[[], None]] = []

    @classmethod
    def from_records(cls, **records: Iterable[Any]) -> "LedgerSnapshot":
        """Build a detached snapshot from model objects.

        Keyword names are collection member names in lower case, for example
        ``products=[...]`` or ``purchase_orders=[...]``.
        """

        snapshot = cls()
        for name, items in records.items():
            collection = Collection[name.upper()]
            snapshot.replace(collection, items)
        return snapshot

    def attach(self, gateway: data_manager.PersistenceGateway) -> None:
        """Subscribe to every collection; each subscription loads at once."""

        self.detach()
        for collection in Collection:
            self._unsubscribers.append(
                gateway.subscribe(collection, self._listener_for(collection))
            )

    def detach(self) -> None:
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def _listener_for(self, collection: Collection) -> Callable[[List[Dict[str, Any]]], None]:
        def on_change(documents: List[Dict[str, Any]]) -> None:
            self.refresh(collection, documents)

        return on_change

    def refresh(self, collection: Collection, documents: Iterable[Mapping[str, Any]]) -> None:
        """Rebuild the table for ``collection`` from raw gateway documents."""

        records = data_manager.deserialize_documents(collection, list(documents))
        self.replace(collection, records)
        log.debug("Snapshot refreshed %s with %d record(s)", collection.value, len(records))

    def replace(self, collection: Collection, records: Iterable[Any]) -> None:
        key_of = _KEY_OF[collection]
        self._tables[collection] = {key_of(record): record for record in records}

    def all(self, collection: Collection) -> List[Any]:
        return list(self._tables[collection].values())

    def get(self, collection: Collection, key: Optional[str]) -> Any:
        if key is None:
            return None
        return self._tables[collection].get(key)

    def ids(self, collection: Collection) -> KeysView[str]:
        return self._tables[collection].keys()

    def product(self, product_id: Optional[str]) -> Optional[Product]:
        return self.get(Collection.PRODUCTS, product_id)

    def category(self, category_id: Optional[str]) -> Optional[Category]:
        return self.get(Collection.CATEGORIES, category_id)

    def transaction(self, transaction_id: Optional[str]) -> Optional[Transaction]:
        return self.get(Collection.TRANSACTIONS, transaction_id)

    def customer(self, customer_id: Optional[str]) -> Optional[Customer]:
        return self.get(Collection.CUSTOMERS, customer_id)

    def vendor(self, vendor_id: Optional[str]) -> Optional[Vendor]:
        return self.get(Collection.VENDORS, vendor_id)

    def account(self, account_id: Optional[str]) -> Optional[BankAccount]:
        return self.get(Collection.ACCOUNTS, account_id)

    def purchase_order(self, po_id: Optional[str]) -> Optional[PurchaseOrder]:
        return self.get(Collection.PURCHASE_ORDERS, po_id)

    def day_session(self, session_id: Optional[str]) -> Optional[DaySession]:
        return self.get(Collection.DAY_SESSIONS, session_id)

    def category_for(self, product: Product) -> Optional[Category]:
        return self.category(product.category_id or None)
