"""Integration tests describing the end-to-end retail ledger workflows.

These scenarios drive the CLI against a real workbook on disk, then reload the
workbook to check what was persisted. They document how the gateway, the
engine, and the presentation layer collaborate.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Sequence

import openpyxl
import pytest

from retail_ledger import cli, core_logic, data_manager, setup_excel
from retail_ledger.constants import Collection, PaymentMethod, ProductKind, PurchaseOrderStatus
from retail_ledger.models import BankAccount, Category, Customer, Product, PurchaseOrder, PurchaseOrderLine, Vendor


def _seed(bundle, records: Mapping[Collection, Sequence[object]]) -> None:
    """Write model records into the bundle's workbook and save it."""

    context = core_logic.load_runtime_context(bundle.config_path)
    for collection, items in records.items():
        for record in items:
            document = data_manager.serialize_document(collection, record)
            context.gateway.upsert(collection, document["ID"], document)
    core_logic.persist_context(context)


def _reload(bundle) -> core_logic.RuntimeContext:
    context = core_logic.load_runtime_context(bundle.config_path)
    core_logic.ensure_schema_version(context)
    return context


def _run(bundle, capsys, *argv: str) -> tuple[int, list[str]]:
    capsys.readouterr()
    exit_code = cli.main(["--config", str(bundle.config_path), *argv])
    return exit_code, capsys.readouterr().out.splitlines()


@pytest.fixture
def store(config_factory):
    """A workbook on disk holding a shop's starting data."""

    bundle = config_factory()
    _seed(
        bundle,
        {
            Collection.CATEGORIES: [Category("CAT-R", "Hot Reload"), Category("CAT-G", "Groceries")],
            Collection.PRODUCTS: [
                Product(
                    "P1", "RICE 5KG", "RICE5", "CAT-G", Decimal("60"), Decimal("100"),
                    branch_stocks={"CASHIER 1": Decimal("10")}, stock=Decimal("10"), kind=ProductKind.STANDARD,
                ),
                Product(
                    "R1", "MOBILE RELOAD", "RLD", "CAT-R", Decimal("0"), Decimal("1"),
                    branch_stocks={"CASHIER 1": Decimal("1000")}, stock=Decimal("1000"),
                ),
            ],
            Collection.CUSTOMERS: [Customer("C1", "Nimal", Decimal("0"), credit_limit=Decimal("1000"))],
            Collection.VENDORS: [Vendor("V1", "Acme Supplies", Decimal("1000"))],
            Collection.ACCOUNTS: [BankAccount("bank", "Commercial Bank", Decimal("500"))],
        },
    )
    return bundle


# ---------------------------------------------------------------------------
# Workbook setup
# ---------------------------------------------------------------------------


def test_setup_script_creates_workbook_from_config(tmp_path, capsys):
    """ledger-setup should build every sheet and refuse to overwrite without --force."""

    config_path = tmp_path / "config.ini"
    config_path.write_text(
        "[System]\nDataFile = data/ledger.xlsx\nStoreName = Test Store\nSchemaVersion = 1.0.0\n\n"
        "[Defaults]\nCashAccountID = till\n"
    )

    assert setup_excel.main(["--config", str(config_path)]) == 0
    assert "[SUCCESS]" in capsys.readouterr().out

    workbook = openpyxl.load_workbook(tmp_path / "data" / "ledger.xlsx")
    assert set(workbook.sheetnames) == {collection.value for collection in Collection}
    for collection, columns in setup_excel.SHEET_COLUMNS.items():
        assert [cell.value for cell in workbook[collection.value][1]] == list(columns)
    (account,) = data_manager.iter_documents(workbook, Collection.ACCOUNTS)
    assert account["ID"] == "till"

    assert setup_excel.main(["--config", str(config_path)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_excel.main(["--config", str(config_path), "--force"]) == 0


def test_setup_script_reports_missing_config(tmp_path, capsys):
    assert setup_excel.main(["--config", str(tmp_path / "missing.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Sales through the CLI
# ---------------------------------------------------------------------------


def test_cli_sale_and_delete_round_trip(store, capsys):
    """A sale persists its effects and deleting it restores the workbook state."""

    exit_code, out = _run(store, capsys, "sale", "--item", "P1:3:100", "--item", "R1:100:1", "--branch", "SHOP 2")
    assert exit_code == 0
    (transaction_id,) = out
    assert transaction_id.startswith("TX-")

    context = _reload(store)
    sale = context.snapshot.transaction(transaction_id)
    assert sale.amount == Decimal("400")
    assert sale.cost_basis == Decimal("276")
    assert context.snapshot.product("P1").branch_stocks == {"CASHIER 1": Decimal("7")}
    assert context.snapshot.product("R1").stock == Decimal("904")
    assert context.snapshot.account("cash").balance == Decimal("400")

    assert _run(store, capsys, "delete-tx", "--transaction-id", transaction_id)[0] == 0

    context = _reload(store)
    assert context.snapshot.transaction(transaction_id) is None
    assert context.snapshot.product("P1").stock == Decimal("10")
    assert context.snapshot.product("R1").stock == Decimal("1000")
    assert context.snapshot.account("cash").balance == Decimal("0")


def test_cli_draft_then_complete_flow(store, capsys):
    """A draft changes nothing until it is amended to completed."""

    exit_code, out = _run(store, capsys, "sale", "--item", "P1:2:100", "--draft")
    assert exit_code == 0
    (draft_id,) = out
    assert _reload(store).snapshot.product("P1").stock == Decimal("10")

    exit_code, out = _run(store, capsys, "amend", "--transaction-id", draft_id, "--item", "P1:4:100", "--complete")
    assert exit_code == 0
    assert out == []

    context = _reload(store)
    assert context.snapshot.transaction(draft_id).is_draft is False
    assert context.snapshot.transaction(draft_id).amount == Decimal("400")
    assert context.snapshot.product("P1").stock == Decimal("6")
    assert context.snapshot.account("cash").balance == Decimal("400")


def test_cli_credit_sale_payment_and_debt_report(store, capsys):
    """Credit sales surface on the debts report and payments settle the invoice."""

    _, (sale_id,) = _run(
        store, capsys,
        "sale", "--item", "P1:5:100", "--payment-method", "CREDIT", "--customer-id", "C1", "--balance-due", "500",
    )
    exit_code, out = _run(
        store, capsys,
        "customer-payment", "--customer-id", "C1", "--amount", "200", "--parent-tx-id", sale_id,
    )
    assert exit_code == 0
    assert out[0].startswith("CP-")

    exit_code, out = _run(store, capsys, "debts")
    assert exit_code == 0
    assert out == ["C1\t300"]

    invoice = _reload(store).snapshot.transaction(sale_id)
    assert invoice.paid_amount == Decimal("200")
    assert invoice.balance_due == Decimal("300")


# ---------------------------------------------------------------------------
# Purchasing, money movement, and day sessions
# ---------------------------------------------------------------------------


def test_cli_receive_purchase_order_and_payables(store, capsys):
    """Receiving a credit order restocks and shows up as a payable."""

    _seed(
        store,
        {
            Collection.PURCHASE_ORDERS: [
                PurchaseOrder(
                    po_id="PO1",
                    vendor_id="V1",
                    items=(PurchaseOrderLine("P1", Decimal("5"), Decimal("55")),),
                    status=PurchaseOrderStatus.PENDING,
                    total_amount=Decimal("275"),
                    payment_method=PaymentMethod.CREDIT,
                )
            ]
        },
    )

    exit_code, out = _run(store, capsys, "receive-po", "--po-id", "PO1", "--branch", "Main Branch")
    assert exit_code == 0
    assert out[0].startswith("PU-")

    assert _run(store, capsys, "payables")[1] == ["V1\t1275"]
    assert _run(store, capsys, "stock")[1] == ["P1\t15", "R1\t1000"]

    exit_code, out = _run(store, capsys, "receive-po", "--po-id", "PO1")
    assert exit_code == 0
    assert out == ["No change: purchase order 'PO1'"]


def test_cli_vendor_settlement_expense_and_close_account(store, capsys):
    """Money movement commands keep account balances consistent on disk."""

    assert _run(store, capsys, "vendor-payment", "--vendor-id", "V1", "--amount", "300",
                "--payment-method", "BANK", "--account-id", "bank")[0] == 0
    assert _run(store, capsys, "expense", "--amount", "50", "--description", "Tea")[0] == 0
    assert _run(store, capsys, "close-account", "--account-id", "bank")[0] == 0

    context = _reload(store)
    assert context.snapshot.vendor("V1").total_balance == Decimal("700")
    assert context.snapshot.account("bank") is None
    assert context.snapshot.account("cash").balance == Decimal("150")


def test_cli_business_rule_violation_is_not_persisted(store, capsys):
    """A rejected command exits with code 2 and leaves the workbook untouched."""

    exit_code, _ = _run(store, capsys, "transfer", "--from-account", "bank", "--to-account", "bank", "--amount", "5")
    assert exit_code == 2
    assert _run(store, capsys, "close-account", "--account-id", "cash")[0] == 2

    context = _reload(store)
    assert context.snapshot.all(Collection.TRANSACTIONS) == []
    assert context.snapshot.account("bank").balance == Decimal("500")


def test_cli_day_session_flow(store, capsys):
    """Closing the day compares counted cash against the drawer movements."""

    exit_code, out = _run(store, capsys, "open-day", "--opening-balance", "1000", "--branch", "CASHIER 1")
    assert exit_code == 0
    (session_id,) = out
    assert session_id.endswith("CASHIER_1")

    _run(store, capsys, "sale", "--item", "P1:3:100", "--branch", "CASHIER 1")
    exit_code, out = _run(store, capsys, "close-day", "--actual-closing", "1300", "--branch", "CASHIER 1")

    assert exit_code == 0
    assert out == [f"{session_id}\texpected=1300\tactual=1300"]
    assert _run(store, capsys, "close-day", "--actual-closing", "1300", "--branch", "CASHIER 1")[1] == [
        "No change: day session"
    ]


def test_bulk_import_feeds_reports(store, capsys):
    """Imported products are normalized and visible to the CLI reports."""

    context = _reload(store)
    keys = context.gateway.bulk_upsert(
        Collection.PRODUCTS,
        [
            {"ID": "P9", "Name": "sugar", "Price": "90", "Stock": "3", "CategoryID": "CAT-G"},
            {"ID": "P9", "Name": "sugar 1kg", "Price": "95", "Stock": "2", "CategoryID": "CAT-G"},
        ],
    )
    core_logic.persist_context(context)

    assert keys == ["P9"]
    exit_code, out = _run(store, capsys, "low-stock")
    assert exit_code == 0
    assert out == ["P9\t2\t(threshold 5)"]
    assert _reload(store).snapshot.product("P9").name == "SUGAR 1KG"
