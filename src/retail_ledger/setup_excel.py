"""Utility for initializing the retail ledger master workbook.

The module doubles as a script (``ledger-setup``) and as a library used by
tests. Each document collection gets its own worksheet whose bold header row
names the document fields; the cash-drawer account is seeded so the first
cash sale has somewhere to land.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import data_manager
from .constants import DEFAULT_CASH_ACCOUNT_ID, Collection

SHEET_COLUMNS: Mapping[Collection, Sequence[str]] = {
    Collection.PRODUCTS: [
        "ID",
        "Name",
        "SKU",
        "CategoryID",
        "Kind",
        "Cost",
        "Price",
        "BranchStocks",
        "Stock",
        "LowStockThreshold",
        "UpdatedAt",
    ],
    Collection.CATEGORIES: ["ID", "Name", "UpdatedAt"],
    Collection.TRANSACTIONS: [
        "ID",
        "Date",
        "Type",
        "Status",
        "Amount",
        "PaidAmount",
        "BalanceDue",
        "PaymentMethod",
        "AccountID",
        "DestinationAccountID",
        "CustomerID",
        "VendorID",
        "ParentTxID",
        "Items",
        "CostBasis",
        "BranchID",
        "Description",
        "UpdatedAt",
    ],
    Collection.CUSTOMERS: ["ID", "Name", "Phone", "CreditLimit", "TotalCredit", "UpdatedAt"],
    Collection.VENDORS: ["ID", "Name", "Phone", "TotalBalance", "UpdatedAt"],
    Collection.ACCOUNTS: ["ID", "Name", "AccountNumber", "Balance", "UpdatedAt"],
    Collection.PURCHASE_ORDERS: [
        "ID",
        "Date",
        "ReceivedDate",
        "VendorID",
        "Items",
        "Status",
        "TotalAmount",
        "PaymentMethod",
        "AccountID",
        "UpdatedAt",
    ],
    Collection.DAY_SESSIONS: [
        "ID",
        "Date",
        "BranchID",
        "OpeningBalance",
        "ExpectedClosing",
        "ActualClosing",
        "Status",
        "UpdatedAt",
    ],
}

CASH_ACCOUNT_NAME = "Cash Drawer"
CONFIG_FILE = "config.ini"


def build_master_workbook(
    *,
    cash_account_id: str = DEFAULT_CASH_ACCOUNT_ID,
    sheet_columns: Mapping[Collection, Sequence[str]] = SHEET_COLUMNS,
) -> Workbook:
    """Return an in-memory workbook with every collection sheet in place."""

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for collection, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=collection.value)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    if Collection.ACCOUNTS in sheet_columns:
        data_manager.upsert_document(
            workbook,
            Collection.ACCOUNTS,
            cash_account_id,
            {"Name": CASH_ACCOUNT_NAME, "Balance": 0},
        )
    return workbook


def create_master_workbook(
    destination: Path,
    *,
    cash_account_id: str = DEFAULT_CASH_ACCOUNT_ID,
    sheet_columns: Mapping[Collection, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create the master workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing master workbook: {destination}"
        )

    workbook = build_master_workbook(cash_account_id=cash_account_id, sheet_columns=sheet_columns)
    data_manager.save_workbook(workbook, destination)
    return destination


def load_settings(config_path: Path) -> data_manager.ConfigSettings:
    """Read ``config.ini`` with relative paths anchored at its directory."""

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    return data_manager.parse_settings(parser, base_path=config_path.parent)


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    settings = load_settings(config_path)
    return create_master_workbook(
        settings.data_file,
        cash_account_id=settings.cash_account_id,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the retail ledger workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``ledger-setup`` script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Retail Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
