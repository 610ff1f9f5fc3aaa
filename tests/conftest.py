"""Shared pytest fixtures and utilities for retail ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from retail_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from retail_ledger.constants import Collection, PaymentMethod, ProductKind, TransactionType  # noqa: E402
from retail_ledger.models import (  # noqa: E402
    BankAccount,
    Category,
    Customer,
    LineItem,
    Product,
    Transaction,
    Vendor,
)
from retail_ledger.setup_excel import build_master_workbook, create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Branches]\n"
    "MasterBranch = CASHIER 1\n"
    "Aliases = CASHIER 2, SHOP 2, LOCAL NODE, BOOKSHOP, MAIN BRANCH\n\n"
    "[Defaults]\n"
    "CashAccountID = {cash_account_id}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    cash_account_id: str
    schema_version: str
    store_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        cash_account_id: str = constants.DEFAULT_CASH_ACCOUNT_ID,
        filename: str = "master_workbook.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, cash_account_id=cash_account_id, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh master workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        store_name: str = "Test Store",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        cash_account_id: str = constants.DEFAULT_CASH_ACCOUNT_ID,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=bundle_dir_name, cash_account_id=cash_account_id)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                store_name=store_name,
                schema_version=schema_version,
                cash_account_id=cash_account_id,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            cash_account_id=cash_account_id,
            schema_version=schema_version,
            store_name=store_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# In-memory ledger fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for engine tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "master_workbook.xlsx",
        store_name="Test Store",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings) -> core_logic.RuntimeContext:
    """Runtime context over a fresh in-memory workbook (never saved)."""

    return core_logic.create_runtime_context(settings, build_master_workbook())


@pytest.fixture
def seed() -> Callable[..., None]:
    """Write model records straight through the gateway."""

    def _seed(context: core_logic.RuntimeContext, collection: Collection, *records: Any) -> None:
        for record in records:
            document = data_manager.serialize_document(collection, record)
            context.gateway.upsert(collection, document["ID"], document)

    return _seed


@pytest.fixture
def ledger(context: core_logic.RuntimeContext, seed: Callable[..., None]) -> core_logic.RuntimeContext:
    """A context seeded with one product of each kind, a customer, a vendor, and a bank account.

    * ``P1``: STANDARD, 10 units at CASHIER 1, cost 60, price 100.
    * ``R1``: RELOAD (via category ``CAT-R``), wallet 1000 at CASHIER 1, cost 0.
    * ``C1``: customer with no balance and a 1000 credit limit.
    * ``V1``: vendor owed 1000.
    * ``cash`` at 0 and ``bank`` at 500.
    """

    seed(
        context,
        Collection.CATEGORIES,
        Category("CAT-R", "Hot Reload"),
        Category("CAT-G", "Groceries"),
    )
    seed(
        context,
        Collection.PRODUCTS,
        Product(
            product_id="P1",
            name="RICE 5KG",
            sku="RICE5",
            category_id="CAT-G",
            cost=Decimal("60"),
            price=Decimal("100"),
            branch_stocks={"CASHIER 1": Decimal("10")},
            stock=Decimal("10"),
            kind=ProductKind.STANDARD,
        ),
        Product(
            product_id="R1",
            name="MOBILE RELOAD",
            sku="RLD",
            category_id="CAT-R",
            cost=Decimal("0"),
            price=Decimal("1"),
            branch_stocks={"CASHIER 1": Decimal("1000")},
            stock=Decimal("1000"),
        ),
    )
    seed(context, Collection.CUSTOMERS, Customer("C1", "Nimal", Decimal("0"), credit_limit=Decimal("1000")))
    seed(context, Collection.VENDORS, Vendor("V1", "Acme Supplies", Decimal("1000")))
    seed(context, Collection.ACCOUNTS, BankAccount("bank", "Commercial Bank", Decimal("500")))
    return context


@pytest.fixture
def make_sale() -> Callable[..., Transaction]:
    """Build a SALE transaction with sensible defaults."""

    def _make_sale(*items: LineItem, **overrides: Any) -> Transaction:
        lines = items or (LineItem("P1", Decimal("3"), Decimal("100")),)
        values = {
            "transaction_id": "",
            "transaction_type": TransactionType.SALE,
            "amount": sum((item.price * item.quantity for item in lines), Decimal("0")),
            "payment_method": PaymentMethod.CASH,
            "items": tuple(lines),
            "branch_id": "CASHIER 1",
        }
        values.update(overrides)
        return Transaction(**values)

    return _make_sale


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="ledger-cli", description="Ledger CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]
