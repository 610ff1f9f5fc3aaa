"""Tests for branch resolution, product kinds, and stock arithmetic."""

from __future__ import annotations

from decimal import Decimal

import pytest

from retail_ledger import stock_ledger
from retail_ledger.constants import ProductKind
from retail_ledger.models import Category, LineItem, Product
from retail_ledger.snapshot import LedgerSnapshot


def _product(**overrides) -> Product:
    values = {
        "product_id": "P1",
        "name": "RICE",
        "sku": "RICE",
        "category_id": "CAT-G",
        "cost": Decimal("60"),
        "price": Decimal("100"),
        "branch_stocks": {"CASHIER 1": Decimal("10")},
        "stock": Decimal("10"),
        "kind": ProductKind.STANDARD,
    }
    values.update(overrides)
    return Product(**values)


# ---------------------------------------------------------------------------
# Branch resolution
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("alias", ["CASHIER 2", "shop 2", " Local Node ", "BOOKSHOP", "Main Branch", "cashier 1"])
def test_aliases_resolve_to_master_branch(alias):
    assert stock_ledger.resolve_stock_branch(alias) == "CASHIER 1"


@pytest.mark.parametrize("blank", [None, "", "   "])
def test_blank_branch_resolves_to_master(blank):
    assert stock_ledger.resolve_stock_branch(blank) == "CASHIER 1"


def test_unknown_branch_is_returned_trimmed():
    assert stock_ledger.resolve_stock_branch("  Kandy Outlet ") == "Kandy Outlet"


def test_alias_table_can_be_overridden():
    assert stock_ledger.resolve_stock_branch("Annex", master="HQ", aliases=["annex"]) == "HQ"
    assert stock_ledger.resolve_stock_branch("SHOP 2", master="HQ", aliases=["annex"]) == "SHOP 2"


# ---------------------------------------------------------------------------
# Product kind
# ---------------------------------------------------------------------------


def test_stored_kind_wins_over_category():
    product = _product(kind=ProductKind.STANDARD)
    assert stock_ledger.product_kind(product, Category("CAT-G", "Reload cards")) is ProductKind.STANDARD


def test_legacy_product_kind_derives_from_category_name():
    product = _product(kind=None)
    assert stock_ledger.product_kind(product, Category("CAT-G", "Hot reload")) is ProductKind.RELOAD


def test_legacy_product_kind_derives_from_category_id_when_category_missing():
    product = _product(kind=None, category_id="reload-dialog")
    assert stock_ledger.product_kind(product, None) is ProductKind.RELOAD


def test_classify_defaults_to_standard():
    assert stock_ledger.classify("CAT-G", Category("CAT-G", "Groceries")) is ProductKind.STANDARD


# ---------------------------------------------------------------------------
# Deductions and deltas
# ---------------------------------------------------------------------------


def test_standard_deduction_is_quantity():
    item = LineItem("P1", Decimal("3"), Decimal("100"))
    assert stock_ledger.deduction_amount(item, ProductKind.STANDARD) == Decimal("3")


def test_reload_deduction_is_cost_value():
    item = LineItem("R1", Decimal("1"), Decimal("100"))
    assert stock_ledger.deduction_amount(item, ProductKind.RELOAD) == Decimal("96")


def test_standard_sale_of_three_from_ten_leaves_seven():
    updated = stock_ledger.apply_stock_delta(_product(), "CASHIER 1", Decimal("-3"), ProductKind.STANDARD)

    assert updated.branch_stocks["CASHIER 1"] == Decimal("7")
    assert updated.stock == Decimal("7")


def test_standard_stock_is_clamped_at_zero():
    updated = stock_ledger.apply_stock_delta(_product(), "CASHIER 1", Decimal("-15"), ProductKind.STANDARD)
    assert updated.branch_stocks["CASHIER 1"] == Decimal("0")


def test_reload_stock_may_go_negative():
    product = _product(kind=ProductKind.RELOAD, branch_stocks={"CASHIER 1": Decimal("50")}, stock=Decimal("50"))

    updated = stock_ledger.apply_stock_delta(product, "CASHIER 1", Decimal("-96"), ProductKind.RELOAD)

    assert updated.branch_stocks["CASHIER 1"] == Decimal("-46")
    assert updated.stock == Decimal("-46")


def test_missing_branch_bucket_starts_from_legacy_stock():
    product = _product(branch_stocks={}, stock=Decimal("8"))

    updated = stock_ledger.apply_stock_delta(product, "CASHIER 1", Decimal("-2"), ProductKind.STANDARD)

    assert updated.branch_stocks == {"CASHIER 1": Decimal("6")}
    assert updated.stock == Decimal("6")


def test_stock_is_recomputed_as_sum_of_branches():
    product = _product(branch_stocks={"CASHIER 1": Decimal("10"), "Kandy": Decimal("4")}, stock=Decimal("999"))

    updated = stock_ledger.apply_stock_delta(product, "Kandy", Decimal("1"), ProductKind.STANDARD)

    assert updated.stock == Decimal("15")
    assert product.branch_stocks["Kandy"] == Decimal("4")


# ---------------------------------------------------------------------------
# Cost basis
# ---------------------------------------------------------------------------


def test_cost_basis_uses_unit_cost_and_reload_fallback():
    snapshot = LedgerSnapshot.from_records(
        products=[
            _product(),
            _product(product_id="R1", category_id="CAT-R", cost=Decimal("0"), kind=None),
        ],
        categories=[Category("CAT-R", "Reloads")],
    )
    items = [
        LineItem("P1", Decimal("2"), Decimal("100")),
        LineItem("R1", Decimal("1"), Decimal("50")),
        LineItem("GHOST", Decimal("5"), Decimal("1")),
    ]

    assert stock_ledger.compute_cost_basis(items, snapshot) == Decimal("120") + Decimal("48")
