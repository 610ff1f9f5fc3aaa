"""Tests for the pure impact functions."""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from retail_ledger import impacts
from retail_ledger.constants import PaymentMethod, ProductKind, TransactionStatus, TransactionType
from retail_ledger.models import Category, LineItem, Product, Transaction
from retail_ledger.snapshot import LedgerSnapshot


def _tx(tx_type: TransactionType, amount: str = "100", **overrides) -> Transaction:
    values = {
        "transaction_id": "T1",
        "transaction_type": tx_type,
        "amount": Decimal(amount),
        "payment_method": PaymentMethod.CASH,
        "account_id": "cash",
    }
    values.update(overrides)
    return Transaction(**values)


# ---------------------------------------------------------------------------
# Scalar impacts
# ---------------------------------------------------------------------------


def test_realized_inflow_prefers_non_zero_paid_amount():
    assert impacts.realized_inflow(_tx(TransactionType.SALE, paid_amount=Decimal("40"))) == Decimal("40")


def test_realized_inflow_falls_back_to_amount_unless_credit():
    assert impacts.realized_inflow(_tx(TransactionType.SALE, paid_amount=Decimal("0"))) == Decimal("100")
    assert impacts.realized_inflow(_tx(TransactionType.SALE, payment_method=PaymentMethod.CREDIT)) == Decimal("0")


def test_credit_impact_charges_full_amount_on_credit():
    tx = _tx(TransactionType.SALE, "500", payment_method=PaymentMethod.CREDIT, balance_due=Decimal("7"))
    assert impacts.credit_impact(tx) == Decimal("500")


def test_credit_impact_uses_balance_due_otherwise():
    assert impacts.credit_impact(_tx(TransactionType.SALE, balance_due=Decimal("30"))) == Decimal("30")


def test_credit_impact_of_payment_is_negative():
    assert impacts.credit_impact(_tx(TransactionType.CREDIT_PAYMENT, "200")) == Decimal("-200")


def test_vendor_impact_by_type():
    assert impacts.vendor_impact(_tx(TransactionType.PURCHASE, payment_method=PaymentMethod.CREDIT)) == Decimal("100")
    assert impacts.vendor_impact(_tx(TransactionType.PURCHASE)) == Decimal("100")
    assert impacts.vendor_impact(_tx(TransactionType.CREDIT_PAYMENT, "300")) == Decimal("-300")
    assert impacts.vendor_impact(_tx(TransactionType.EXPENSE)) == Decimal("0")


# ---------------------------------------------------------------------------
# Keyed impacts
# ---------------------------------------------------------------------------


def test_drafts_and_missing_transactions_have_no_impact():
    draft = _tx(TransactionType.SALE, customer_id="C1", status=TransactionStatus.DRAFT, balance_due=Decimal("5"))

    assert impacts.customer_impacts(draft) == {}
    assert impacts.account_impacts(draft) == {}
    assert impacts.account_impacts(None) == {}


def test_account_impacts_by_type():
    assert impacts.account_impacts(_tx(TransactionType.SALE)) == {"cash": Decimal("100")}
    assert impacts.account_impacts(_tx(TransactionType.EXPENSE)) == {"cash": Decimal("-100")}
    assert impacts.account_impacts(_tx(TransactionType.PURCHASE)) == {"cash": Decimal("-100")}
    assert impacts.account_impacts(_tx(TransactionType.PURCHASE, payment_method=PaymentMethod.CREDIT)) == {}
    assert impacts.account_impacts(_tx(TransactionType.CREDIT_PAYMENT, customer_id="C1")) == {"cash": Decimal("100")}
    assert impacts.account_impacts(_tx(TransactionType.CREDIT_PAYMENT, vendor_id="V1")) == {"cash": Decimal("-100")}


def test_transfer_moves_value_between_accounts():
    tx = _tx(TransactionType.TRANSFER, "75", account_id="bank", destination_account_id="cash")
    assert impacts.account_impacts(tx) == {"bank": Decimal("-75"), "cash": Decimal("75")}


def test_cash_transaction_without_account_lands_in_drawer():
    tx = _tx(TransactionType.SALE, account_id=None)
    assert impacts.account_impacts(tx, cash_account_id="till") == {"till": Decimal("100")}


def test_card_transaction_without_account_has_no_account_impact():
    assert impacts.account_impacts(_tx(TransactionType.SALE, account_id=None, payment_method=PaymentMethod.CARD)) == {}


def test_parent_link_only_for_customer_payments():
    payment = _tx(TransactionType.CREDIT_PAYMENT, "200", customer_id="C1", parent_tx_id="INV1")

    assert impacts.parent_link_impacts(payment) == {"INV1": Decimal("200")}
    assert impacts.parent_link_impacts(replace(payment, customer_id=None, vendor_id="V1")) == {}


def test_stock_changes_resolve_alias_and_kind_per_item():
    snapshot = LedgerSnapshot.from_records(
        products=[
            Product("P1", "RICE", "RICE", "CAT-G", Decimal("60"), Decimal("100"), kind=ProductKind.STANDARD),
            Product("R1", "RELOAD", "RLD", "CAT-R", Decimal("0"), Decimal("1")),
        ],
        categories=[Category("CAT-R", "Hot Reload")],
    )
    sale = _tx(
        TransactionType.SALE,
        branch_id="SHOP 2",
        items=(
            LineItem("P1", Decimal("2"), Decimal("100")),
            LineItem("P1", Decimal("1"), Decimal("100")),
            LineItem("R1", Decimal("100"), Decimal("1")),
        ),
    )

    assert impacts.stock_changes(sale, snapshot) == {
        ("P1", "CASHIER 1"): Decimal("-3"),
        ("R1", "CASHIER 1"): Decimal("-96"),
    }


def test_stock_changes_ignore_non_sales():
    snapshot = LedgerSnapshot()
    purchase = _tx(TransactionType.PURCHASE, items=(LineItem("P1", Decimal("1"), Decimal("1")),))
    assert impacts.stock_changes(purchase, snapshot) == {}


def test_net_change_drops_zero_deltas_and_keeps_new_keys():
    old = {"a": Decimal("5"), "b": Decimal("2")}
    new = {"a": Decimal("5"), "c": Decimal("1")}

    assert impacts.net_change(old, new) == {"b": Decimal("-2"), "c": Decimal("1")}


def test_reassigning_customer_reverses_old_and_charges_new():
    old = _tx(TransactionType.SALE, "50", payment_method=PaymentMethod.CREDIT, customer_id="C1")
    new = replace(old, customer_id="C2")

    delta = impacts.net_change(impacts.customer_impacts(old), impacts.customer_impacts(new))

    assert delta == {"C1": Decimal("-50"), "C2": Decimal("50")}
