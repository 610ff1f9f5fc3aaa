"""Stock arithmetic shared by every operation that touches inventory.

Two product kinds exist. STANDARD goods are counted in units and can never go
below zero. RELOAD goods (mobile top-ups and similar wallet value) are stocked
as money at supplier cost, so a sale deducts ``price * quantity * 0.96`` and
the balance is allowed to go negative until the wallet is topped up.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from .constants import (
    DEFAULT_BRANCH_ALIASES,
    DEFAULT_MASTER_BRANCH,
    RELOAD_COST_RATIO,
    RELOAD_TOKEN,
    ProductKind,
)
from .models import ZERO, Category, LineItem, Product
from .snapshot import LedgerSnapshot


@dataclass(frozen=True)
class KindBehavior:
    """Rules that differ between product kinds."""

    deduction: Callable[[LineItem], Decimal]
    clamp_at_zero: bool
    fallback_unit_cost: Callable[[LineItem], Decimal]


KIND_BEHAVIORS: Mapping[ProductKind, KindBehavior] = {
    ProductKind.STANDARD: KindBehavior(
        deduction=lambda item: item.quantity,
        clamp_at_zero=True,
        fallback_unit_cost=lambda item: ZERO,
    ),
    ProductKind.RELOAD: KindBehavior(
        deduction=lambda item: item.price * item.quantity * RELOAD_COST_RATIO,
        clamp_at_zero=False,
        fallback_unit_cost=lambda item: item.price * RELOAD_COST_RATIO,
    ),
}


def resolve_stock_branch(
    branch: Optional[str],
    *,
    master: str = DEFAULT_MASTER_BRANCH,
    aliases: Sequence[str] = DEFAULT_BRANCH_ALIASES,
) -> str:
    """Return the branch whose stock bucket a transaction draws from.

    Aliases of the master branch share its inventory. Matching ignores case
    and surrounding whitespace; a blank branch resolves to the master.

    Args:
        branch (str | None): Branch recorded on the transaction.
        master (str): Name of the branch holding shared inventory.
        aliases (Sequence[str]): Names that resolve to ``master``.

    Returns:
        str: ``master`` for blanks and aliases, otherwise ``branch`` trimmed.
    """

    name = (branch or "").strip()
    if not name:
        return master
    folded = name.upper()
    if folded == master.strip().upper():
        return master
    if folded in {alias.strip().upper() for alias in aliases}:
        return master
    return name


def classify(category_id: Optional[str], category: Optional[Category]) -> ProductKind:
    """Derive the kind from a category name or, failing that, its id."""

    if category is not None and RELOAD_TOKEN in (category.name or "").upper():
        return ProductKind.RELOAD
    if RELOAD_TOKEN in (category_id or "").upper():
        return ProductKind.RELOAD
    return ProductKind.STANDARD


def product_kind(product: Product, category: Optional[Category]) -> ProductKind:
    """Return the stored kind, deriving it for legacy products without one."""

    if product.kind is not None:
        return product.kind
    return classify(product.category_id, category)


def kind_of(snapshot: LedgerSnapshot, product: Product) -> ProductKind:
    return product_kind(product, snapshot.category_for(product))


def deduction_amount(item: LineItem, kind: ProductKind) -> Decimal:
    return KIND_BEHAVIORS[kind].deduction(item)


def apply_stock_delta(product: Product, branch: str, signed_amount: Decimal, kind: ProductKind) -> Product:
    """Return ``product`` with ``signed_amount`` added to one branch bucket.

    A product that has no entry for ``branch`` starts from its legacy
    aggregate ``stock``. STANDARD stock is clamped at zero on downward moves;
    RELOAD stock is not. ``stock`` is recomputed from the buckets.
    """

    buckets: Dict[str, Decimal] = dict(product.branch_stocks)
    current = buckets.get(branch, product.stock)
    updated = current + signed_amount
    if signed_amount < ZERO and KIND_BEHAVIORS[kind].clamp_at_zero and updated < ZERO:
        updated = ZERO
    buckets[branch] = updated
    return replace(product, branch_stocks=buckets, stock=sum(buckets.values(), ZERO))


def compute_cost_basis(items: Iterable[LineItem], snapshot: LedgerSnapshot) -> Decimal:
    """Sum unit cost times quantity over ``items``; unknown products add zero."""

    total = ZERO
    for item in items:
        product = snapshot.product(item.product_id)
        if product is None:
            continue
        unit_cost = product.cost
        if unit_cost == ZERO:
            unit_cost = KIND_BEHAVIORS[kind_of(snapshot, product)].fallback_unit_cost(item)
        total += unit_cost * item.quantity
    return total
