"""Weighted-average purchase cost per milliliter.

The cost basis of a product is folded over its entire purchase history on
every recompute; there is no running average. A purchase recorded today
therefore changes the cost shown for variants created earlier, as soon as
their cost is refreshed. Cost of goods for past sales is not frozen either.

Computing and persisting are separate steps. ``persist_variant_cost`` writes
whatever it is given, so refreshing twice over unchanged purchases writes the
same value twice.
"""
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_inventory.cache import ReadThroughCache
from pos_inventory.errors import FetchError
from pos_inventory.models.product import Product, Variant
from pos_inventory.models.vendor import VendorPurchase
from pos_inventory.pagination import CursorPager
from pos_inventory.services.lookups import load_one

logger = logging.getLogger(__name__)

# Purchases are priced per liter, variants are costed per milliliter
ML_PER_LITER = 1000

purchase_pager = CursorPager(VendorPurchase, order_by="purchased_at")


@dataclass(frozen=True)
class CostBasis:
    product_id: str
    purchase_count: int
    total_volume_liter: float
    total_cost: float
    cost_per_ml: float | None

    @property
    def is_defined(self) -> bool:
        return self.cost_per_ml is not None


def weighted_average(product_id: str, purchases: Iterable) -> CostBasis:
    volumes = []
    costs = []
    for p in purchases:
        volumes.append(p.volume_liter)
        costs.append(p.volume_liter * p.price_per_liter)

    # fsum is exact up to the final rounding, so the result does not depend on row order
    total_volume = math.fsum(volumes)
    total_cost = math.fsum(costs)

    if total_volume <= 0:
        cost_per_ml = None
    else:
        cost_per_ml = total_cost / total_volume / ML_PER_LITER

    return CostBasis(
        product_id=product_id,
        purchase_count=len(volumes),
        total_volume_liter=total_volume,
        total_cost=total_cost,
        cost_per_ml=cost_per_ml,
    )


def compute_product_cost(
    db: Session,
    product_id: str,
    pager: CursorPager | None = None,
    cache: ReadThroughCache | None = None,
) -> CostBasis:
    product = load_one(db, Product, product_id, "Product")
    pager = pager or purchase_pager
    basis = weighted_average(product.id, pager.iter_rows(db, cache, product_id=product.id))
    if basis.is_defined:
        logger.info(
            "Cost basis for product %s: %.4f/ml over %d purchases",
            product.id,
            basis.cost_per_ml,
            basis.purchase_count,
        )
    else:
        logger.info("Cost basis for product %s is undefined (no purchase volume)", product.id)
    return basis


def persist_variant_cost(db: Session, variant_id: str, cost_per_ml: float | None) -> Variant:
    variant = load_one(db, Variant, variant_id, "Variant")
    variant.cost_per_ml = cost_per_ml
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise FetchError(f"Failed to store cost for variant {variant_id}") from e
    db.refresh(variant)
    return variant


def refresh_variant_cost(db: Session, variant_id: str) -> Variant:
    variant = load_one(db, Variant, variant_id, "Variant")
    basis = compute_product_cost(db, variant.product_id)
    return persist_variant_cost(db, variant.id, basis.cost_per_ml)


def refresh_product_costs(db: Session, product_id: str) -> list[Variant]:
    """Recompute the product's cost once and store it on every one of its variants."""
    basis = compute_product_cost(db, product_id)
    variant_ids = db.scalars(select(Variant.id).where(Variant.product_id == basis.product_id)).all()
    return [persist_variant_cost(db, variant_id, basis.cost_per_ml) for variant_id in variant_ids]
