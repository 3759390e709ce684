"""
Tests for pos_inventory.services.cost_service: weighted-average cost per ml.
"""
import itertools
from types import SimpleNamespace

import pytest

from conftest import BASE_TIME, add_purchases, new_id
from pos_inventory.errors import NotFoundError
from pos_inventory.models.vendor import VendorPurchase
from pos_inventory.pagination import CursorPager
from pos_inventory.schemas.product import ProductCreate, VariantCreate, VariantUpdate
from pos_inventory.services import cost_service, product_service
from pos_inventory.services.cost_service import ML_PER_LITER, weighted_average


def _purchase(volume, price):
    return SimpleNamespace(volume_liter=volume, price_per_liter=price)


class TestWeightedAverage:
    def test_two_purchases(self):
        basis = weighted_average("p", [_purchase(1.0, 2_400_000), _purchase(0.5, 2_320_000)])

        assert basis.total_cost == pytest.approx(3_560_000)
        assert basis.total_volume_liter == pytest.approx(1.5)
        assert basis.cost_per_ml == pytest.approx(2373.33, abs=0.01)
        assert basis.purchase_count == 2

    def test_no_purchases_is_undefined(self):
        basis = weighted_average("p", [])
        assert basis.cost_per_ml is None
        assert not basis.is_defined

    def test_zero_volume_is_undefined(self):
        basis = weighted_average("p", [_purchase(0.0, 1000.0)])
        assert basis.cost_per_ml is None
        assert basis.total_cost == 0

    def test_result_does_not_depend_on_order(self):
        purchases = [_purchase(0.1, 3_100_000.7), _purchase(2.3, 1_999_999.9), _purchase(0.7, 2_450_000.3)]
        results = {weighted_average("p", perm).cost_per_ml for perm in itertools.permutations(purchases)}
        assert len(results) == 1

    def test_free_purchases_lower_the_average(self):
        basis = weighted_average("p", [_purchase(1.0, 2000.0 * ML_PER_LITER), _purchase(1.0, 0.0)])
        assert basis.cost_per_ml == pytest.approx(1000.0)


class TestComputeProductCost:
    def test_folds_stored_purchases(self, db, vendor, product):
        add_purchases(db, vendor.id, product.id, [(1.0, 2_400_000), (0.5, 2_320_000)])

        basis = cost_service.compute_product_cost(db, product.id)

        assert basis.product_id == product.id
        assert basis.cost_per_ml == pytest.approx(2373.33, abs=0.01)

    def test_only_this_products_purchases(self, db, vendor, product):
        other = product_service.create_product(db, ProductCreate(name="Oud Wood"))
        add_purchases(db, vendor.id, product.id, [(1.0, 1_000_000)])
        add_purchases(db, vendor.id, other.id, [(1.0, 9_000_000)])

        assert cost_service.compute_product_cost(db, product.id).cost_per_ml == pytest.approx(1000.0)

    def test_many_pages_of_purchases(self, db, vendor, product):
        add_purchases(db, vendor.id, product.id, [(0.25, 2_000_000)] * 30)
        pager = CursorPager(VendorPurchase, order_by="purchased_at", page_size=12)

        basis = cost_service.compute_product_cost(db, product.id, pager=pager)

        assert basis.purchase_count == 30
        assert basis.cost_per_ml == pytest.approx(2000.0)

    def test_unknown_product(self, db):
        with pytest.raises(NotFoundError):
            cost_service.compute_product_cost(db, new_id())


class TestVariantCost:
    def test_new_variant_without_purchases_has_no_cost(self, db, product):
        variant = product_service.create_variant(db, product.id, VariantCreate(bottle_size_ml=10))
        assert variant.cost_per_ml is None
        assert variant.unit_cost is None

    def test_new_variant_is_costed_from_history(self, db, vendor, product):
        add_purchases(db, vendor.id, product.id, [(1.0, 2_400_000), (0.5, 2_320_000)])

        variant = product_service.create_variant(db, product.id, VariantCreate(bottle_size_ml=10))

        assert variant.cost_per_ml == pytest.approx(2373.33, abs=0.01)
        assert variant.unit_cost == pytest.approx(23733.33, abs=0.1)

    def test_refresh_is_idempotent(self, db, vendor, product, variant):
        add_purchases(db, vendor.id, product.id, [(1.0, 2_400_000), (0.5, 2_320_000)])

        first = cost_service.refresh_variant_cost(db, variant.id).cost_per_ml
        second = cost_service.refresh_variant_cost(db, variant.id).cost_per_ml

        assert first == second

    def test_new_purchase_changes_existing_variant_after_refresh(self, db, vendor, product, variant):
        add_purchases(db, vendor.id, product.id, [(1.0, 2_000_000)])
        cost_service.refresh_variant_cost(db, variant.id)
        assert variant.cost_per_ml == pytest.approx(2000.0)

        add_purchases(db, vendor.id, product.id, [(1.0, 3_000_000)], start=BASE_TIME.replace(hour=12))
        # Stored cost only moves on refresh
        assert variant.cost_per_ml == pytest.approx(2000.0)

        cost_service.refresh_variant_cost(db, variant.id)
        assert variant.cost_per_ml == pytest.approx(2500.0)

    def test_refresh_product_costs_every_variant(self, db, vendor, product, variant):
        second = product_service.create_variant(db, product.id, VariantCreate(bottle_size_ml=50))
        add_purchases(db, vendor.id, product.id, [(2.0, 1_500_000)])

        updated = cost_service.refresh_product_costs(db, product.id)

        assert {v.id for v in updated} == {variant.id, second.id}
        assert all(v.cost_per_ml == pytest.approx(1500.0) for v in updated)

    def test_catalog_update_keeps_cost(self, db, vendor, product, variant):
        add_purchases(db, vendor.id, product.id, [(1.0, 2_000_000)])
        cost_service.refresh_variant_cost(db, variant.id)

        updated = product_service.update_variant(db, variant.id, VariantUpdate(price=99_000))

        assert updated.price == 99_000
        assert updated.cost_per_ml == pytest.approx(2000.0)
