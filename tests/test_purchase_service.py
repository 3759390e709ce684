"""
Tests for pos_inventory.services.purchase_service: vendors and deliveries.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import new_id
from pos_inventory.errors import FetchError, NotFoundError, ValidationError
from pos_inventory.models.vendor import VendorPurchase
from pos_inventory.schemas.vendor import DeliveryCreate, PurchaseLineCreate, VendorCreate, VendorUpdate
from pos_inventory.services import purchase_service


def _count(db):
    return db.scalar(select(func.count()).select_from(VendorPurchase))


def _delivery(*lines):
    return DeliveryCreate(
        lines=[PurchaseLineCreate(product_id=p, volume_liter=v, price_per_liter=c) for p, v, c in lines]
    )


class TestVendors:
    def test_create_vendor(self, db):
        vendor = purchase_service.create_vendor(db, VendorCreate(name="  Essence Co  ", contact="0901"))
        assert vendor.name == "Essence Co"
        assert purchase_service.get_vendor(db, vendor.id).contact == "0901"

    def test_duplicate_vendor_rejected(self, db, vendor):
        with pytest.raises(ValidationError):
            purchase_service.create_vendor(db, VendorCreate(name="Vendor A"))

    def test_blank_name_rejected(self, db):
        with pytest.raises(ValidationError):
            purchase_service.create_vendor(db, VendorCreate(name="   "))

    def test_unknown_vendor(self, db):
        with pytest.raises(NotFoundError):
            purchase_service.get_vendor(db, new_id())

    def test_update_vendor(self, db, vendor):
        updated = purchase_service.update_vendor(db, vendor.id, VendorUpdate(name=" Vendor A1 ", contact="0902"))

        assert updated.name == "Vendor A1"
        assert updated.contact == "0902"
        assert updated.notes == ""

    def test_update_vendor_keeps_own_name(self, db, vendor):
        assert purchase_service.update_vendor(db, vendor.id, VendorUpdate(name="Vendor A")).name == "Vendor A"

    def test_update_vendor_name_taken(self, db, vendor):
        purchase_service.create_vendor(db, VendorCreate(name="Vendor B"))
        with pytest.raises(ValidationError):
            purchase_service.update_vendor(db, vendor.id, VendorUpdate(name="Vendor B"))
        assert purchase_service.get_vendor(db, vendor.id).name == "Vendor A"

    def test_update_vendor_blank_name(self, db, vendor):
        with pytest.raises(ValidationError):
            purchase_service.update_vendor(db, vendor.id, VendorUpdate(name=""))


class TestRecordDelivery:
    def test_lines_stored_with_one_timestamp(self, db, vendor, product):
        purchases = purchase_service.record_delivery(
            db, vendor.id, _delivery((product.id, 1.0, 2_400_000), (product.id, 0.5, 2_320_000))
        )

        assert len(purchases) == 2
        assert len({p.purchased_at for p in purchases}) == 1
        assert _count(db) == 2
        assert sum(p.amount for p in purchases) == pytest.approx(3_560_000)

    def test_unknown_product_writes_nothing(self, db, vendor, product):
        with pytest.raises(NotFoundError):
            purchase_service.record_delivery(
                db, vendor.id, _delivery((product.id, 1.0, 100.0), (new_id(), 1.0, 100.0))
            )
        assert _count(db) == 0

    @pytest.mark.parametrize(
        "volume, price",
        [
            (0.0, 100.0),
            (-1.0, 100.0),
            (1.0, -5.0),
            (float("nan"), 100.0),
            (float("inf"), 100.0),
            (1.0, float("nan")),
            (1.0, float("inf")),
        ],
    )
    def test_invalid_line_writes_nothing(self, db, vendor, product, volume, price):
        with pytest.raises(ValidationError):
            purchase_service.record_delivery(
                db, vendor.id, _delivery((product.id, 1.0, 100.0), (product.id, volume, price))
            )
        assert _count(db) == 0

    def test_free_goods_allowed(self, db, vendor, product):
        purchases = purchase_service.record_delivery(db, vendor.id, _delivery((product.id, 0.2, 0.0)))
        assert purchases[0].amount == 0

    def test_empty_delivery_rejected(self, db, vendor):
        with pytest.raises(ValidationError):
            purchase_service.record_delivery(db, vendor.id, DeliveryCreate(lines=[]))

    def test_unknown_vendor(self, db, product):
        with pytest.raises(NotFoundError):
            purchase_service.record_delivery(db, new_id(), _delivery((product.id, 1.0, 1.0)))

    def test_failed_commit_rolls_back_every_line(self, db, vendor, product, monkeypatch):
        def broken_commit():
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(db, "commit", broken_commit)
        with pytest.raises(FetchError):
            purchase_service.record_delivery(
                db, vendor.id, _delivery((product.id, 1.0, 100.0), (product.id, 2.0, 200.0))
            )
        monkeypatch.undo()

        assert _count(db) == 0


class TestListPurchases:
    def test_filter_by_product(self, db, vendor, product):
        other = purchase_service.create_vendor(db, VendorCreate(name="Vendor B"))
        purchase_service.record_delivery(db, vendor.id, _delivery((product.id, 1.0, 10.0)))
        purchase_service.record_delivery(db, other.id, _delivery((product.id, 2.0, 20.0)))

        by_product = purchase_service.list_purchases(db, product_id=product.id)
        by_vendor = purchase_service.list_purchases(db, vendor_id=other.id)

        assert len(by_product.items) == 2
        assert [p.volume_liter for p in by_vendor.items] == [2.0]

    def test_malformed_vendor_id(self, db):
        with pytest.raises(ValidationError):
            purchase_service.list_purchases(db, vendor_id="vendor-a")
