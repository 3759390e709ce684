import logging
import math

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pos_inventory.cache import ReadThroughCache
from pos_inventory.database import utcnow
from pos_inventory.errors import FetchError, ValidationError
from pos_inventory.models.product import Product
from pos_inventory.models.vendor import Vendor, VendorPurchase
from pos_inventory.pagination import CursorPager, Page
from pos_inventory.schemas.vendor import DeliveryCreate, VendorCreate, VendorUpdate
from pos_inventory.services.cost_service import purchase_pager
from pos_inventory.services.lookups import load_one, require_existing, validate_id

logger = logging.getLogger(__name__)

vendor_pager = CursorPager(Vendor, order_by="created_at")


def create_vendor(db: Session, data: VendorCreate) -> Vendor:
    name = data.name.strip()
    if not name:
        raise ValidationError("Vendor name is required")
    if db.query(Vendor).filter(Vendor.name == name).first():
        raise ValidationError(f"Vendor {name} already exists")
    vendor = Vendor(name=name, contact=data.contact, notes=data.notes)
    db.add(vendor)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError(f"Vendor {name} already exists") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise FetchError(f"Failed to save vendor {name}") from e
    db.refresh(vendor)
    return vendor


def get_vendor(db: Session, vendor_id: str) -> Vendor:
    return load_one(db, Vendor, vendor_id, "Vendor")


def list_vendors(db: Session, cursor: str | None = None, cache: ReadThroughCache | None = None) -> Page:
    return vendor_pager.read_page(db, cache, cursor)


def update_vendor(db: Session, vendor_id: str, data: VendorUpdate) -> Vendor:
    vendor = get_vendor(db, vendor_id)
    update_data = data.model_dump(exclude_unset=True)
    if "name" in update_data:
        name = (update_data["name"] or "").strip()
        if not name:
            raise ValidationError("Vendor name is required")
        if db.query(Vendor).filter(Vendor.name == name, Vendor.id != vendor.id).first():
            raise ValidationError(f"Vendor {name} already exists")
        update_data["name"] = name
    for field, value in update_data.items():
        setattr(vendor, field, value if value is not None else "")
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError(f"Vendor {vendor_id} conflicts with an existing vendor") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise FetchError(f"Failed to save vendor {vendor_id}") from e
    db.refresh(vendor)
    return vendor


def record_delivery(db: Session, vendor_id: str, data: DeliveryCreate) -> list[VendorPurchase]:
    """Append every line of one delivery in a single transaction.

    All lines are validated before anything is written. If any line is
    invalid, or the commit fails, no purchase from the delivery is stored.
    """
    vendor = get_vendor(db, vendor_id)
    vendor_id = vendor.id
    if not data.lines:
        raise ValidationError("A delivery needs at least one purchase line")

    for i, line in enumerate(data.lines, start=1):
        if not math.isfinite(line.volume_liter) or line.volume_liter <= 0:
            raise ValidationError(f"Line {i}: volume_liter must be a positive number")
        if not math.isfinite(line.price_per_liter) or line.price_per_liter < 0:
            raise ValidationError(f"Line {i}: price_per_liter must be a non-negative number")
    product_ids = [line.product_id for line in data.lines]
    require_existing(db, Product, product_ids, "Product")

    # Lines of one delivery share a timestamp; the pager orders them by id
    purchased_at = utcnow()
    purchases = [
        VendorPurchase(
            vendor_id=vendor_id,
            product_id=validate_id(line.product_id, "Product"),
            volume_liter=line.volume_liter,
            price_per_liter=line.price_per_liter,
            purchased_at=purchased_at,
        )
        for line in data.lines
    ]
    db.add_all(purchases)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Delivery from vendor %s rolled back: %s", vendor_id, e)
        raise FetchError(f"Failed to record delivery from vendor {vendor_id}") from e

    for p in purchases:
        db.refresh(p)
    logger.info(
        "Recorded delivery from vendor %s: %d lines, %.3f L",
        vendor_id,
        len(purchases),
        sum(p.volume_liter for p in purchases),
    )
    return purchases


def list_purchases(
    db: Session,
    vendor_id: str | None = None,
    product_id: str | None = None,
    cursor: str | None = None,
    cache: ReadThroughCache | None = None,
) -> Page:
    filters = {}
    if vendor_id:
        filters["vendor_id"] = validate_id(vendor_id, "Vendor")
    if product_id:
        filters["product_id"] = validate_id(product_id, "Product")
    return purchase_pager.read_page(db, cache, cursor, **filters)
