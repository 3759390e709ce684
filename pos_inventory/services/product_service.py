import logging
import math

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pos_inventory.cache import ReadThroughCache
from pos_inventory.errors import FetchError, ValidationError
from pos_inventory.models.inventory_movement import VariantStockTotal
from pos_inventory.models.product import Product, Variant
from pos_inventory.pagination import CursorPager, Page
from pos_inventory.schemas.product import ProductCreate, ProductUpdate, VariantCreate, VariantUpdate
from pos_inventory.services import cost_service
from pos_inventory.services.lookups import load_one, validate_id

logger = logging.getLogger(__name__)

product_pager = CursorPager(Product, order_by="created_at")
variant_pager = CursorPager(Variant, order_by="created_at")


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError(f"{what} conflicts with an existing record") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise FetchError(f"Failed to save {what}") from e


def create_product(db: Session, data: ProductCreate) -> Product:
    name = data.name.strip()
    if not name:
        raise ValidationError("Product name is required")
    sku = (data.sku or "").strip() or None
    if sku and db.query(Product).filter(Product.sku == sku).first():
        raise ValidationError(f"Product with SKU {sku} already exists")
    product = Product(name=name, sku=sku, status=data.status)
    db.add(product)
    _commit(db, f"Product {name}")
    db.refresh(product)
    return product


def get_product(db: Session, product_id: str) -> Product:
    return load_one(db, Product, product_id, "Product")


def list_products(db: Session, cursor: str | None = None, cache: ReadThroughCache | None = None) -> Page:
    return product_pager.read_page(db, cache, cursor)


def update_product(db: Session, product_id: str, data: ProductUpdate) -> Product:
    product = get_product(db, product_id)
    update_data = data.model_dump(exclude_unset=True)
    if "name" in update_data:
        update_data["name"] = (update_data["name"] or "").strip()
        if not update_data["name"]:
            raise ValidationError("Product name is required")
    if "sku" in update_data:
        sku = (update_data["sku"] or "").strip() or None
        if sku and db.query(Product).filter(Product.sku == sku, Product.id != product.id).first():
            raise ValidationError(f"Product with SKU {sku} already exists")
        update_data["sku"] = sku
    if "status" in update_data and not update_data["status"]:
        raise ValidationError("Product status is required")
    for field, value in update_data.items():
        setattr(product, field, value)
    _commit(db, f"Product {product.id}")
    db.refresh(product)
    return product


# --- Variant service ---

def normalize_barcode(barcode: str | None) -> str | None:
    """Scanned and typed codes compare without surrounding whitespace."""
    return (barcode or "").strip() or None


def _check_barcode(db: Session, barcode: str | None, exclude_id: str | None = None) -> str | None:
    barcode = normalize_barcode(barcode)
    if barcode is None:
        return None
    q = db.query(Variant).filter(Variant.barcode == barcode)
    if exclude_id:
        q = q.filter(Variant.id != exclude_id)
    if q.first():
        raise ValidationError(f"Barcode {barcode} is already assigned to another variant")
    return barcode


def create_variant(db: Session, product_id: str, data: VariantCreate) -> Variant:
    """Create a variant and cost it from the product's purchase history."""
    product = get_product(db, product_id)
    if not math.isfinite(data.bottle_size_ml) or data.bottle_size_ml <= 0:
        raise ValidationError("bottle_size_ml must be a positive number")
    if not math.isfinite(data.price) or data.price < 0:
        raise ValidationError("price must be a non-negative number")
    if data.min_stock < 0:
        raise ValidationError("min_stock cannot be negative")
    barcode = _check_barcode(db, data.barcode)

    basis = cost_service.compute_product_cost(db, product.id)

    variant = Variant(
        product_id=product.id,
        bottle_size_ml=data.bottle_size_ml,
        unit_label=data.unit_label or "ml",
        barcode=barcode,
        price=data.price,
        min_stock=data.min_stock,
        cost_per_ml=basis.cost_per_ml,
    )
    db.add(variant)
    db.flush()
    db.add(VariantStockTotal(variant_id=variant.id, total_in=0, total_out=0))
    _commit(db, f"Variant of product {product.id}")
    db.refresh(variant)
    logger.info("Created variant %s for product %s (cost_per_ml=%s)", variant.id, product.id, variant.cost_per_ml)
    return variant


def get_variant(db: Session, variant_id: str) -> Variant:
    return load_one(db, Variant, variant_id, "Variant")


def get_variant_by_barcode(db: Session, barcode: str) -> Variant | None:
    barcode = normalize_barcode(barcode)
    if barcode is None:
        return None
    return db.query(Variant).filter(Variant.barcode == barcode).first()


def list_variants(
    db: Session,
    product_id: str | None = None,
    cursor: str | None = None,
    cache: ReadThroughCache | None = None,
) -> Page:
    filters = {}
    if product_id:
        filters["product_id"] = validate_id(product_id, "Product")
    return variant_pager.read_page(db, cache, cursor, **filters)


def update_variant(db: Session, variant_id: str, data: VariantUpdate) -> Variant:
    """Update catalog fields. ``cost_per_ml`` only changes through a cost refresh."""
    variant = get_variant(db, variant_id)
    update_data = data.model_dump(exclude_unset=True)
    size = update_data.get("bottle_size_ml")
    if "bottle_size_ml" in update_data and (size is None or not math.isfinite(size) or size <= 0):
        raise ValidationError("bottle_size_ml must be a positive number")
    price = update_data.get("price")
    if price is not None and (not math.isfinite(price) or price < 0):
        raise ValidationError("price must be a non-negative number")
    if (update_data.get("min_stock") or 0) < 0:
        raise ValidationError("min_stock cannot be negative")
    if "barcode" in update_data:
        update_data["barcode"] = _check_barcode(db, update_data["barcode"], exclude_id=variant.id)
    for field, value in update_data.items():
        if value is None and field != "barcode":
            continue
        setattr(variant, field, value)
    _commit(db, f"Variant {variant.id}")
    db.refresh(variant)
    return variant
