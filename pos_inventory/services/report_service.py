from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from pos_inventory.models.inventory_movement import MovementDirection
from pos_inventory.models.product import Product, Variant
from pos_inventory.models.vendor import Vendor
from pos_inventory.services.cost_service import purchase_pager
from pos_inventory.services.lookups import validate_id
from pos_inventory.services.stock_service import ScanStockProjector, movement_pager


def _as_utc(value: datetime | None) -> datetime | None:
    # Ledger timestamps are stored as naive UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _date_range(start_date: datetime | None, end_date: datetime | None) -> dict:
    if start_date and end_date and start_date > end_date:
        raise ValueError("start_date must be <= end_date")
    return {
        "start": start_date.isoformat() if start_date else None,
        "end": end_date.isoformat() if end_date else None,
    }


def _names(db: Session, model, ids: set[str]) -> dict[str, str]:
    if not ids:
        return {}
    return dict(db.execute(select(model.id, model.name).where(model.id.in_(ids))).all())


def purchase_report(
    db: Session,
    vendor_id: str | None = None,
    product_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    start_date, end_date = _as_utc(start_date), _as_utc(end_date)
    date_range = _date_range(start_date, end_date)
    filters = {}
    if vendor_id:
        filters["vendor_id"] = validate_id(vendor_id, "Vendor")
    if product_id:
        filters["product_id"] = validate_id(product_id, "Product")

    purchases = list(purchase_pager.iter_rows(db, since=start_date, until=end_date, **filters))
    product_names = _names(db, Product, {p.product_id for p in purchases})
    vendor_names = _names(db, Vendor, {p.vendor_id for p in purchases})

    rows = [
        {
            "id": p.id,
            "product": product_names.get(p.product_id, "Product"),
            "vendor": vendor_names.get(p.vendor_id, "Vendor"),
            "volume_liter": p.volume_liter,
            "price_per_liter": p.price_per_liter,
            "amount": round(p.volume_liter * p.price_per_liter, 2),
            "date": p.purchased_at.isoformat(),
        }
        for p in purchases
    ]
    return {
        "rows": rows,
        "total_volume_liter": round(sum(p.volume_liter for p in purchases), 3),
        "total_amount": round(sum(r["amount"] for r in rows), 2),
        "date_range": date_range,
    }


def _variant_label(variant: Variant, product_names: dict[str, str]) -> str:
    size = f"{variant.bottle_size_ml:g}{variant.unit_label or 'ml'}"
    return f"{product_names.get(variant.product_id, 'Product')} {size}"


def inventory_movement_report(
    db: Session,
    variant_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    start_date, end_date = _as_utc(start_date), _as_utc(end_date)
    date_range = _date_range(start_date, end_date)
    filters = {}
    if variant_id:
        filters["variant_id"] = validate_id(variant_id, "Variant")

    movements = list(movement_pager.iter_rows(db, since=start_date, until=end_date, **filters))
    variant_ids = {m.variant_id for m in movements}
    variants = {v.id: v for v in db.scalars(select(Variant).where(Variant.id.in_(variant_ids))).all()}
    product_names = _names(db, Product, {v.product_id for v in variants.values()})

    rows = []
    total_in = 0
    total_out = 0
    for m in movements:
        variant = variants.get(m.variant_id)
        if m.direction == MovementDirection.IN:
            total_in += m.quantity
        else:
            total_out += m.quantity
        rows.append(
            {
                "id": m.id,
                "variant": _variant_label(variant, product_names) if variant else m.variant_id,
                "direction": "Stock in" if m.direction == MovementDirection.IN else "Stock out",
                "quantity": m.quantity,
                "reason": m.reason,
                "date": m.created_at.isoformat(),
            }
        )
    return {
        "rows": rows,
        "total_in": total_in,
        "total_out": total_out,
        "date_range": date_range,
    }


def low_stock(db: Session, projector=None, product_id: str | None = None) -> list[dict]:
    """Variants whose current stock is at or below their minimum."""
    projector = projector or ScanStockProjector()
    q = select(Variant)
    if product_id:
        q = q.where(Variant.product_id == validate_id(product_id, "Product"))
    variants = db.scalars(q.order_by(Variant.created_at)).all()
    if not variants:
        return []

    stock = projector.current_stock(db, [v.id for v in variants])
    product_names = _names(db, Product, {v.product_id for v in variants})
    return [
        {
            "variant_id": v.id,
            "label": _variant_label(v, product_names),
            "on_hand": stock[v.id],
            "min_stock": v.min_stock,
        }
        for v in variants
        if stock[v.id] <= v.min_stock
    ]
