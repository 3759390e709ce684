from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pos_inventory.api.deps import get_cache, page_out
from pos_inventory.cache import ReadThroughCache
from pos_inventory.database import get_db
from pos_inventory.errors import NotFoundError
from pos_inventory.schemas.vendor import (
    DeliveryCreate,
    PurchaseOut,
    PurchasePage,
    VendorCreate,
    VendorOut,
    VendorPage,
    VendorUpdate,
)
from pos_inventory.services import purchase_service

router = APIRouter(prefix="/vendors", tags=["Vendors"])


@router.post("", response_model=VendorOut, status_code=201)
def create_vendor(data: VendorCreate, db: Session = Depends(get_db)):
    try:
        return purchase_service.create_vendor(db, data)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("", response_model=VendorPage)
def list_vendors(
    cursor: str | None = None,
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_cache),
):
    try:
        page = purchase_service.list_vendors(db, cursor=cursor, cache=cache)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return page_out(VendorPage, VendorOut, page)


@router.get("/purchases", response_model=PurchasePage)
def list_purchases(
    vendor_id: str | None = None,
    product_id: str | None = None,
    cursor: str | None = None,
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_cache),
):
    try:
        page = purchase_service.list_purchases(
            db, vendor_id=vendor_id, product_id=product_id, cursor=cursor, cache=cache
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    return page_out(PurchasePage, PurchaseOut, page)


@router.get("/{vendor_id}", response_model=VendorOut)
def get_vendor(vendor_id: str, db: Session = Depends(get_db)):
    try:
        return purchase_service.get_vendor(db, vendor_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.patch("/{vendor_id}", response_model=VendorOut)
def update_vendor(vendor_id: str, data: VendorUpdate, db: Session = Depends(get_db)):
    try:
        return purchase_service.update_vendor(db, vendor_id, data)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/{vendor_id}/deliveries", response_model=list[PurchaseOut], status_code=201)
def record_delivery(vendor_id: str, data: DeliveryCreate, db: Session = Depends(get_db)):
    """Record every purchase line of one delivery, or none of them."""
    try:
        return purchase_service.record_delivery(db, vendor_id, data)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
