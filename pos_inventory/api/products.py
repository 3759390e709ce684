from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from pos_inventory.api.deps import get_cache, get_projector, page_out
from pos_inventory.cache import ReadThroughCache
from pos_inventory.database import get_db
from pos_inventory.errors import NotFoundError
from pos_inventory.schemas.product import (
    CostBasisOut,
    ProductCreate,
    ProductOut,
    ProductPage,
    ProductUpdate,
    VariantCreate,
    VariantOut,
    VariantPage,
    VariantUpdate,
)
from pos_inventory.services import cost_service, product_service, report_service
from pos_inventory.services.stock_service import ScanStockProjector

router = APIRouter(prefix="/products", tags=["Products"])


@router.post("", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    try:
        return product_service.create_product(db, data)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("", response_model=ProductPage)
def list_products(
    cursor: str | None = None,
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_cache),
):
    try:
        page = product_service.list_products(db, cursor=cursor, cache=cache)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return page_out(ProductPage, ProductOut, page)


@router.get("/low-stock")
def low_stock(
    product_id: str | None = None,
    db: Session = Depends(get_db),
    projector: ScanStockProjector = Depends(get_projector),
):
    try:
        return report_service.low_stock(db, projector=projector, product_id=product_id)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/barcode/lookup", response_model=VariantOut)
def barcode_lookup(code: str = Query(..., description="Barcode scanned at the till"), db: Session = Depends(get_db)):
    variant = product_service.get_variant_by_barcode(db, code)
    if not variant:
        raise HTTPException(404, "Variant not found")
    return variant


@router.get("/variants/{variant_id}", response_model=VariantOut)
def get_variant(variant_id: str, db: Session = Depends(get_db)):
    try:
        return product_service.get_variant(db, variant_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.patch("/variants/{variant_id}", response_model=VariantOut)
def update_variant(variant_id: str, data: VariantUpdate, db: Session = Depends(get_db)):
    try:
        return product_service.update_variant(db, variant_id, data)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/variants/{variant_id}/refresh-cost", response_model=VariantOut)
def refresh_variant_cost(variant_id: str, db: Session = Depends(get_db)):
    """Recompute the weighted-average cost from all purchases and store it on the variant."""
    try:
        return cost_service.refresh_variant_cost(db, variant_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    try:
        return product_service.get_product(db, product_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(product_id: str, data: ProductUpdate, db: Session = Depends(get_db)):
    try:
        return product_service.update_product(db, product_id, data)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/{product_id}/cost", response_model=CostBasisOut)
def get_product_cost(product_id: str, db: Session = Depends(get_db)):
    """Current weighted-average cost. ``cost_per_ml`` is null when nothing has been purchased."""
    try:
        return cost_service.compute_product_cost(db, product_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/{product_id}/refresh-cost", response_model=list[VariantOut])
def refresh_product_costs(product_id: str, db: Session = Depends(get_db)):
    try:
        return cost_service.refresh_product_costs(db, product_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/{product_id}/variants", response_model=VariantOut, status_code=201)
def create_variant(product_id: str, data: VariantCreate, db: Session = Depends(get_db)):
    try:
        return product_service.create_variant(db, product_id, data)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/{product_id}/variants", response_model=VariantPage)
def list_variants(
    product_id: str,
    cursor: str | None = None,
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_cache),
):
    try:
        page = product_service.list_variants(db, product_id=product_id, cursor=cursor, cache=cache)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return page_out(VariantPage, VariantOut, page)
