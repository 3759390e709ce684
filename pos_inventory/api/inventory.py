from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from pos_inventory.api.deps import get_cache, get_projector, page_out
from pos_inventory.cache import ReadThroughCache
from pos_inventory.database import get_db
from pos_inventory.errors import NotFoundError
from pos_inventory.schemas.inventory import (
    MovementCreate,
    MovementOut,
    MovementPage,
    MovementRecorded,
    MovementReverse,
    StockOut,
    StockQuery,
)
from pos_inventory.services import stock_service
from pos_inventory.services.stock_service import ScanStockProjector

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.post("/variants/{variant_id}/movements", response_model=MovementRecorded, status_code=201)
def record_movement(variant_id: str, data: MovementCreate, db: Session = Depends(get_db)):
    try:
        movement = stock_service.record_movement(db, variant_id, data.direction, data.quantity, data.reason)
        # Read back without the cache so the caller sees its own write
        on_hand = stock_service.get_stock(db, movement.variant_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return MovementRecorded(movement=MovementOut.model_validate(movement), on_hand=on_hand)


@router.post("/movements/{movement_id}/reverse", response_model=MovementRecorded, status_code=201)
def reverse_movement(movement_id: str, data: MovementReverse, db: Session = Depends(get_db)):
    try:
        movement = stock_service.reverse_movement(db, movement_id, data.reason)
        on_hand = stock_service.get_stock(db, movement.variant_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return MovementRecorded(movement=MovementOut.model_validate(movement), on_hand=on_hand)


@router.get("/movements", response_model=MovementPage)
def list_movements(
    variant_id: str | None = None,
    cursor: str | None = None,
    db: Session = Depends(get_db),
    cache: ReadThroughCache = Depends(get_cache),
):
    try:
        page = stock_service.list_movements(db, variant_id=variant_id, cursor=cursor, cache=cache)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return page_out(MovementPage, MovementOut, page)


@router.get("/variants/{variant_id}/stock", response_model=StockOut)
def get_stock(
    variant_id: str,
    db: Session = Depends(get_db),
    projector: ScanStockProjector = Depends(get_projector),
):
    """Stock folded from the full ledger. May lag recent writes by up to the cache TTL."""
    try:
        on_hand = stock_service.get_stock(db, variant_id, projector=projector)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return StockOut(variant_id=variant_id, on_hand=on_hand)


@router.post("/stock", response_model=list[StockOut])
def get_stock_batch(
    query: StockQuery,
    db: Session = Depends(get_db),
    projector: ScanStockProjector = Depends(get_projector),
):
    try:
        stock = projector.current_stock(db, query.variant_ids)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return [StockOut(variant_id=variant_id, on_hand=on_hand) for variant_id, on_hand in stock.items()]
