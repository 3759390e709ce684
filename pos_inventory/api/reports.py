from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from pos_inventory.database import get_db
from pos_inventory.services import report_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/purchases")
def purchase_report(
    vendor_id: str | None = None,
    product_id: str | None = None,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    db: Session = Depends(get_db),
):
    try:
        return report_service.purchase_report(
            db, vendor_id=vendor_id, product_id=product_id, start_date=start_date, end_date=end_date
        )
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/inventory-movement")
def inventory_movement_report(
    variant_id: str | None = None,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    db: Session = Depends(get_db),
):
    try:
        return report_service.inventory_movement_report(
            db, variant_id=variant_id, start_date=start_date, end_date=end_date
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
