from datetime import datetime

from pydantic import BaseModel


class VendorCreate(BaseModel):
    name: str
    contact: str = ""
    notes: str = ""


class VendorUpdate(BaseModel):
    name: str | None = None
    contact: str | None = None
    notes: str | None = None


class VendorOut(BaseModel):
    id: str
    name: str
    contact: str
    notes: str
    created_at: datetime

    model_config = {"from_attributes": True}


class VendorPage(BaseModel):
    items: list[VendorOut]
    next_cursor: str | None = None

    model_config = {"from_attributes": True}


class PurchaseLineCreate(BaseModel):
    product_id: str
    volume_liter: float
    price_per_liter: float


class DeliveryCreate(BaseModel):
    lines: list[PurchaseLineCreate]


class PurchaseOut(BaseModel):
    id: str
    vendor_id: str
    product_id: str
    volume_liter: float
    price_per_liter: float
    purchased_at: datetime

    model_config = {"from_attributes": True}


class PurchasePage(BaseModel):
    items: list[PurchaseOut]
    next_cursor: str | None = None

    model_config = {"from_attributes": True}
