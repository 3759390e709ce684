from datetime import datetime

from pydantic import BaseModel, computed_field


# --- Variant schemas ---

class VariantCreate(BaseModel):
    bottle_size_ml: float
    unit_label: str = "ml"
    barcode: str | None = None
    price: float = 0.0
    min_stock: int = 0


class VariantUpdate(BaseModel):
    bottle_size_ml: float | None = None
    unit_label: str | None = None
    barcode: str | None = None
    price: float | None = None
    min_stock: int | None = None


class VariantOut(BaseModel):
    id: str
    product_id: str
    bottle_size_ml: float
    unit_label: str
    barcode: str | None = None
    price: float
    min_stock: int
    cost_per_ml: float | None = None  # null until the product has purchase volume
    created_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def unit_cost(self) -> float | None:
        if self.cost_per_ml is None:
            return None
        return self.cost_per_ml * self.bottle_size_ml


class VariantPage(BaseModel):
    items: list[VariantOut]
    next_cursor: str | None = None

    model_config = {"from_attributes": True}


# --- Product schemas ---

class ProductCreate(BaseModel):
    name: str
    sku: str | None = None
    status: str = "active"


class ProductUpdate(BaseModel):
    name: str | None = None
    sku: str | None = None
    status: str | None = None


class ProductOut(BaseModel):
    id: str
    name: str
    sku: str | None = None
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ProductPage(BaseModel):
    items: list[ProductOut]
    next_cursor: str | None = None

    model_config = {"from_attributes": True}


class CostBasisOut(BaseModel):
    product_id: str
    purchase_count: int
    total_volume_liter: float
    total_cost: float
    cost_per_ml: float | None = None

    model_config = {"from_attributes": True}
