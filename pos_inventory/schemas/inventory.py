from datetime import datetime

from pydantic import BaseModel

from pos_inventory.models.inventory_movement import MovementDirection


class MovementCreate(BaseModel):
    direction: MovementDirection
    quantity: int
    reason: str | None = None


class MovementReverse(BaseModel):
    reason: str | None = None


class MovementOut(BaseModel):
    id: str
    variant_id: str
    direction: MovementDirection
    quantity: int
    reason: str | None = None
    reversal_of_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MovementPage(BaseModel):
    items: list[MovementOut]
    next_cursor: str | None = None

    model_config = {"from_attributes": True}


class StockQuery(BaseModel):
    variant_ids: list[str]


class StockOut(BaseModel):
    variant_id: str
    on_hand: int


class MovementRecorded(BaseModel):
    movement: MovementOut
    on_hand: int
