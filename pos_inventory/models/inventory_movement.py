import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_inventory.database import Base, utcnow


class MovementDirection(str, PyEnum):
    IN = "in"
    OUT = "out"


class InventoryMovement(Base):
    """One stock change for a variant.

    Append-only: rows are never updated or deleted. The sign lives in
    ``direction``; ``quantity`` is always positive. Corrections are new rows
    in the opposite direction pointing back through ``reversal_of_id``.
    """

    __tablename__ = "inventory_movements"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    variant_id: Mapped[str] = mapped_column(String, ForeignKey("product_variants.id"), nullable=False, index=True)
    direction: Mapped[MovementDirection] = mapped_column(
        Enum(MovementDirection, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reversal_of_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("inventory_movements.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    variant: Mapped["Variant"] = relationship("Variant")  # noqa: F821


class VariantStockTotal(Base):
    """Running in/out sums per variant, written in the same transaction as each movement."""

    __tablename__ = "variant_stock_totals"

    variant_id: Mapped[str] = mapped_column(String, ForeignKey("product_variants.id"), primary_key=True)
    total_in: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_out: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def on_hand(self) -> int:
        return self.total_in - self.total_out
