import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pos_inventory.database import Base, utcnow


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String, nullable=False)
    sku: Mapped[str | None] = mapped_column(String, unique=True, index=True, nullable=True)
    status: Mapped[str] = mapped_column(String, default="active")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    variants: Mapped[list["Variant"]] = relationship("Variant", back_populates="product")


class Variant(Base):
    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False, index=True)

    # Volume of one sellable item, e.g. a 30 ml bottle
    bottle_size_ml: Mapped[float] = mapped_column(Float, nullable=False)
    unit_label: Mapped[str] = mapped_column(String, default="ml")
    barcode: Mapped[str | None] = mapped_column(String, unique=True, index=True, nullable=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    min_stock: Mapped[int] = mapped_column(Integer, default=0)

    # Weighted-average purchase cost, recomputed from vendor purchases.
    # NULL means no purchase volume has been recorded for the product yet.
    cost_per_ml: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    product: Mapped["Product"] = relationship("Product", back_populates="variants")

    @property
    def unit_cost(self) -> float | None:
        """Cost of one item at the current weighted average, or None if unknown."""
        if self.cost_per_ml is None:
            return None
        return self.cost_per_ml * self.bottle_size_ml
