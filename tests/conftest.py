"""
Pytest fixtures: in-memory SQLite per test, service helpers, API client.
"""
import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pos_inventory.cache import ReadThroughCache
from pos_inventory.database import Base, get_db
from pos_inventory.main import app
from pos_inventory.models.inventory_movement import InventoryMovement, MovementDirection, VariantStockTotal
from pos_inventory.models.product import Product, Variant
from pos_inventory.models.vendor import Vendor, VendorPurchase

BASE_TIME = datetime(2024, 3, 1, 9, 0, 0)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ReadThroughCache(ttl_seconds=30, clock=clock)


@pytest.fixture
def client(db, cache):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.state.cache = cache
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- Row helpers ---
# These write ledger rows directly so tests control timestamps and ids.


def new_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def product(db):
    p = Product(name="Amber Noir", sku="AMB-01")
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def variant(db, product):
    v = Variant(product_id=product.id, bottle_size_ml=10, price=150000, min_stock=12)
    db.add(v)
    db.flush()
    db.add(VariantStockTotal(variant_id=v.id, total_in=0, total_out=0))
    db.commit()
    return v


@pytest.fixture
def vendor(db):
    v = Vendor(name="Vendor A")
    db.add(v)
    db.commit()
    return v


def add_movements(db, variant_id, entries, start=BASE_TIME, step=timedelta(seconds=1)):
    """Insert raw movements from ``[(direction, quantity), ...]`` one step apart."""
    rows = []
    for i, (direction, quantity) in enumerate(entries):
        rows.append(
            InventoryMovement(
                id=new_id(),
                variant_id=variant_id,
                direction=MovementDirection(direction),
                quantity=quantity,
                created_at=start + step * i,
            )
        )
    db.add_all(rows)
    db.commit()
    return rows


def add_purchases(db, vendor_id, product_id, lines, start=BASE_TIME):
    rows = [
        VendorPurchase(
            id=new_id(),
            vendor_id=vendor_id,
            product_id=product_id,
            volume_liter=volume,
            price_per_liter=price,
            purchased_at=start + timedelta(minutes=i),
        )
        for i, (volume, price) in enumerate(lines)
    ]
    db.add_all(rows)
    db.commit()
    return rows
