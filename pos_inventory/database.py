from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from pos_inventory.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    # Import all models so Base.metadata knows about them
    import pos_inventory.models.inventory_movement  # noqa: F401
    import pos_inventory.models.product  # noqa: F401
    import pos_inventory.models.vendor  # noqa: F401

    Base.metadata.create_all(bind=engine)


def utcnow() -> datetime:
    """Naive UTC timestamp with microsecond precision, used for ledger ordering."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
