"""Stock levels derived from the movement ledger.

Stock is never stored as an independently mutable counter. Two projectors
answer the same question, ``current_stock(db, variant_ids)``:

* ``ScanStockProjector`` folds every movement of each variant, paging
  through the whole history.
* ``MaterializedStockProjector`` reads ``VariantStockTotal``, the running
  in/out sums written in the same transaction as each movement.

Movements are appended here and nowhere else, which keeps the running sums
in step with the ledger.
"""
import logging
from collections.abc import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pos_inventory.cache import ReadThroughCache
from pos_inventory.errors import FetchError, InsufficientStockError, ValidationError
from pos_inventory.models.inventory_movement import InventoryMovement, MovementDirection, VariantStockTotal
from pos_inventory.models.product import Variant
from pos_inventory.pagination import CursorPager, Page
from pos_inventory.services.lookups import load_one, require_existing, validate_id

logger = logging.getLogger(__name__)

movement_pager = CursorPager(InventoryMovement, order_by="created_at")


def fold_movements(movements: Iterable) -> int:
    """Sum of ``in`` quantities minus sum of ``out`` quantities."""
    total = 0
    for m in movements:
        if m.direction == MovementDirection.IN:
            total += m.quantity
        else:
            total -= m.quantity
    return total


class ScanStockProjector:
    def __init__(self, pager: CursorPager | None = None, cache: ReadThroughCache | None = None):
        self.pager = pager or movement_pager
        self.cache = cache

    def current_stock(self, db: Session, variant_ids: Iterable[str]) -> dict[str, int]:
        ids = require_existing(db, Variant, list(variant_ids), "Variant")
        stock = {}
        for variant_id in ids:
            stock[variant_id] = fold_movements(self.pager.iter_rows(db, self.cache, variant_id=variant_id))
            logger.debug("Folded stock for variant %s: %d", variant_id, stock[variant_id])
        return stock


class MaterializedStockProjector:
    def current_stock(self, db: Session, variant_ids: Iterable[str]) -> dict[str, int]:
        ids = require_existing(db, Variant, list(variant_ids), "Variant")
        if not ids:
            return {}
        try:
            totals = db.scalars(select(VariantStockTotal).where(VariantStockTotal.variant_id.in_(ids))).all()
        except SQLAlchemyError as e:
            raise FetchError("Failed to read stock totals") from e
        by_id = {t.variant_id: t.on_hand for t in totals}
        return {variant_id: by_id.get(variant_id, 0) for variant_id in ids}


def get_stock(db: Session, variant_id: str, projector=None) -> int:
    projector = projector or ScanStockProjector()
    variant_id = validate_id(variant_id, "Variant")
    return projector.current_stock(db, [variant_id])[variant_id]


def _parse_direction(direction) -> MovementDirection:
    try:
        return MovementDirection(direction)
    except ValueError as e:
        raise ValidationError(f"Unknown movement direction: {direction!r}") from e


def _parse_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"Movement quantity must be a positive integer, got {quantity!r}")
    return quantity


def _ensure_totals(db: Session, variant_id: str) -> None:
    """Create the running sums row for a variant if it is missing.

    A missing row is seeded from the ledger so the sums always match history.
    """
    exists = db.scalar(select(VariantStockTotal.variant_id).where(VariantStockTotal.variant_id == variant_id))
    if exists is not None:
        return
    sums = dict(
        db.execute(
            select(InventoryMovement.direction, func.coalesce(func.sum(InventoryMovement.quantity), 0))
            .where(InventoryMovement.variant_id == variant_id)
            .group_by(InventoryMovement.direction)
        ).all()
    )
    db.add(
        VariantStockTotal(
            variant_id=variant_id,
            total_in=int(sums.get(MovementDirection.IN, 0)),
            total_out=int(sums.get(MovementDirection.OUT, 0)),
        )
    )
    try:
        db.commit()
    except IntegrityError:
        # Another writer seeded it first
        db.rollback()


def _apply_to_totals(db: Session, variant_id: str, direction: MovementDirection, quantity: int) -> bool:
    """Add ``quantity`` to the running sums in one conditional UPDATE.

    For ``out`` the stock check is part of the WHERE clause, so it is
    evaluated against the row as the database holds it at write time and
    concurrent writers cannot both pass it. Returns False when refused.
    """
    stmt = update(VariantStockTotal).where(VariantStockTotal.variant_id == variant_id)
    if direction == MovementDirection.IN:
        stmt = stmt.values(total_in=VariantStockTotal.total_in + quantity)
    else:
        stmt = stmt.where(VariantStockTotal.total_in - VariantStockTotal.total_out >= quantity).values(
            total_out=VariantStockTotal.total_out + quantity
        )
    result = db.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1


def _on_hand(db: Session, variant_id: str) -> int:
    value = db.scalar(
        select(VariantStockTotal.total_in - VariantStockTotal.total_out).where(
            VariantStockTotal.variant_id == variant_id
        )
    )
    return int(value or 0)


def _append_movement(
    db: Session,
    variant: Variant,
    direction: MovementDirection,
    quantity: int,
    reason: str | None,
    reversal_of_id: str | None = None,
) -> InventoryMovement:
    variant_id = variant.id
    try:
        _ensure_totals(db, variant_id)
        if not _apply_to_totals(db, variant_id, direction, quantity):
            db.rollback()
            on_hand = _on_hand(db, variant_id)
            logger.warning("Refused out movement of %d for variant %s (on hand %d)", quantity, variant_id, on_hand)
            raise InsufficientStockError(variant_id, on_hand, quantity)

        movement = InventoryMovement(
            variant_id=variant_id,
            direction=direction,
            quantity=quantity,
            reason=reason or None,
            reversal_of_id=reversal_of_id,
        )
        db.add(movement)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to record movement for variant %s: %s", variant_id, e)
        raise FetchError(f"Failed to record movement for variant {variant_id}") from e
    db.refresh(movement)
    return movement


def record_movement(
    db: Session, variant_id: str, direction, quantity, reason: str | None = None
) -> InventoryMovement:
    """Append one movement. ``out`` movements may not take stock below zero."""
    direction = _parse_direction(direction)
    quantity = _parse_quantity(quantity)
    variant = load_one(db, Variant, variant_id, "Variant")
    movement = _append_movement(db, variant, direction, quantity, reason)
    logger.info("Recorded %s %d for variant %s", direction.value, quantity, variant.id)
    return movement


def reverse_movement(db: Session, movement_id: str, reason: str | None = None) -> InventoryMovement:
    """Append the opposite movement of ``movement_id``. Each movement can be reversed once."""
    original = load_one(db, InventoryMovement, movement_id, "Movement")
    if original.reversal_of_id is not None:
        raise ValidationError(f"Movement {original.id} is itself a reversal")
    already = db.scalars(
        select(InventoryMovement.id).where(InventoryMovement.reversal_of_id == original.id)
    ).first()
    if already:
        raise ValidationError(f"Movement {original.id} was already reversed by {already}")

    opposite = MovementDirection.OUT if original.direction == MovementDirection.IN else MovementDirection.IN
    variant = load_one(db, Variant, original.variant_id, "Variant")
    movement = _append_movement(
        db,
        variant,
        opposite,
        original.quantity,
        reason or f"Reversal of {original.id}",
        reversal_of_id=original.id,
    )
    logger.info("Reversed movement %s with %s", original.id, movement.id)
    return movement


def list_movements(
    db: Session,
    variant_id: str | None = None,
    cursor: str | None = None,
    cache: ReadThroughCache | None = None,
) -> Page:
    filters = {}
    if variant_id:
        filters["variant_id"] = validate_id(variant_id, "Variant")
    return movement_pager.read_page(db, cache, cursor, **filters)
