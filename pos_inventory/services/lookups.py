import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_inventory.errors import FetchError, NotFoundError, ValidationError


def validate_id(value, kind: str) -> str:
    """Return ``value`` as a canonical id string, or raise ValidationError."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid {kind} id: {value!r}")
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError as e:
        raise ValidationError(f"Invalid {kind} id: {value!r}") from e


def load_one(db: Session, model, ident, kind: str):
    ident = validate_id(ident, kind)
    try:
        obj = db.get(model, ident)
    except SQLAlchemyError as e:
        raise FetchError(f"Failed to load {kind} {ident}") from e
    if obj is None:
        raise NotFoundError(kind, ident)
    return obj


def require_existing(db: Session, model, idents: list[str], kind: str) -> list[str]:
    """Validate a batch of ids and check that every one of them exists."""
    ids = list(dict.fromkeys(validate_id(i, kind) for i in idents))
    if not ids:
        return ids
    try:
        found = set(db.scalars(select(model.id).where(model.id.in_(ids))).all())
    except SQLAlchemyError as e:
        raise FetchError(f"Failed to look up {kind} ids") from e
    for ident in ids:
        if ident not in found:
            raise NotFoundError(kind, ident)
    return ids
