"""Keyset pagination over append-only, time-ordered tables.

Every collection is ordered by ``(<timestamp> DESC, id DESC)``. The id breaks
ties between rows sharing a timestamp, which is common with bulk inserts. A
cursor encodes that composite key for the last row of a page, and the next
page is the rows strictly after it. Rows inserted later carry newer
timestamps and sort ahead of any handed-out cursor, so pages already served
never gain duplicates or lose rows.

Pages hold SQLAlchemy ``Row`` tuples rather than ORM instances. They are
immutable and detached from the session, so a page can be cached and shared
between requests.
"""
import base64
import binascii
import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_inventory.cache import ReadThroughCache
from pos_inventory.config import settings
from pos_inventory.errors import FetchError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page:
    items: list[Row] = field(default_factory=list)
    next_cursor: str | None = None


def encode_cursor(recorded_at: datetime, row_id: str) -> str:
    raw = json.dumps([recorded_at.isoformat(), str(row_id)], separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(token: str) -> tuple[datetime, str]:
    try:
        padded = token + "=" * (-len(token) % 4)
        recorded_at, row_id = json.loads(base64.urlsafe_b64decode(padded.encode()))
        return datetime.fromisoformat(recorded_at), str(row_id)
    except (binascii.Error, UnicodeDecodeError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed cursor: {token!r}") from e


class CursorPager:
    """Forward pager for one table.

    ``order_by`` names the timestamp column; the table must also have an
    ``id`` column. ``filters`` passed to the read methods are equality
    matches on column names. ``since``/``until`` bound the timestamp
    inclusively.
    """

    def __init__(self, model, order_by: str = "created_at", page_size: int | None = None):
        self.model = model
        self.name = model.__tablename__
        self.page_size = page_size or settings.PAGE_SIZE
        self._columns = list(model.__table__.columns)
        self._order_col = getattr(model, order_by)
        self._order_key = order_by
        self._id_col = model.id

    def _filter_clauses(self, since, until, filters: dict[str, Any]) -> list:
        clauses = []
        for name, value in filters.items():
            column = self.model.__table__.columns.get(name)
            if column is None:
                raise ValidationError(f"Cannot filter {self.name} by unknown column {name!r}")
            clauses.append(column == value)
        if since is not None:
            clauses.append(self._order_col >= since)
        if until is not None:
            clauses.append(self._order_col <= until)
        return clauses

    def fetch_page(
        self,
        db: Session,
        cursor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        **filters: Any,
    ) -> Page:
        """Return the next ``page_size`` rows strictly after ``cursor``."""
        stmt = select(*self._columns).where(*self._filter_clauses(since, until, filters))
        if cursor:
            last_at, last_id = decode_cursor(cursor)
            stmt = stmt.where(
                or_(
                    self._order_col < last_at,
                    and_(self._order_col == last_at, self._id_col < last_id),
                )
            )
        stmt = stmt.order_by(self._order_col.desc(), self._id_col.desc()).limit(self.page_size)

        try:
            rows = list(db.execute(stmt).all())
        except SQLAlchemyError as e:
            logger.error("Page fetch failed for %s (cursor=%s): %s", self.name, cursor, e)
            raise FetchError(f"Failed to fetch {self.name} page") from e

        next_cursor = None
        if len(rows) == self.page_size:
            last = rows[-1]
            next_cursor = encode_cursor(getattr(last, self._order_key), last.id)
        return Page(items=rows, next_cursor=next_cursor)

    def cache_key(self, cursor: str | None, since, until, filters: dict[str, Any]) -> str:
        parts = [f"{k}={filters[k]}" for k in sorted(filters)]
        if since is not None:
            parts.append(f"since={since.isoformat()}")
        if until is not None:
            parts.append(f"until={until.isoformat()}")
        return f"{self.name}?{'&'.join(parts)}#{cursor or 'first'}"

    def read_page(
        self,
        db: Session,
        cache: ReadThroughCache | None = None,
        cursor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        **filters: Any,
    ) -> Page:
        """Like :meth:`fetch_page`, served through ``cache`` when one is given."""
        if cache is None:
            return self.fetch_page(db, cursor, since=since, until=until, **filters)
        key = self.cache_key(cursor, since, until, filters)
        return cache.get_or_load(key, lambda: self.fetch_page(db, cursor, since=since, until=until, **filters))

    def iter_rows(
        self,
        db: Session,
        cache: ReadThroughCache | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        **filters: Any,
    ) -> Iterator[Row]:
        """Walk every page until one comes back without a next cursor.

        A failed page raises :class:`FetchError` out of the iterator, so a
        caller folding the rows never completes with a partial result.
        """
        cursor = None
        while True:
            page = self.read_page(db, cache, cursor, since=since, until=until, **filters)
            yield from page.items
            if page.next_cursor is None:
                return
            cursor = page.next_cursor
