"""
Storage-access gateway.

Every read and write the application makes goes through StoreGateway. Each
call runs in its own short session (commit on success, rollback on failure),
so callers see request/response semantics like a hosted database client.

SQLAlchemy errors are translated into StoreError with an ErrorKind exactly
once, here. Callers branch on `err.kind` and never inspect driver codes.

Committed writes publish one ChangeEvent per affected row to the change feed.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Sequence

from sqlalchemy import exc as sa_exc
from sqlalchemy import inspect
from sqlalchemy.orm import Session, sessionmaker

from core.database import SessionLocal
from core.events import ChangeEvent, ChangeFeed, EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE, default_feed
from models import Exercise, Profile, UserDay, WorkoutBuddy, WorkoutSet, WorkoutUser

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    FATAL = "fatal"


class StoreError(Exception):
    """A storage failure, classified at the gateway boundary."""

    def __init__(self, kind: ErrorKind, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.table = table

    def __repr__(self) -> str:
        return f"StoreError(kind={self.kind.value!r}, table={self.table!r}, message={str(self)!r})"


def _is_unique_violation(err: sa_exc.IntegrityError) -> bool:
    orig = getattr(err, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    message = str(orig or err).lower()
    return "unique" in message or "duplicate key" in message


def classify_exception(err: BaseException) -> ErrorKind:
    if isinstance(err, StoreError):
        return err.kind
    if isinstance(err, sa_exc.NoResultFound):
        return ErrorKind.NOT_FOUND
    if isinstance(err, sa_exc.IntegrityError):
        return ErrorKind.CONFLICT if _is_unique_violation(err) else ErrorKind.FATAL
    if isinstance(err, (sa_exc.OperationalError, sa_exc.TimeoutError)):
        return ErrorKind.TRANSIENT
    if isinstance(err, sa_exc.DBAPIError) and err.connection_invalidated:
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def row_to_dict(obj: Any) -> dict[str, Any]:
    mapper = inspect(obj).mapper
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


def _order(order_by: Any) -> Sequence[Any]:
    if order_by is None:
        return ()
    if isinstance(order_by, (list, tuple)):
        return tuple(order_by)
    return (order_by,)


# Columns that carry an alias name; renaming an alias rewrites all of them.
ALIAS_REFERENCES = (
    (WorkoutUser, "username"),
    (UserDay, "username"),
    (Exercise, "username"),
    (WorkoutSet, "username"),
    (WorkoutBuddy, "buddy_name"),
    (Profile, "buddy_name"),
)


class StoreGateway:
    def __init__(self, session_factory: sessionmaker = SessionLocal, feed: Optional[ChangeFeed] = None):
        self._session_factory = session_factory
        self.feed = feed if feed is not None else default_feed

    @contextmanager
    def _transaction(self, table: str) -> Iterator[tuple[Session, list[ChangeEvent]]]:
        db = self._session_factory()
        events: list[ChangeEvent] = []
        try:
            yield db, events
            db.commit()
        except StoreError:
            db.rollback()
            raise
        except sa_exc.SQLAlchemyError as e:
            db.rollback()
            kind = classify_exception(e)
            logger.warning(f"Store operation on {table} failed ({kind.value}): {e}")
            raise StoreError(kind, str(e), table) from e
        finally:
            db.close()

        for event in events:
            self.feed.publish(event)

    # -- reads -------------------------------------------------------------

    def select(self, model, *, order_by: Any = None, limit: Optional[int] = None, **filters) -> list:
        with self._transaction(model.__tablename__) as (db, _):
            q = db.query(model).filter_by(**filters)
            order = _order(order_by)
            if order:
                q = q.order_by(*order)
            if limit is not None:
                q = q.limit(limit)
            return q.all()

    def select_one(self, model, **filters):
        """Return the first matching row or raise StoreError(NOT_FOUND)."""
        table = model.__tablename__
        with self._transaction(table) as (db, _):
            row = db.query(model).filter_by(**filters).first()
            if row is None:
                raise StoreError(ErrorKind.NOT_FOUND, f"No {table} row matching {filters}", table)
            return row

    def select_maybe(self, model, **filters):
        try:
            return self.select_one(model, **filters)
        except StoreError as e:
            if e.kind is ErrorKind.NOT_FOUND:
                return None
            raise

    def count(self, model, **filters) -> int:
        with self._transaction(model.__tablename__) as (db, _):
            return db.query(model).filter_by(**filters).count()

    # -- writes ------------------------------------------------------------

    def insert(self, obj):
        return self.insert_many([obj])[0]

    def insert_many(self, objs: Iterable[Any]) -> list:
        objs = list(objs)
        if not objs:
            return []
        with self._transaction(objs[0].__tablename__) as (db, events):
            db.add_all(objs)
            db.flush()
            for obj in objs:
                events.append(ChangeEvent(obj.__tablename__, EVENT_INSERT, new=row_to_dict(obj)))
            return objs

    def update(self, model, values: dict[str, Any], **filters) -> list:
        table = model.__tablename__
        with self._transaction(table) as (db, events):
            rows = db.query(model).filter_by(**filters).all()
            for row in rows:
                old = row_to_dict(row)
                for key, value in values.items():
                    setattr(row, key, value)
                events.append(ChangeEvent(table, EVENT_UPDATE, new=row_to_dict(row), old=old))
            db.flush()
            return rows

    def delete(self, model, **filters) -> int:
        table = model.__tablename__
        with self._transaction(table) as (db, events):
            rows = db.query(model).filter_by(**filters).all()
            for row in rows:
                events.append(ChangeEvent(table, EVENT_DELETE, old=row_to_dict(row)))
                db.delete(row)
            db.flush()
            return len(rows)

    def replace(self, model, rows: Iterable[Any], **filters) -> list:
        """Delete every row matching filters and insert rows, in one transaction."""
        rows = list(rows)
        table = model.__tablename__
        with self._transaction(table) as (db, events):
            for existing in db.query(model).filter_by(**filters).all():
                events.append(ChangeEvent(table, EVENT_DELETE, old=row_to_dict(existing)))
                db.delete(existing)
            db.flush()
            db.add_all(rows)
            db.flush()
            for row in rows:
                events.append(ChangeEvent(table, EVENT_INSERT, new=row_to_dict(row)))
            return rows

    def rename_alias(self, old_username: str, new_username: str) -> WorkoutUser:
        """Rename an alias everywhere it is referenced, atomically."""
        with self._transaction(WorkoutUser.__tablename__) as (db, events):
            alias = db.query(WorkoutUser).filter_by(username=old_username).first()
            if alias is None:
                raise StoreError(ErrorKind.NOT_FOUND, f"No alias named {old_username!r}", WorkoutUser.__tablename__)
            for model, column in ALIAS_REFERENCES:
                for row in db.query(model).filter(getattr(model, column) == old_username).all():
                    old = row_to_dict(row)
                    setattr(row, column, new_username)
                    events.append(ChangeEvent(model.__tablename__, EVENT_UPDATE, new=row_to_dict(row), old=old))
            db.flush()
            return alias


_default_store = StoreGateway(SessionLocal, default_feed)


def get_store() -> StoreGateway:
    """FastAPI dependency for the process-wide store gateway."""
    return _default_store
