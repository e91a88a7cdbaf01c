# store.py
# Record store over the SQLAlchemy session: select / insert / update / delete
# with equality and starts-with filters, returning immutable snapshots.

import logging
from contextlib import contextmanager
from typing import Any, NamedTuple, Sequence

from pydantic import BaseModel
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError

from models import db, Profile, Transaction
from ledger.errors import ProfileNotFound, StoreError, TransactionNotFound
from ledger.periods import cycle_bounds
from ledger.records import ProfileRecord, TransactionRecord

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"

SNAPSHOTS = {
    Transaction: TransactionRecord,
    Profile: ProfileRecord,
}


# ---------- Filters ----------
class Eq(NamedTuple):
    field: str
    value: Any


class StartsWith(NamedTuple):
    field: str
    prefix: str


class InCycle(NamedTuple):
    field: str
    cycle: str


class OneOf(NamedTuple):
    field: str
    values: Sequence[Any]


class Gt(NamedTuple):
    field: str
    value: Any


def escape_like(value, escape=LIKE_ESCAPE):
    """Escape LIKE wildcards (% and _) and the escape character itself."""
    return (
        value.replace(escape, escape + escape)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )


def _clause(model, f):
    col = getattr(model, f.field)
    if isinstance(f, Eq):
        return col.is_(None) if f.value is None else col == f.value
    if isinstance(f, StartsWith):
        return col.like(escape_like(f.prefix) + "%", escape=LIKE_ESCAPE)
    if isinstance(f, InCycle):
        start, end = cycle_bounds(f.cycle)
        return and_(col >= start, col < end)
    if isinstance(f, OneOf):
        return col.in_(list(f.values))
    if isinstance(f, Gt):
        return col > f.value
    raise TypeError(f"Unsupported filter: {f!r}")


def _order(model, order_by):
    out = []
    for key in order_by:
        if key.startswith("-"):
            out.append(getattr(model, key[1:]).desc())
        else:
            out.append(getattr(model, key).asc())
    return out


def _row(row):
    return row.model_dump() if isinstance(row, BaseModel) else dict(row)


class RecordStore:
    """Narrow data-access interface used by the ledger operations.

    Mutations only flush; wrap a sequence of them in ``atomic()`` to commit
    them together or not at all.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    @contextmanager
    def atomic(self):
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Store commit failed: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            self.session.rollback()
            raise

    # ---------- Generic operations ----------
    def select(self, model, filters=(), order_by=()):
        snap = SNAPSHOTS[model]
        try:
            q = self.session.query(model).filter(*[_clause(model, f) for f in filters])
            if order_by:
                q = q.order_by(*_order(model, order_by))
            return [snap.model_validate(r) for r in q.all()]
        except SQLAlchemyError as e:
            logger.error(f"Select on {model.__tablename__} failed: {e}")
            raise StoreError(str(e)) from e

    def insert(self, model, rows, **common):
        snap = SNAPSHOTS[model]
        objs = [model(**{**_row(r), **common}) for r in rows]
        if not objs:
            return []
        try:
            self.session.add_all(objs)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Insert into {model.__tablename__} failed: {e}")
            raise StoreError(str(e)) from e
        return [snap.model_validate(o) for o in objs]

    def update(self, model, patch, filters):
        if not filters:
            raise ValueError("update() requires at least one filter")
        try:
            q = self.session.query(model).filter(*[_clause(model, f) for f in filters])
            return q.update(patch, synchronize_session="fetch")
        except SQLAlchemyError as e:
            logger.error(f"Update on {model.__tablename__} failed: {e}")
            raise StoreError(str(e)) from e

    def delete(self, model, filters):
        if not filters:
            raise ValueError("delete() requires at least one filter")
        try:
            q = self.session.query(model).filter(*[_clause(model, f) for f in filters])
            return q.delete(synchronize_session="fetch")
        except SQLAlchemyError as e:
            logger.error(f"Delete on {model.__tablename__} failed: {e}")
            raise StoreError(str(e)) from e

    # ---------- Table helpers ----------
    def get_profile(self, user_id):
        rows = self.select(Profile, [Eq("user_id", user_id)])
        if not rows:
            raise ProfileNotFound(f"No profile for user {user_id}")
        return rows[0]

    def update_profile(self, user_id, patch, expected_cycle=None):
        filters = [Eq("user_id", user_id)]
        if expected_cycle is not None:
            filters.append(Eq("current_cycle", expected_cycle))
        return self.update(Profile, patch, filters)

    def transactions(self, user_id, *filters, order_by=("date", "id")):
        return self.select(Transaction, [Eq("user_id", user_id), *filters], order_by)

    def get_transaction(self, user_id, tx_id):
        rows = self.transactions(user_id, Eq("id", tx_id))
        if not rows:
            raise TransactionNotFound(f"Transaction {tx_id} not found")
        return rows[0]

    def insert_transactions(self, user_id, drafts):
        return self.insert(Transaction, drafts, user_id=user_id)

    def delete_transactions(self, user_id, *filters):
        return self.delete(Transaction, [Eq("user_id", user_id), *filters])

    def update_transactions(self, user_id, patch, *filters):
        return self.update(Transaction, patch, [Eq("user_id", user_id), *filters])
