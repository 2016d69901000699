from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from finapp import models
from finapp.errors import StoreFailure


class TransactionStore:
    """Document-style access to transaction rows.

    Every write commits on its own, so each call is atomic for the rows it
    touches and nothing spans multiple calls. Filters are plain equality on
    column names plus an optional inclusive ``occurred_at`` range; ``any_of``
    ORs together several equality groups.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---- reads -----------------------------------------------------------
    def get(self, user_id: int, txn_id: int) -> models.Transaction | None:
        return self.find_one(user_id, id=txn_id)

    def find(
        self,
        user_id: int,
        *,
        occurred_between: Optional[tuple[datetime, datetime]] = None,
        any_of: Optional[Iterable[Mapping[str, Any]]] = None,
        order_by: str = "occurred_at",
        descending: bool = False,
        **filters: Any,
    ) -> list[models.Transaction]:
        q = self._query(user_id, filters, occurred_between, any_of)
        column = getattr(models.Transaction, order_by)
        tie_break = models.Transaction.created_at
        if descending:
            q = q.order_by(column.desc(), tie_break.desc(), models.Transaction.id.desc())
        else:
            q = q.order_by(column.asc(), tie_break.asc(), models.Transaction.id.asc())
        return self._run(q.all)

    def find_one(
        self,
        user_id: int,
        *,
        occurred_between: Optional[tuple[datetime, datetime]] = None,
        **filters: Any,
    ) -> models.Transaction | None:
        q = self._query(user_id, filters, occurred_between, None)
        q = q.order_by(models.Transaction.created_at.asc(), models.Transaction.id.asc())
        return self._run(q.first)

    # ---- writes ----------------------------------------------------------
    def insert_one(self, values: Mapping[str, Any]) -> models.Transaction:
        row = models.Transaction(**dict(values))
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailure(f"insert failed: {exc}") from exc
        return row

    def update_one(self, row: models.Transaction, values: Mapping[str, Any]) -> models.Transaction:
        if not values:
            return row
        try:
            for key, value in values.items():
                setattr(row, key, value)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailure(f"update failed for transaction {row.id}: {exc}") from exc
        return row

    def update_many(self, user_id: int, values: Mapping[str, Any], **filters: Any) -> int:
        if not values:
            return 0
        payload = {getattr(models.Transaction, key): value for key, value in values.items()}
        payload[models.Transaction.updated_at] = models.now_local_naive()
        q = self._query(user_id, filters, None, None)
        try:
            updated = q.update(payload, synchronize_session="fetch")
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailure(f"bulk update failed: {exc}") from exc
        return int(updated or 0)

    def delete_one(self, row: models.Transaction) -> None:
        try:
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailure(f"delete failed for transaction {row.id}: {exc}") from exc

    def delete_many(
        self,
        user_id: int,
        *,
        any_of: Optional[Iterable[Mapping[str, Any]]] = None,
        **filters: Any,
    ) -> int:
        q = self._query(user_id, filters, None, any_of)
        try:
            removed = q.delete(synchronize_session="fetch")
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailure(f"bulk delete failed: {exc}") from exc
        return int(removed or 0)

    # ---- helpers ---------------------------------------------------------
    def _query(
        self,
        user_id: int,
        filters: Mapping[str, Any],
        occurred_between: Optional[tuple[datetime, datetime]],
        any_of: Optional[Iterable[Mapping[str, Any]]],
    ) -> Query:
        q = self.db.query(models.Transaction).filter(models.Transaction.user_id == user_id)
        for key, value in filters.items():
            q = q.filter(self._equals(key, value))
        if occurred_between is not None:
            start, end = occurred_between
            q = q.filter(models.Transaction.occurred_at >= start, models.Transaction.occurred_at <= end)
        if any_of is not None:
            groups = [and_(*(self._equals(k, v) for k, v in group.items())) for group in any_of]
            q = q.filter(or_(*groups))
        return q

    @staticmethod
    def _equals(key: str, value: Any):
        column = getattr(models.Transaction, key)
        if value is None:
            return column.is_(None)
        return column == value

    def _run(self, fn):
        try:
            return fn()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailure(f"query failed: {exc}") from exc
