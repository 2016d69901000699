from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.orm import Session

from finapp import models
from finapp.core.locks import LockTable
from finapp.errors import NotFound, ValidationError
from finapp.services.consistency_service import EDITABLE_FIELDS, ConsistencyCoordinator
from finapp.services.installment_service import InstallmentPurchase, InstallmentSplitter
from finapp.services.recurrence_service import RecurrenceMaterializer, default_today
from finapp.services.transaction_store import TransactionStore
from finapp.utils.dates import at_noon, month_bounds

logger = logging.getLogger(__name__)


@dataclass
class PeriodSummary:
    income: Decimal
    expense: Decimal
    credit_card_total: Decimal
    balance: Decimal
    count: int


class TransactionService:
    """Entry points used by the API layer.

    Wires the store, materializer, splitter and coordinator around one
    session. Lock tables are passed in so every request shares the same
    process-wide tables.
    """

    def __init__(
        self,
        db: Session,
        *,
        generation_locks: LockTable,
        update_locks: LockTable,
        today: Callable[[], date] = default_today,
    ) -> None:
        self.db = db
        self.store = TransactionStore(db)
        self.materializer = RecurrenceMaterializer(self.store, generation_locks, today=today)
        self.splitter = InstallmentSplitter()
        self.coordinator = ConsistencyCoordinator(self.store, update_locks)

    # ---- reads -----------------------------------------------------------
    def ensure_materialized(self, user_id: int, month: int, year: int) -> list[models.Transaction]:
        return self.materializer.materialize(user_id, month, year)

    def get(self, user_id: int, txn_id: int) -> models.Transaction:
        tx = self.store.get(user_id, txn_id)
        if tx is None:
            raise NotFound("Transaction not found")
        return tx

    def list_for_period(
        self,
        user_id: int,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[models.Transaction]:
        """Occurrences for a month (materializing first), or all of them.

        Templates are never listed as occurrences.
        """
        if (month is None) != (year is None):
            raise ValidationError("month and year must be given together")
        if month is not None and year is not None:
            self.ensure_materialized(user_id, month, year)
            return self.store.find(
                user_id,
                occurred_between=month_bounds(year, month),
                is_recurring_template=False,
                descending=True,
            )
        return self.store.find(user_id, is_recurring_template=False, descending=True)

    def list_templates(self, user_id: int) -> list[models.Transaction]:
        return self.store.find(user_id, is_recurring_template=True)

    def summarize(
        self,
        user_id: int,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> PeriodSummary:
        rows = self.list_for_period(user_id, month, year)
        income = sum((Decimal(r.amount) for r in rows if r.type == models.FlowType.INCOME), Decimal("0"))
        expense = sum(
            (
                Decimal(r.amount)
                for r in rows
                if r.type == models.FlowType.EXPENSE and r.payment_method != models.PaymentMethod.CREDIT
            ),
            Decimal("0"),
        )
        credit = sum(
            (
                Decimal(r.amount)
                for r in rows
                if r.type == models.FlowType.EXPENSE and r.payment_method == models.PaymentMethod.CREDIT
            ),
            Decimal("0"),
        )
        return PeriodSummary(
            income=income,
            expense=expense,
            credit_card_total=credit,
            balance=income - expense,
            count=len(rows),
        )

    # ---- creates ---------------------------------------------------------
    def create_plain(
        self,
        user_id: int,
        fields: Mapping[str, Any],
        occurred_at: date | datetime,
    ) -> models.Transaction:
        values = self._base_values(user_id, fields, occurred_at)
        return self.store.insert_one(values)

    def create_recurring(
        self,
        user_id: int,
        fields: Mapping[str, Any],
        occurred_at: date | datetime,
    ) -> tuple[models.Transaction, models.Transaction]:
        """Create a template and its first instance, both on ``occurred_at``."""
        base = self._base_values(user_id, fields, occurred_at)
        when = base["occurred_at"]

        # No read may materialize this month between the two inserts
        key = self.materializer.lock_key(user_id, when.month, when.year)
        with self.materializer.locks.hold(key) as acquired:
            if not acquired:
                logger.debug("generation for %02d/%d in flight while creating a template", when.month, when.year)
            template = self.store.insert_one(
                dict(base, is_recurring_template=True, recurring_day=when.day)
            )
            instance = self.materializer.find_instance(user_id, template.id, when.year, when.month)
            if instance is None:
                instance = self.store.insert_one(
                    dict(base, is_recurring_template=False, recurring_parent_id=template.id)
                )
        logger.info("created recurring template %s anchored on day %d", template.id, when.day)
        return template, instance

    def create_installments(
        self,
        user_id: int,
        fields: Mapping[str, Any],
        occurred_at: date | datetime,
        total_installments: int,
    ) -> list[models.Transaction]:
        base = self._base_values(user_id, fields, occurred_at)
        extra = {k: v for k, v in base.items() if k not in ("user_id", "description", "amount", "occurred_at")}
        drafts = self.splitter.split(
            InstallmentPurchase(
                description=base["description"],
                amount=base["amount"],
                occurred_at=base["occurred_at"],
                total_installments=total_installments,
                extra=extra,
            )
        )

        # Parcel 1 must exist before the others can reference it
        first = self.store.insert_one(drafts[0].to_values(user_id=user_id))
        saved = [first]
        for draft in drafts[1:]:
            saved.append(self.store.insert_one(draft.to_values(user_id=user_id, anchor_id=first.id)))
        logger.info("created %d installments for group %s", len(saved), first.id)
        return saved

    # ---- updates / deletes -----------------------------------------------
    def update(
        self,
        txn_id: int,
        user_id: int,
        fields: Mapping[str, Any],
        occurred_at: date | datetime | None = None,
        *,
        apply_to_series: bool = False,
    ) -> models.Transaction:
        when = at_noon(occurred_at) if occurred_at is not None else None
        return self.coordinator.update(txn_id, user_id, fields, when, apply_to_series=apply_to_series)

    def delete(self, txn_id: int, user_id: int) -> None:
        self.coordinator.delete(txn_id, user_id)

    def delete_series(self, txn_id: int, user_id: int) -> int:
        return self.coordinator.delete_series(txn_id, user_id)

    def delete_installment_group(self, txn_id: int, user_id: int) -> int:
        return self.coordinator.delete_installment_group(txn_id, user_id)

    # ---- helpers ---------------------------------------------------------
    @staticmethod
    def _base_values(user_id: int, fields: Mapping[str, Any], occurred_at: date | datetime) -> dict[str, Any]:
        values = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS}
        if not values.get("description"):
            raise ValidationError("description is required")
        if values.get("amount") is None:
            raise ValidationError("amount is required")
        if values.get("type") is None:
            raise ValidationError("type is required")
        values.setdefault("payment_method", models.PaymentMethod.PIX)
        values.update(user_id=user_id, occurred_at=at_noon(occurred_at))
        return values
