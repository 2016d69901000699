"""
Administrative repairs for recurring and installment data.

- backfill: materialize historical months that automatic generation skips
- deduplicate: keep the oldest instance per (template, month)
- clean orphans: drop instances/parcels whose parent row is gone
"""

from __future__ import annotations

import logging
from collections import defaultdict

from finapp import models
from finapp.core.config import settings
from finapp.errors import ValidationError
from finapp.services.recurrence_service import RecurrenceMaterializer
from finapp.services.transaction_store import TransactionStore
from finapp.utils.dates import shift_period

logger = logging.getLogger(__name__)


class MaintenanceService:
    def __init__(
        self,
        store: TransactionStore,
        materializer: RecurrenceMaterializer,
        *,
        max_periods: int | None = None,
    ) -> None:
        self.store = store
        self.materializer = materializer
        self.max_periods = max_periods if max_periods is not None else settings.BACKFILL_MAX_PERIODS

    def backfill(
        self,
        user_id: int,
        start_month: int,
        start_year: int,
        end_month: int,
        end_year: int,
    ) -> int:
        for month in (start_month, end_month):
            if not 1 <= month <= 12:
                raise ValidationError(f"month must be between 1 and 12, got {month}")
        span = (end_year * 12 + end_month) - (start_year * 12 + start_month) + 1
        if span < 1:
            raise ValidationError("backfill range ends before it starts")
        if span > self.max_periods:
            raise ValidationError(f"backfill range covers {span} months; the limit is {self.max_periods}")

        created = 0
        for offset in range(span):
            year, month = shift_period(start_year, start_month, offset)
            created += len(self.materializer.materialize(user_id, month, year, allow_past=True))
        logger.info("backfill for user %s created %d instances over %d months", user_id, created, span)
        return created

    def deduplicate_instances(self, user_id: int) -> int:
        rows = self.store.find(user_id, is_recurring_template=False, order_by="created_at")
        groups: dict[tuple[int, int, int], list[models.Transaction]] = defaultdict(list)
        for row in rows:
            if row.recurring_parent_id is None:
                continue
            key = (row.recurring_parent_id, row.occurred_at.year, row.occurred_at.month)
            groups[key].append(row)

        removed = 0
        for key, members in groups.items():
            # rows arrive sorted by created_at then id, so the first one is kept
            for duplicate in members[1:]:
                self.store.delete_one(duplicate)
                removed += 1
        if removed:
            logger.info("removed %d duplicate recurring instances for user %s", removed, user_id)
        return removed

    def clean_orphans(self, user_id: int) -> int:
        rows = self.store.find(user_id)
        template_ids = {r.id for r in rows if r.is_recurring_template}
        anchor_ids = {r.id for r in rows if r.is_installment and r.installment_parent_id is None}

        removed = 0
        for row in rows:
            orphan_instance = (
                not row.is_recurring_template
                and row.recurring_parent_id is not None
                and row.recurring_parent_id not in template_ids
            )
            orphan_parcel = (
                row.is_installment
                and row.installment_parent_id is not None
                and row.installment_parent_id not in anchor_ids
            )
            if orphan_instance or orphan_parcel:
                self.store.delete_one(row)
                removed += 1
        if removed:
            logger.info("removed %d orphaned rows for user %s", removed, user_id)
        return removed
