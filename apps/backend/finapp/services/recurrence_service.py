"""
Recurring transaction materialization.

Templates are expanded lazily: a month-scoped read asks for (user, month,
year) and each active template gets exactly one instance in that month,
dated on its anchor day clamped to the month's length.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable

from finapp import models
from finapp.core.config import settings
from finapp.core.locks import LockTable
from finapp.errors import StoreFailure, ValidationError
from finapp.services.transaction_store import TransactionStore
from finapp.utils.dates import clamp_day, is_before_period, month_bounds, period_key, today_in

logger = logging.getLogger(__name__)

# Fields copied verbatim from a template onto each generated instance
COPIED_FIELDS = (
    "description",
    "amount",
    "type",
    "category",
    "payment_method",
    "bank",
    "credit_card",
    "notes",
)


def default_today() -> date:
    return today_in(settings.TIMEZONE)


class RecurrenceMaterializer:
    def __init__(
        self,
        store: TransactionStore,
        locks: LockTable,
        *,
        today: Callable[[], date] = default_today,
    ) -> None:
        self.store = store
        self.locks = locks
        self.today = today

    @staticmethod
    def lock_key(user_id: int, month: int, year: int) -> tuple[int, str, int]:
        return (user_id, "recurring", period_key(year, month))

    def materialize(
        self,
        user_id: int,
        month: int,
        year: int,
        *,
        allow_past: bool = False,
    ) -> list[models.Transaction]:
        """Ensure every active template has one instance in the period.

        Returns the rows created by this call. A period already being
        generated by another request, or a period before the current month,
        is a silent no-op.
        """
        if not 1 <= month <= 12:
            raise ValidationError(f"month must be between 1 and 12, got {month}")

        with self.locks.hold(self.lock_key(user_id, month, year)) as acquired:
            if not acquired:
                logger.debug("materialization for user %s %02d/%d already in flight", user_id, month, year)
                return []
            if not allow_past and is_before_period(year, month, self.today()):
                return []
            return self._generate(user_id, month, year)

    def _generate(self, user_id: int, month: int, year: int) -> list[models.Transaction]:
        templates = self.store.find(user_id, is_recurring_template=True)
        if not templates:
            return []

        bounds = month_bounds(year, month)
        created: list[models.Transaction] = []
        for template in templates:
            # Templates created after this month cannot apply retroactively
            if template.occurred_at > bounds[1]:
                continue
            try:
                instance = self._materialize_template(user_id, template, year, month)
            except StoreFailure:
                logger.exception(
                    "failed to materialize template %s for %02d/%d", template.id, month, year
                )
                continue
            if instance is not None:
                created.append(instance)

        if created:
            logger.info("%d recurring transactions created for user %s %02d/%d", len(created), user_id, month, year)
        return created

    def _materialize_template(
        self,
        user_id: int,
        template: models.Transaction,
        year: int,
        month: int,
    ) -> models.Transaction | None:
        if self.find_instance(user_id, template.id, year, month) is not None:
            return None
        return self.store.insert_one(self.build_instance(template, year, month))

    def find_instance(self, user_id: int, template_id: int, year: int, month: int) -> models.Transaction | None:
        """Oldest generated instance of ``template_id`` in the given month, if any."""
        return self.store.find_one(
            user_id,
            occurred_between=month_bounds(year, month),
            recurring_parent_id=template_id,
            is_recurring_template=False,
        )

    @staticmethod
    def build_instance(template: models.Transaction, year: int, month: int) -> dict:
        anchor = template.recurring_day or template.occurred_at.day
        target_day = clamp_day(anchor, year, month)
        values = {field: getattr(template, field) for field in COPIED_FIELDS}
        values.update(
            user_id=template.user_id,
            occurred_at=datetime(year, month, target_day, 12, 0, 0),
            is_recurring_template=False,
            recurring_parent_id=template.id,
        )
        return values
