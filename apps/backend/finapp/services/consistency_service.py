"""
Update/delete propagation between linked transactions.

A recurring template and its generated instances, or the parcels of one
installment purchase, are edited and removed together here. Edits to one id
are serialized through an update lock; a second concurrent edit is refused
with ``Conflict`` instead of being queued or dropped.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Mapping

from finapp import models
from finapp.core.locks import LockTable
from finapp.errors import Conflict, NotFound, StoreFailure, ValidationError
from finapp.services.installment_service import annotate_description
from finapp.services.transaction_store import TransactionStore

logger = logging.getLogger(__name__)

# Only these fields can be changed by an edit payload; role and link fields
# are structural and always decided here.
EDITABLE_FIELDS = frozenset(
    {
        "description",
        "amount",
        "type",
        "category",
        "payment_method",
        "bank",
        "credit_card",
        "notes",
    }
)

_POSITION_SUFFIX = re.compile(r"\s*\(\d+/\d+\)\s*$")


def strip_position(description: str) -> str:
    return _POSITION_SUFFIX.sub("", description)


class ConsistencyCoordinator:
    def __init__(self, store: TransactionStore, update_locks: LockTable) -> None:
        self.store = store
        self.update_locks = update_locks

    @staticmethod
    def lock_key(user_id: int, txn_id: int) -> tuple[int, str, int]:
        return (user_id, "update", txn_id)

    # ---- updates ---------------------------------------------------------
    def update(
        self,
        txn_id: int,
        user_id: int,
        changes: Mapping[str, Any],
        occurred_at: datetime | None = None,
        *,
        apply_to_series: bool = False,
    ) -> models.Transaction:
        key = self.lock_key(user_id, txn_id)
        with self.update_locks.hold(key) as acquired:
            if not acquired:
                raise Conflict(f"An update for transaction {txn_id} is already in progress")

            tx = self._get_or_404(user_id, txn_id)
            values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}

            if apply_to_series and tx.template_id is not None:
                self._update_series(user_id, tx, values, occurred_at)
            elif apply_to_series and tx.is_installment:
                self._update_installment_group(user_id, tx, values, occurred_at)
            else:
                self._update_single(tx, values, occurred_at)

            return self._get_or_404(user_id, txn_id)

    def _update_single(self, tx: models.Transaction, values: dict, occurred_at: datetime | None) -> None:
        if occurred_at is not None:
            values["occurred_at"] = occurred_at
            if tx.is_recurring_template:
                values["recurring_day"] = occurred_at.day
        # Role never changes through an edit
        values["is_recurring_template"] = bool(tx.is_recurring_template)
        self.store.update_one(tx, values)

    def _update_series(
        self,
        user_id: int,
        tx: models.Transaction,
        values: dict,
        occurred_at: datetime | None,
    ) -> None:
        template_id = tx.template_id
        template = tx if tx.is_recurring_template else self.store.find_one(
            user_id, id=template_id, is_recurring_template=True
        )
        if template is None:
            raise NotFound(f"Recurring template {template_id} not found")

        template_values = dict(values, is_recurring_template=True)
        if occurred_at is not None:
            template_values["occurred_at"] = occurred_at
            template_values["recurring_day"] = occurred_at.day
        self.store.update_one(template, template_values)

        # Each instance keeps its own month-specific date
        instance_values = dict(values, is_recurring_template=False)
        updated = self.store.update_many(
            user_id,
            instance_values,
            recurring_parent_id=template_id,
            is_recurring_template=False,
        )
        logger.info("series update on template %s touched %d instances", template_id, updated)

    def _update_installment_group(
        self,
        user_id: int,
        tx: models.Transaction,
        values: dict,
        occurred_at: datetime | None,
    ) -> None:
        anchor_id = tx.installment_anchor_id
        description = values.pop("description", None)
        parcels = self._group_rows(user_id, anchor_id)

        if values:
            self.store.update_many(user_id, values, installment_parent_id=anchor_id)
            anchor = next((p for p in parcels if p.id == anchor_id), None)
            if anchor is not None:
                self.store.update_one(anchor, values)

        if description is not None:
            base = strip_position(description)
            for parcel in parcels:
                total = parcel.total_installments or len(parcels)
                number = parcel.installment_number or 1
                self.store.update_one(parcel, {"description": annotate_description(base, number, total)})

        if occurred_at is not None:
            self.store.update_one(tx, {"occurred_at": occurred_at})

    # ---- deletes ---------------------------------------------------------
    def delete(self, txn_id: int, user_id: int) -> None:
        tx = self._get_or_404(user_id, txn_id)
        self.store.delete_one(tx)

    def delete_series(self, txn_id: int, user_id: int) -> int:
        """Delete a template and every instance generated from it.

        Best effort: if one step fails the other still runs, and the
        ``StoreFailure`` raised afterwards carries the count actually removed.
        """
        tx = self._get_or_404(user_id, txn_id)
        template_id = tx.template_id
        if template_id is None:
            raise ValidationError("This transaction is not part of a recurring series")

        removed = 0
        failures: list[StoreFailure] = []
        try:
            removed += self.store.delete_many(
                user_id,
                recurring_parent_id=template_id,
                is_recurring_template=False,
            )
        except StoreFailure as exc:
            failures.append(exc)

        try:
            template = self.store.find_one(user_id, id=template_id, is_recurring_template=True)
            if template is not None:
                self.store.delete_one(template)
                removed += 1
        except StoreFailure as exc:
            failures.append(exc)

        if failures:
            detail = "; ".join(f.detail for f in failures)
            raise StoreFailure(f"series delete incomplete: {detail}", deleted_count=removed)
        logger.info("deleted recurring series %s (%d rows)", template_id, removed)
        return removed

    def delete_installment_group(self, txn_id: int, user_id: int) -> int:
        tx = self._get_or_404(user_id, txn_id)
        anchor_id = tx.installment_anchor_id
        if anchor_id is None:
            raise ValidationError("This transaction is not part of an installment group")

        try:
            removed = self.store.delete_many(
                user_id,
                any_of=[
                    {"installment_parent_id": anchor_id},
                    {"id": anchor_id, "is_installment": True},
                ],
            )
        except StoreFailure as exc:
            raise StoreFailure(f"installment delete failed: {exc.detail}", deleted_count=0) from exc
        logger.info("deleted installment group %s (%d rows)", anchor_id, removed)
        return removed

    # ---- helpers ---------------------------------------------------------
    def _group_rows(self, user_id: int, anchor_id: int) -> list[models.Transaction]:
        return self.store.find(
            user_id,
            any_of=[{"installment_parent_id": anchor_id}, {"id": anchor_id}],
            order_by="installment_number",
        )

    def _get_or_404(self, user_id: int, txn_id: int) -> models.Transaction:
        tx = self.store.get(user_id, txn_id)
        if tx is None:
            raise NotFound("Transaction not found")
        return tx
