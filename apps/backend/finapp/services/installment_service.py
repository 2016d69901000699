from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from finapp.errors import ValidationError
from finapp.utils.dates import add_months, at_noon


def annotate_description(description: str, number: int, total: int) -> str:
    return f"{description} ({number}/{total})"


@dataclass
class InstallmentPurchase:
    """A purchase paid in ``total_installments`` monthly parcels.

    ``amount`` is the value of one parcel, not the purchase total.
    """

    description: str
    amount: Decimal
    occurred_at: date | datetime
    total_installments: int
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParcelDraft:
    installment_number: int
    total_installments: int
    description: str
    amount: Decimal
    occurred_at: datetime
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_anchor(self) -> bool:
        return self.installment_number == 1

    def to_values(self, *, user_id: int, anchor_id: int | None = None) -> dict[str, Any]:
        values = dict(self.extra)
        values.update(
            user_id=user_id,
            description=self.description,
            amount=self.amount,
            occurred_at=self.occurred_at,
            is_installment=True,
            installment_number=self.installment_number,
            total_installments=self.total_installments,
            installment_parent_id=None if self.is_anchor else anchor_id,
            is_recurring_template=False,
            recurring_parent_id=None,
        )
        return values


class InstallmentSplitter:
    def split(self, purchase: InstallmentPurchase) -> list[ParcelDraft]:
        total = purchase.total_installments
        if total is None or total < 2:
            raise ValidationError("An installment purchase needs at least 2 installments")

        base = at_noon(purchase.occurred_at)
        return [
            ParcelDraft(
                installment_number=i + 1,
                total_installments=total,
                description=annotate_description(purchase.description, i + 1, total),
                amount=purchase.amount,
                occurred_at=add_months(base, i),
                extra=dict(purchase.extra),
            )
            for i in range(total)
        ]
