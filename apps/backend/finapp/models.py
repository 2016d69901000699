from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "America/Sao_Paulo"))
except Exception:
    LOCAL_ZONE = ZoneInfo("UTC")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(120))

    transactions: Mapped[list["Transaction"]] = relationship(back_populates="user")


class FlowType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(str, Enum):
    PIX = "pix"
    DEBIT = "debit"
    CREDIT = "credit"


class TransactionRole(str, Enum):
    """Structural role of a transaction row, derived from its links."""

    TEMPLATE = "template"
    INSTANCE = "instance"
    PARCEL = "parcel"
    PLAIN = "plain"


class Transaction(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[FlowType] = mapped_column(SAEnum(FlowType, name="flow_type"), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100))
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(PaymentMethod, name="payment_method"),
        nullable=False,
        default=PaymentMethod.PIX,
    )
    bank: Mapped[str | None] = mapped_column(String(100))
    credit_card: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    # Always stored at 12:00 local so the calendar day survives serialization
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Recurrence: template rows carry the anchor day, instances point at the template
    is_recurring_template: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_day: Mapped[int | None] = mapped_column(Integer)
    # Logical reference only; cascades are owned by the consistency coordinator
    recurring_parent_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Installments: parcels 2..N point at parcel 1 (the anchor)
    is_installment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    installment_number: Mapped[int | None] = mapped_column(Integer)
    total_installments: Mapped[int | None] = mapped_column(Integer)
    installment_parent_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped[User] = relationship(back_populates="transactions")

    @property
    def role(self) -> TransactionRole:
        if self.is_recurring_template:
            return TransactionRole.TEMPLATE
        if self.recurring_parent_id is not None:
            return TransactionRole.INSTANCE
        if self.is_installment:
            return TransactionRole.PARCEL
        return TransactionRole.PLAIN

    @property
    def installment_anchor_id(self) -> int | None:
        """Id of the parcel that anchors this row's installment group."""
        if not self.is_installment:
            return None
        return self.installment_parent_id or self.id

    @property
    def template_id(self) -> int | None:
        if self.is_recurring_template:
            return self.id
        return self.recurring_parent_id

    __table_args__ = (
        CheckConstraint(
            "NOT (is_recurring_template = 1 AND is_installment = 1)",
            name="ck_txn_template_not_installment",
        ),
        CheckConstraint(
            "recurring_day IS NULL OR (recurring_day >= 1 AND recurring_day <= 31)",
            name="ck_txn_recurring_day_range",
        ),
        CheckConstraint(
            "total_installments IS NULL OR total_installments >= 2",
            name="ck_txn_total_installments_min",
        ),
        CheckConstraint("recurring_parent_id IS NULL OR recurring_parent_id != id", name="ck_txn_not_own_template"),
        Index("ix_txn_user_date", "user_id", "occurred_at"),
        Index("ix_txn_recurring_parent_date", "recurring_parent_id", "occurred_at"),
        Index("ix_txn_installment_parent", "installment_parent_id"),
        Index("ix_txn_user_template", "user_id", "is_recurring_template"),
    )
