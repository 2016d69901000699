from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    EmailStr,
    computed_field,
    field_validator,
    model_validator,
)

from .models import FlowType, PaymentMethod, TransactionRole


# Labels used by older clients for the same payment methods
_PAYMENT_METHOD_ALIASES = {
    "debito": PaymentMethod.DEBIT.value,
    "débito": PaymentMethod.DEBIT.value,
    "credito": PaymentMethod.CREDIT.value,
    "crédito": PaymentMethod.CREDIT.value,
}


def _normalize_payment_method(v):
    if isinstance(v, str):
        lowered = v.strip().lower()
        return _PAYMENT_METHOD_ALIASES.get(lowered, lowered)
    return v


def _check_amount(v: Optional[Decimal]) -> Optional[Decimal]:
    if v is not None and not math.isfinite(v):
        raise ValueError("amount must be finite")
    return v


class TransactionCreate(BaseModel):
    kind: Literal["plain", "recurring", "installment"] = "plain"
    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal
    type: FlowType
    category: Optional[str] = Field(default=None, max_length=100)
    payment_method: PaymentMethod = PaymentMethod.PIX
    bank: Optional[str] = Field(default=None, max_length=100)
    credit_card: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None
    occurred_at: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("occurred_at", "date"),
    )
    total_installments: Optional[int] = None
    # Role flags are never read from the payload; see kind
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _kind_from_legacy_flags(cls, values):
        if not isinstance(values, dict) or values.get("kind"):
            return values
        if values.get("is_recurring"):
            values["kind"] = "recurring"
        elif values.get("is_installment"):
            values["kind"] = "installment"
        return values

    @field_validator("payment_method", mode="before")
    @classmethod
    def _payment_method_alias(cls, v):
        return _normalize_payment_method(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return _check_amount(v)

    def field_values(self) -> dict:
        return self.model_dump(
            include={"description", "amount", "type", "category", "payment_method", "bank", "credit_card", "notes"}
        )


class TransactionUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    amount: Optional[Decimal] = None
    type: Optional[FlowType] = None
    category: Optional[str] = Field(default=None, max_length=100)
    payment_method: Optional[PaymentMethod] = None
    bank: Optional[str] = Field(default=None, max_length=100)
    credit_card: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None
    occurred_at: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("occurred_at", "date"),
    )
    apply_to_series: bool = Field(
        default=False,
        validation_alias=AliasChoices("apply_to_series", "update_all"),
    )
    model_config = ConfigDict(extra="ignore")

    @field_validator("payment_method", mode="before")
    @classmethod
    def _payment_method_alias(cls, v):
        return _normalize_payment_method(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _check_amount(v)

    @model_validator(mode="after")
    def _required_fields_not_cleared(self):
        # Omitting these means "unchanged"; null would clear a NOT NULL column
        cleared = sorted(
            name
            for name in ("description", "amount", "type", "payment_method")
            if name in self.model_fields_set and getattr(self, name) is None
        )
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self

    def field_changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude={"occurred_at", "apply_to_series"})


class TransactionOut(BaseModel):
    id: int
    user_id: int
    description: str
    amount: float
    type: FlowType
    category: Optional[str]
    payment_method: PaymentMethod
    bank: Optional[str]
    credit_card: Optional[str]
    notes: Optional[str]
    occurred_at: datetime
    role: TransactionRole
    is_recurring_template: bool
    recurring_day: Optional[int]
    recurring_parent_id: Optional[int]
    is_installment: bool
    installment_number: Optional[int]
    total_installments: Optional[int]
    installment_parent_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field(return_type=date)
    def occurred_on(self) -> date:
        return self.occurred_at.date()


class TransactionCreateResult(BaseModel):
    # plain row, first recurring instance, or first parcel
    transaction: TransactionOut
    template: Optional[TransactionOut] = None
    installments: list[TransactionOut] = []


class DeleteResult(BaseModel):
    deleted_count: int


class MaterializeRequest(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)


class MaterializeResult(BaseModel):
    created: int
    items: list[TransactionOut]


class PeriodSummaryOut(BaseModel):
    income: float
    expense: float
    credit_card_total: float
    balance: float
    count: int

    model_config = ConfigDict(from_attributes=True)


class BackfillRequest(BaseModel):
    start_month: int = Field(..., ge=1, le=12)
    start_year: int = Field(..., ge=1900, le=9999)
    end_month: int = Field(..., ge=1, le=12)
    end_year: int = Field(..., ge=1900, le=9999)


class MaintenanceResult(BaseModel):
    affected: int


class UserOut(BaseModel):
    id: int
    email: EmailStr
    name: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
