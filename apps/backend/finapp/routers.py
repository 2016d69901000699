from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from . import models
from .core.deps import get_current_user, get_maintenance_service, get_transaction_service
from .errors import ValidationError
from .services import MaintenanceService, TransactionService
from .schemas import (
    BackfillRequest,
    DeleteResult,
    MaintenanceResult,
    MaterializeRequest,
    MaterializeResult,
    PeriodSummaryOut,
    TransactionCreate,
    TransactionCreateResult,
    TransactionOut,
    TransactionUpdate,
    UserOut,
)
from .utils.dates import today_in
from .core.config import settings


router = APIRouter()


@router.get("/users/me", response_model=UserOut)
def read_current_user(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.get("/transactions", response_model=list[TransactionOut])
def list_transactions(
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = Query(None, ge=1900, le=9999),
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    return svc.list_for_period(current_user.id, month, year)


@router.get("/transactions/stats", response_model=PeriodSummaryOut)
def transaction_stats(
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = Query(None, ge=1900, le=9999),
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    return svc.summarize(current_user.id, month, year)


@router.get("/transactions/templates", response_model=list[TransactionOut])
def list_templates(
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    return svc.list_templates(current_user.id)


@router.post("/transactions/materialize", response_model=MaterializeResult)
def materialize_period(
    payload: MaterializeRequest,
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    created = svc.ensure_materialized(current_user.id, payload.month, payload.year)
    return MaterializeResult(
        created=len(created),
        items=[TransactionOut.model_validate(tx) for tx in created],
    )


@router.post("/transactions", response_model=TransactionCreateResult, status_code=201)
def create_transaction(
    payload: TransactionCreate,
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    fields = payload.field_values()
    occurred_at = payload.occurred_at or today_in(settings.TIMEZONE)

    if payload.kind == "recurring":
        template, instance = svc.create_recurring(current_user.id, fields, occurred_at)
        return TransactionCreateResult(
            transaction=TransactionOut.model_validate(instance),
            template=TransactionOut.model_validate(template),
        )

    if payload.kind == "installment":
        if payload.total_installments is None:
            raise ValidationError("total_installments is required for installment purchases")
        parcels = svc.create_installments(current_user.id, fields, occurred_at, payload.total_installments)
        out = [TransactionOut.model_validate(p) for p in parcels]
        return TransactionCreateResult(transaction=out[0], installments=out)

    tx = svc.create_plain(current_user.id, fields, occurred_at)
    return TransactionCreateResult(transaction=TransactionOut.model_validate(tx))


@router.get("/transactions/{txn_id}", response_model=TransactionOut)
def get_transaction(
    txn_id: int,
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    return svc.get(current_user.id, txn_id)


@router.patch("/transactions/{txn_id}", response_model=TransactionOut)
def update_transaction(
    txn_id: int,
    payload: TransactionUpdate,
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    return svc.update(
        txn_id,
        current_user.id,
        payload.field_changes(),
        payload.occurred_at,
        apply_to_series=payload.apply_to_series,
    )


@router.delete("/transactions/{txn_id}", status_code=204)
def delete_transaction(
    txn_id: int,
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    svc.delete(txn_id, current_user.id)
    return None


@router.delete("/transactions/{txn_id}/recurring", response_model=DeleteResult)
def delete_recurring_series(
    txn_id: int,
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    return DeleteResult(deleted_count=svc.delete_series(txn_id, current_user.id))


@router.delete("/transactions/{txn_id}/installments", response_model=DeleteResult)
def delete_installment_group(
    txn_id: int,
    svc: TransactionService = Depends(get_transaction_service),
    current_user: models.User = Depends(get_current_user),
):
    return DeleteResult(deleted_count=svc.delete_installment_group(txn_id, current_user.id))


@router.post("/maintenance/backfill", response_model=MaintenanceResult)
def backfill_recurring(
    payload: BackfillRequest,
    maintenance: MaintenanceService = Depends(get_maintenance_service),
    current_user: models.User = Depends(get_current_user),
):
    created = maintenance.backfill(
        current_user.id,
        payload.start_month,
        payload.start_year,
        payload.end_month,
        payload.end_year,
    )
    return MaintenanceResult(affected=created)


@router.post("/maintenance/deduplicate", response_model=MaintenanceResult)
def deduplicate_recurring(
    maintenance: MaintenanceService = Depends(get_maintenance_service),
    current_user: models.User = Depends(get_current_user),
):
    return MaintenanceResult(affected=maintenance.deduplicate_instances(current_user.id))


@router.post("/maintenance/clean-orphans", response_model=MaintenanceResult)
def clean_orphans(
    maintenance: MaintenanceService = Depends(get_maintenance_service),
    current_user: models.User = Depends(get_current_user),
):
    return MaintenanceResult(affected=maintenance.clean_orphans(current_user.id))
