from __future__ import annotations

from datetime import date
from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from finapp.core.database import get_db
from finapp.core.locks import LockTable
from finapp import models
from finapp.services import MaintenanceService, TransactionService
from finapp.services.recurrence_service import default_today


def get_current_user(db: Session = Depends(get_db)) -> models.User:
    """Very lightweight current user resolver.

    Authentication lives outside this service. Returns the first user
    (creates a demo if none). Tests may override this dependency to
    simulate different users.
    """
    user = db.query(models.User).order_by(models.User.id).first()
    if not user:
        user = models.User(email="demo@example.com", name="Demo")
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


def get_generation_locks(request: Request) -> LockTable:
    return request.app.state.generation_locks


def get_update_locks(request: Request) -> LockTable:
    return request.app.state.update_locks


def get_clock() -> Callable[[], date]:
    """Source of "today" for the past-month rule; tests pin it."""
    return default_today


def get_transaction_service(
    db: Session = Depends(get_db),
    generation_locks: LockTable = Depends(get_generation_locks),
    update_locks: LockTable = Depends(get_update_locks),
    today: Callable[[], date] = Depends(get_clock),
) -> TransactionService:
    return TransactionService(
        db,
        generation_locks=generation_locks,
        update_locks=update_locks,
        today=today,
    )


def get_maintenance_service(
    svc: TransactionService = Depends(get_transaction_service),
) -> MaintenanceService:
    return MaintenanceService(svc.store, svc.materializer)
