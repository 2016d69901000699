"""
Services package

Business logic for recurring/installment materialization.
"""

from .transaction_store import TransactionStore
from .recurrence_service import RecurrenceMaterializer
from .installment_service import InstallmentSplitter, InstallmentPurchase, ParcelDraft
from .consistency_service import ConsistencyCoordinator
from .transaction_service import TransactionService, PeriodSummary
from .maintenance_service import MaintenanceService

__all__ = [
    "TransactionStore",
    "RecurrenceMaterializer",
    "InstallmentSplitter",
    "InstallmentPurchase",
    "ParcelDraft",
    "ConsistencyCoordinator",
    "TransactionService",
    "PeriodSummary",
    "MaintenanceService",
]
