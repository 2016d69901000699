from __future__ import annotations


class FinanceError(Exception):
    """Base class for errors raised by the transaction engine."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFound(FinanceError):
    """Transaction or template is absent, or owned by another user."""

    status_code = 404


class ValidationError(FinanceError):
    status_code = 400


class Conflict(FinanceError):
    """Another update for the same transaction is in flight. Retryable."""

    status_code = 409


class StoreFailure(FinanceError):
    """A persistence operation failed.

    ``deleted_count`` is set by cascade deletes that stopped part way, so
    callers can report how many rows were actually removed.
    """

    status_code = 500

    def __init__(self, detail: str, *, deleted_count: int | None = None) -> None:
        super().__init__(detail)
        self.deleted_count = deleted_count
