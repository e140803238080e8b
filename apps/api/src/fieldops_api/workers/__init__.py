"""Background workers supporting async processing."""

from .ledger_reconciliation import LedgerReconciliationWorker

__all__ = [
    "LedgerReconciliationWorker",
]
