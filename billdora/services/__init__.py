"""
Billing services: data store contract, billing ledger, invoice committer and
the billing session controller.
"""

from .billing_ledger import BillingLedger, LineItemHistory, TaskBillingTotals
from .billing_session import BillingSession, SessionState
from .data_store import DataStore, InMemoryDataStore
from .errors import BilldoraError, CommitError, LoadError, StoreError
from .invoice_committer import (
    CommitResult,
    CommitStep,
    InvoiceCommitter,
    InvoiceDraft,
    StepStatus,
)

__all__ = [
    "BilldoraError",
    "BillingLedger",
    "BillingSession",
    "CommitError",
    "CommitResult",
    "CommitStep",
    "DataStore",
    "InMemoryDataStore",
    "InvoiceCommitter",
    "InvoiceDraft",
    "LineItemHistory",
    "LoadError",
    "SessionState",
    "StepStatus",
    "StoreError",
    "TaskBillingTotals",
]
