"""Data models for the billing core.

This package contains Pydantic models for all billing records:
- BaseDataModel: Base class with common configuration
- Task / BillingMode: Budgeted work and the billing mode lock
- TimeEntry: Logged labor
- Expense: Reimbursable costs
- Invoice / InvoiceLineItem: Persisted invoice records
"""

from billdora.models.base import BaseDataModel, to_decimal, to_optional_decimal
from billdora.models.expense import INVOICED_STATUS, Expense
from billdora.models.invoice import Invoice, InvoiceLineItem
from billdora.models.task import BillingMode, Task
from billdora.models.time_entry import TimeEntry

__all__ = [
    "BaseDataModel",
    "BillingMode",
    "Expense",
    "INVOICED_STATUS",
    "Invoice",
    "InvoiceLineItem",
    "Task",
    "TimeEntry",
    "to_decimal",
    "to_optional_decimal",
]
