"""Expense data model."""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_validator

from billdora.models.base import BaseDataModel, to_decimal

INVOICED_STATUS = "invoiced"


class Expense(BaseDataModel):
    """Represents a reimbursable project cost.

    Attributes:
        id: Expense identifier
        project_id: Project the cost belongs to
        date: Date the cost was incurred
        amount: Cost amount (must be positive)
        category: Expense category
        description: Free-text description
        status: Workflow status (``invoiced`` once billed)
        billable: Whether the expense may be passed on to the client
        approval_status: Approval workflow state
        invoice_id: Invoice that consumed the expense, if any
    """

    id: str = Field(..., min_length=1)
    project_id: Optional[str] = None
    date: dt.date
    amount: Decimal = Field(..., gt=0, description="Expense amount")
    category: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    billable: bool = True
    approval_status: str = "approved"
    invoice_id: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def convert_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @property
    def is_candidate(self) -> bool:
        """Whether the expense is eligible for billing."""
        return (
            self.billable
            and self.status != INVOICED_STATUS
            and self.invoice_id is None
        )

    @property
    def label(self) -> str:
        """Line item description: description, else category."""
        return self.description or self.category or "Expense"
