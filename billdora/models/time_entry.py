"""Time entry data model.

A time entry is a billable unit of logged labor. It becomes consumed once
an invoice id is recorded on it.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_validator

from billdora.models.base import BaseDataModel, to_decimal, to_optional_decimal


class TimeEntry(BaseDataModel):
    """Represents a single logged time entry.

    Attributes:
        id: Entry identifier
        project_id: Project the time was logged against
        date: Date the work was performed
        hours: Hours logged (must be positive)
        hourly_rate: Entry rate; falls back to a caller-supplied default
        task_id: Optional task link, used for not-to-exceed checks
        user_id: Staff member who logged the time
        staff_name: Display name of the staff member
        billable: Whether the entry may be invoiced
        approval_status: Approval workflow state
        invoice_id: Invoice that consumed the entry, if any

    Example:
        >>> entry = TimeEntry(id="te-1", date=dt.date(2026, 3, 2), hours="3")
        >>> entry.amount(Decimal("100"))
        Decimal('300')
    """

    id: str = Field(..., min_length=1)
    project_id: Optional[str] = None
    date: dt.date
    hours: Decimal = Field(..., gt=0, description="Hours logged")
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    task_id: Optional[str] = None
    user_id: Optional[str] = None
    staff_name: Optional[str] = None
    billable: bool = True
    approval_status: str = "approved"
    invoice_id: Optional[str] = None

    @field_validator("hours", mode="before")
    @classmethod
    def convert_hours(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("hourly_rate", mode="before")
    @classmethod
    def convert_rate(cls, v: Any) -> Optional[Decimal]:
        return to_optional_decimal(v)

    @property
    def is_consumed(self) -> bool:
        """Whether the entry has already been billed on an invoice."""
        return self.invoice_id is not None

    def rate(self, default_hourly_rate: Decimal) -> Decimal:
        """Effective hourly rate.

        A missing or zero entry rate falls back to the default rate.
        """
        return self.hourly_rate or default_hourly_rate

    def amount(self, default_hourly_rate: Decimal) -> Decimal:
        """Unrounded value of the entry (hours × effective rate)."""
        return self.hours * self.rate(default_hourly_rate)
