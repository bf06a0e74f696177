"""Task data model.

A task is a unit of project work with a fixed-fee ceiling that can be
billed by milestone or by percentage over several invoices.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from billdora.models.base import BaseDataModel, to_decimal, to_optional_decimal

HUNDRED = Decimal("100")


class BillingMode(str, Enum):
    """Billing strategy of an invoice, and the lock recorded on a task."""

    UNSET = "unset"
    TIME_MATERIALS = "time_materials"
    MILESTONE = "milestone"
    PERCENTAGE = "percentage"

    @property
    def is_task_based(self) -> bool:
        """Whether this mode bills tasks rather than time and expenses."""
        return self in (BillingMode.MILESTONE, BillingMode.PERCENTAGE)


class Task(BaseDataModel):
    """Represents a billable project task.

    Attributes:
        id: Task identifier
        project_id: Owning project
        name: Task name shown on invoices
        total_budget: Fixed fee ceiling (takes precedence when set)
        estimated_fees: Fallback ceiling when no total budget is set
        estimated_hours: Estimated quantity (hours or units) for line items
        billing_unit: Whether the estimate is in hours or units
        billed_percentage: Cumulative percent of the budget already invoiced
        billed_amount: Cumulative amount already invoiced
        billing_mode: Mode the task is locked to once first billed

    Example:
        >>> task = Task(id="t-1", name="Design", total_budget="10000",
        ...             billed_percentage="20")
        >>> task.remaining_percentage
        Decimal('80')
    """

    id: str = Field(..., min_length=1, description="Task identifier")
    project_id: Optional[str] = Field(None, description="Project identifier")
    name: str = Field(..., min_length=1, description="Task name")
    total_budget: Optional[Decimal] = Field(None, ge=0, description="Fixed fee")
    estimated_fees: Optional[Decimal] = Field(None, ge=0, description="Fee estimate")
    estimated_hours: Optional[Decimal] = Field(None, ge=0)
    billing_unit: Literal["hour", "unit"] = Field("hour")
    billed_percentage: Decimal = Field(Decimal("0"), ge=0, le=100)
    billed_amount: Decimal = Field(Decimal("0"), ge=0)
    billing_mode: BillingMode = Field(BillingMode.UNSET)

    @field_validator(
        "total_budget", "estimated_fees", "estimated_hours", mode="before"
    )
    @classmethod
    def convert_optional_decimal(cls, v: Any) -> Optional[Decimal]:
        return to_optional_decimal(v)

    @field_validator("billed_percentage", "billed_amount", mode="before")
    @classmethod
    def convert_decimal(cls, v: Any) -> Decimal:
        if v is None or (isinstance(v, str) and not v.strip()):
            return Decimal("0")
        return to_decimal(v)

    @field_validator("billing_mode", mode="before")
    @classmethod
    def default_billing_mode(cls, v: Any) -> Any:
        if v is None or v == "":
            return BillingMode.UNSET
        return v

    @field_validator("billing_unit", mode="before")
    @classmethod
    def default_billing_unit(cls, v: Any) -> Any:
        if v is None or v == "":
            return "hour"
        return v

    @property
    def budget(self) -> Decimal:
        """Budget ceiling: total budget, else estimated fees, else zero."""
        if self.total_budget:
            return self.total_budget
        return self.estimated_fees or Decimal("0")

    @property
    def remaining_percentage(self) -> Decimal:
        """Percent of the budget not yet invoiced."""
        return max(Decimal("0"), HUNDRED - self.billed_percentage)

    @property
    def is_fully_billed(self) -> bool:
        return self.remaining_percentage <= 0

    def is_locked_to_other_mode(self, mode: BillingMode) -> bool:
        """Check whether the task is locked to a mode other than ``mode``.

        Args:
            mode: The billing mode an invoice wants to use

        Returns:
            True if the task already carries a different concrete mode
        """
        return self.billing_mode != BillingMode.UNSET and self.billing_mode != mode
