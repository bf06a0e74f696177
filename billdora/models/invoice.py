"""Invoice and invoice line item models.

Line items double as the billing ledger: the percentages recorded on task
line items of earlier invoices are the source of truth for what has been
billed on a task before a given invoice.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from billdora.models.base import BaseDataModel, to_decimal, to_optional_decimal
from billdora.models.task import BillingMode


class Invoice(BaseDataModel):
    """Represents an invoice header.

    Attributes:
        id: Invoice identifier (assigned by the store)
        project_id: Billed project
        client_id: Billed client
        invoice_number: Human-facing invoice number
        subtotal: Sum of line item amounts
        tax_amount: Tax added on top of the subtotal
        total: subtotal + tax_amount
        status: Invoice workflow status
        calculator_type: Billing mode used to compute the invoice
        due_date: Payment due date
        created_at: Creation timestamp (orders the billing ledger)
    """

    id: Optional[str] = None
    project_id: Optional[str] = None
    client_id: Optional[str] = None
    invoice_number: str = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    total: Decimal = Field(..., ge=0)
    status: str = "draft"
    calculator_type: BillingMode
    due_date: Optional[dt.date] = None
    created_at: Optional[dt.datetime] = None

    @field_validator("subtotal", "total", mode="before")
    @classmethod
    def convert_money(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("tax_amount", mode="before")
    @classmethod
    def convert_tax(cls, v: Any) -> Decimal:
        return to_optional_decimal(v) or Decimal("0")


class InvoiceLineItem(BaseDataModel):
    """Represents one line on an invoice.

    Task lines carry the percentage billed on this invoice and the task's
    prior billed percentage; time and expense lines reference the record
    they consumed.
    """

    id: Optional[str] = None
    invoice_id: str = Field(..., min_length=1)
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    item_type: Literal["time", "expense", "task"]
    billing_type: Optional[BillingMode] = None
    task_id: Optional[str] = None
    time_entry_id: Optional[str] = None
    expense_id: Optional[str] = None
    billed_percentage: Optional[Decimal] = None
    prior_billed_percentage: Optional[Decimal] = None
    task_total_budget: Optional[Decimal] = None
    unit: Optional[str] = None

    @field_validator("quantity", "unit_price", "amount", mode="before")
    @classmethod
    def convert_money(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator(
        "billed_percentage",
        "prior_billed_percentage",
        "task_total_budget",
        mode="before",
    )
    @classmethod
    def convert_optional(cls, v: Any) -> Optional[Decimal]:
        return to_optional_decimal(v)

    @field_validator("billing_type", mode="before")
    @classmethod
    def blank_billing_type(cls, v: Any) -> Any:
        return None if v == "" else v
