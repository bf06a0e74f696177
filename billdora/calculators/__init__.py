"""Billing calculation engine."""

from billdora.calculators.billing_calculator import (
    BillingCalculation,
    TaskBillingAmount,
    calculate_billing,
    resolve_task_billing,
)
from billdora.calculators.selection import (
    DEFAULT_PERCENTAGE_TO_BILL,
    BillingSelection,
)

__all__ = [
    "BillingCalculation",
    "BillingSelection",
    "DEFAULT_PERCENTAGE_TO_BILL",
    "TaskBillingAmount",
    "calculate_billing",
    "resolve_task_billing",
]
