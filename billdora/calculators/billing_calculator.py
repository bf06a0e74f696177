"""Billing calculation engine.

This module turns a billing selection plus the loaded candidate records into
an invoice amount under one of three mutually exclusive strategies:

- Time & Materials: selected hours × rate plus selected expenses, with
  not-to-exceed warnings per task
- Milestone: each selected task bills 100% of its remaining budget
- Percentage: each selected task bills the requested percentage, silently
  clamped to what remains

The engine is pure. It performs no I/O, keeps no state between calls and is
recomputed in full whenever the selection changes, so it is written as a
single pass over the candidates.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence

from billdora.calculators.selection import BillingSelection
from billdora.models.expense import Expense
from billdora.models.task import BillingMode, Task
from billdora.models.time_entry import TimeEntry
from billdora.utils.money_utils import (
    ZERO,
    format_currency,
    percentage_of,
    quantize_money,
    sum_money,
)
from billdora.validators.billing_validators import BillingRuleValidators
from billdora.validators.validation_report import ValidationReport


@dataclass(frozen=True)
class TaskBillingAmount:
    """Resolved billing for one selected task.

    Attributes:
        percentage_to_bill: Percent of the task budget billed on this invoice
        amount_to_bill: Amount billed on this invoice, rounded to cents
    """

    percentage_to_bill: Decimal
    amount_to_bill: Decimal


@dataclass(frozen=True)
class BillingCalculation:
    """Result of a billing computation.

    Attributes:
        billing_mode: Mode the result was computed for
        subtotal: Amount to invoice before tax
        selected_tasks: Task id mapped to its resolved billing amount
        time_total: Value of the selected time entries (T&M only)
        expense_total: Value of the selected expenses (T&M only)
        total_hours: Hours of the selected time entries (T&M only)
        nte_warnings: One message per task whose selected time exceeds
            its budget
        is_valid: Whether the selection may be committed
        validation_error: Message explaining why it may not

    Example:
        >>> calc = BillingCalculation(
        ...     billing_mode=BillingMode.TIME_MATERIALS,
        ...     subtotal=Decimal("1250.00"),
        ...     time_total=Decimal("1050.00"),
        ...     expense_total=Decimal("200.00"),
        ...     total_hours=Decimal("8"),
        ... )
        >>> calc.subtotal
        Decimal('1250.00')
    """

    billing_mode: BillingMode
    subtotal: Decimal
    selected_tasks: Dict[str, TaskBillingAmount] = field(default_factory=dict)
    time_total: Decimal = ZERO
    expense_total: Decimal = ZERO
    total_hours: Decimal = ZERO
    nte_warnings: List[str] = field(default_factory=list)
    is_valid: bool = True
    validation_error: Optional[str] = None

    @property
    def can_commit(self) -> bool:
        """Whether an invoice may be created from this result."""
        return self.is_valid and self.subtotal > 0


def resolve_task_billing(
    task: Task, mode: BillingMode, requested_percentage: Decimal
) -> TaskBillingAmount:
    """Resolve the percentage and amount billed for a task.

    Args:
        task: The task being billed
        mode: Milestone or percentage billing
        requested_percentage: Percentage requested by the user (ignored
            for milestone billing)

    Returns:
        TaskBillingAmount with the clamped percentage and its amount

    Example:
        >>> task = Task(id="t-1", name="Design", total_budget="5000",
        ...             billed_percentage="90")
        >>> resolve_task_billing(task, BillingMode.MILESTONE, Decimal("50"))
        TaskBillingAmount(percentage_to_bill=Decimal('10'), amount_to_bill=Decimal('500.00'))
    """
    remaining = task.remaining_percentage
    if mode == BillingMode.MILESTONE:
        percentage = remaining
    else:
        percentage = min(max(requested_percentage, ZERO), remaining)

    return TaskBillingAmount(
        percentage_to_bill=percentage,
        amount_to_bill=percentage_of(task.budget, percentage),
    )


def calculate_billing(
    selection: BillingSelection,
    time_entries: Sequence[TimeEntry],
    expenses: Sequence[Expense],
    tasks: Sequence[Task],
    default_hourly_rate: Decimal = ZERO,
    currency_formatter: Callable[[Decimal], str] = format_currency,
) -> BillingCalculation:
    """Compute the billing result for the current selection.

    Selected ids that do not match a loaded candidate are ignored for
    amounts. Time entries and expenses are evaluated in candidate order,
    tasks in selection order.

    Args:
        selection: Current billing selection
        time_entries: Loaded time entry candidates
        expenses: Loaded expense candidates
        tasks: Loaded project tasks
        default_hourly_rate: Rate for entries without their own rate
        currency_formatter: Formats overage amounts in warnings

    Returns:
        BillingCalculation for the selection
    """
    tasks_by_id = {task.id: task for task in tasks}
    report = ValidationReport()
    mode = selection.billing_mode

    if mode.is_task_based:
        selected_ids = list(selection.selected_tasks)
        task_amounts: Dict[str, TaskBillingAmount] = {}
        for task_id in selected_ids:
            task = tasks_by_id.get(task_id)
            if task is not None:
                task_amounts[task_id] = resolve_task_billing(
                    task, mode, selection.selected_tasks[task_id]
                )

        BillingRuleValidators.validate_mode_lock(
            mode, selected_ids, tasks_by_id, report
        )
        BillingRuleValidators.validate_task_selection(selected_ids, report)

        return BillingCalculation(
            billing_mode=mode,
            subtotal=sum_money(a.amount_to_bill for a in task_amounts.values()),
            selected_tasks=task_amounts,
            is_valid=report.is_valid(),
            validation_error=report.first_error_message(),
        )

    selected_entries = [
        e for e in time_entries if e.id in selection.selected_time_entries
    ]
    selected_expenses = [
        e for e in expenses if e.id in selection.selected_expenses
    ]

    time_total = sum_money(
        quantize_money(e.amount(default_hourly_rate)) for e in selected_entries
    )
    expense_total = sum_money(e.amount for e in selected_expenses)
    total_hours = sum((e.hours for e in selected_entries), ZERO)

    BillingRuleValidators.validate_budget_ceilings(
        selected_entries,
        tasks_by_id,
        default_hourly_rate,
        report,
        currency_formatter=currency_formatter,
    )
    BillingRuleValidators.validate_time_entry_locks(
        selected_entries, tasks_by_id, report
    )
    BillingRuleValidators.validate_tm_selection(
        selection.selected_time_entries, selection.selected_expenses, report
    )

    return BillingCalculation(
        billing_mode=mode,
        subtotal=quantize_money(time_total + expense_total),
        time_total=time_total,
        expense_total=expense_total,
        total_hours=total_hours,
        nte_warnings=report.warning_messages(),
        is_valid=report.is_valid(),
        validation_error=report.first_error_message(),
    )
