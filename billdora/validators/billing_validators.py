"""Billing rule validators.

These checks are shared by the billing engine (on every recomputation) and
by the invoice committer (against freshly persisted tasks at commit time).
They never raise for rule violations; they add issues to a report.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Dict, Iterable, Mapping, Sequence

from billdora.utils.money_utils import HUNDRED, format_currency
from billdora.models.task import BillingMode, Task
from billdora.models.time_entry import TimeEntry
from billdora.validators.validation_report import ValidationReport

EMPTY_TM_SELECTION = "Please select at least one time entry or expense"
EMPTY_TASK_SELECTION = "Please select at least one task"


class BillingRuleValidators:
    """Collection of billing rule validation methods."""

    @staticmethod
    def validate_tm_selection(
        selected_time_entries: Iterable[str],
        selected_expenses: Iterable[str],
        report: ValidationReport,
    ) -> None:
        """Time and materials needs at least one time entry or expense."""
        if not list(selected_time_entries) and not list(selected_expenses):
            report.add_error("empty_selection", EMPTY_TM_SELECTION)

    @staticmethod
    def validate_mode_lock(
        mode: BillingMode,
        selected_task_ids: Iterable[str],
        tasks_by_id: Mapping[str, Task],
        report: ValidationReport,
    ) -> None:
        """Reject the first selected task locked to a different mode.

        Args:
            mode: Billing mode of the invoice being prepared
            selected_task_ids: Selected task ids, in selection order
            tasks_by_id: Known tasks keyed by id
            report: ValidationReport to collect issues
        """
        for task_id in selected_task_ids:
            task = tasks_by_id.get(task_id)
            if task is not None and task.is_locked_to_other_mode(mode):
                report.add_error(
                    "mode_locked",
                    f'Task "{task.name}" is locked to '
                    f"{task.billing_mode.value} billing",
                    subject_id=task.id,
                )
                return

    @staticmethod
    def validate_time_entry_locks(
        selected_entries: Iterable[TimeEntry],
        tasks_by_id: Mapping[str, Task],
        report: ValidationReport,
    ) -> None:
        """Reject time logged on a task locked to milestone or percentage billing."""
        task_ids = OrderedDict.fromkeys(
            entry.task_id for entry in selected_entries if entry.task_id
        )
        BillingRuleValidators.validate_mode_lock(
            BillingMode.TIME_MATERIALS, task_ids, tasks_by_id, report
        )

    @staticmethod
    def validate_task_selection(
        selected_task_ids: Sequence[str], report: ValidationReport
    ) -> None:
        if not selected_task_ids:
            report.add_error("empty_selection", EMPTY_TASK_SELECTION)

    @staticmethod
    def validate_remaining_budget(
        requested: Mapping[str, Decimal],
        tasks_by_id: Mapping[str, Task],
        report: ValidationReport,
    ) -> None:
        """Reject billing a percentage the persisted task no longer has.

        Used at commit time, when another invoice may have billed the task
        after the session loaded it.
        """
        for task_id, percentage in requested.items():
            task = tasks_by_id.get(task_id)
            if task is None:
                report.add_error(
                    "task_missing",
                    f"Task {task_id} no longer exists",
                    subject_id=task_id,
                )
            elif task.billed_percentage + percentage > HUNDRED:
                report.add_error(
                    "task_overbilled",
                    f'Task "{task.name}" has only {task.remaining_percentage}% '
                    f"left to bill; it was billed on another invoice",
                    subject_id=task_id,
                )

    @staticmethod
    def validate_budget_ceilings(
        selected_entries: Iterable[TimeEntry],
        tasks_by_id: Mapping[str, Task],
        default_hourly_rate: Decimal,
        report: ValidationReport,
        currency_formatter: Callable[[Decimal], str] = format_currency,
    ) -> None:
        """Warn for each task whose selected time exceeds its budget.

        Entries without a task, or linked to a task with no budget, are
        ignored. Warnings come out in the order tasks first appear.
        """
        billed_by_task: Dict[str, Decimal] = OrderedDict()
        for entry in selected_entries:
            if entry.task_id is None or entry.task_id not in tasks_by_id:
                continue
            billed_by_task[entry.task_id] = billed_by_task.get(
                entry.task_id, Decimal("0")
            ) + entry.amount(default_hourly_rate)

        for task_id, billed in billed_by_task.items():
            task = tasks_by_id[task_id]
            budget = task.budget
            if budget > 0 and billed > budget:
                report.add_warning(
                    "nte_exceeded",
                    f'"{task.name}" exceeds budget by '
                    f"{currency_formatter(billed - budget)}",
                    subject_id=task_id,
                )
