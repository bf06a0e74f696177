"""Billing selection state.

The selection is the working set a user builds while preparing an invoice:
the active billing mode, the chosen time entries and expenses (time and
materials) and the chosen tasks with their requested percentages
(milestone and percentage billing). Modes are mutually exclusive; switching
mode never carries selections across.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Set

from billdora.utils.money_utils import ZERO
from billdora.models.task import BillingMode, Task

DEFAULT_PERCENTAGE_TO_BILL = Decimal("10")


@dataclass
class BillingSelection:
    """Mutable selection held by a billing session.

    Attributes:
        billing_mode: Active billing mode
        selected_time_entries: Selected TimeEntry ids
        selected_expenses: Selected Expense ids
        selected_tasks: Task id mapped to the requested percentage to bill
            (ignored in milestone mode, which always bills the remainder)

    Example:
        >>> selection = BillingSelection()
        >>> selection.toggle_time_entry("te-1")
        >>> selection.switch_mode(BillingMode.PERCENTAGE)
        >>> selection.selected_time_entries
        set()
    """

    billing_mode: BillingMode = BillingMode.TIME_MATERIALS
    selected_time_entries: Set[str] = field(default_factory=set)
    selected_expenses: Set[str] = field(default_factory=set)
    selected_tasks: Dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        if self.billing_mode == BillingMode.UNSET:
            raise ValueError("A billing selection needs a concrete billing mode")

    def switch_mode(self, mode: BillingMode) -> None:
        """Switch the billing mode, clearing selections of the old mode.

        Task selections are always cleared. Time entry and expense
        selections are cleared when moving to a task-based mode.

        Args:
            mode: New billing mode

        Raises:
            ValueError: If ``mode`` is ``unset``
        """
        if mode == BillingMode.UNSET:
            raise ValueError("Cannot switch a selection to the unset mode")

        self.billing_mode = mode
        self.selected_tasks = {}
        if mode.is_task_based:
            self.selected_time_entries = set()
            self.selected_expenses = set()

    def toggle_time_entry(self, entry_id: str) -> None:
        _toggle(self.selected_time_entries, entry_id)

    def toggle_expense(self, expense_id: str) -> None:
        _toggle(self.selected_expenses, expense_id)

    def select_time_entries(self, entry_ids: Iterable[str]) -> None:
        self.selected_time_entries = set(entry_ids)

    def select_expenses(self, expense_ids: Iterable[str]) -> None:
        self.selected_expenses = set(expense_ids)

    def toggle_task(
        self,
        task: Task,
        default_percentage: Decimal = DEFAULT_PERCENTAGE_TO_BILL,
    ) -> None:
        """Select or deselect a task.

        A newly selected task requests ``min(default_percentage, remaining)``.

        Args:
            task: Task to toggle
            default_percentage: Initial percentage requested for the task
        """
        if task.id in self.selected_tasks:
            del self.selected_tasks[task.id]
        else:
            self.selected_tasks[task.id] = min(
                default_percentage, task.remaining_percentage
            )

    def set_task_percentage(self, task: Task, percentage: Decimal) -> None:
        """Set the requested percentage for a task, selecting it if needed.

        The stored request never exceeds the task's remaining percentage
        and never goes below zero.
        """
        requested = max(ZERO, percentage)
        self.selected_tasks[task.id] = min(requested, task.remaining_percentage)

    def select_all_tasks(
        self,
        tasks: Iterable[Task],
        default_percentage: Decimal = DEFAULT_PERCENTAGE_TO_BILL,
    ) -> None:
        """Select every task that still has budget left to bill."""
        self.selected_tasks = {
            task.id: min(default_percentage, task.remaining_percentage)
            for task in tasks
            if not task.is_fully_billed
        }

    def clear(self) -> None:
        """Drop every selection, keeping the billing mode."""
        self.selected_time_entries = set()
        self.selected_expenses = set()
        self.selected_tasks = {}

    def is_empty(self) -> bool:
        if self.billing_mode.is_task_based:
            return not self.selected_tasks
        return not self.selected_time_entries and not self.selected_expenses


def _toggle(ids: Set[str], item_id: str) -> None:
    if item_id in ids:
        ids.remove(item_id)
    else:
        ids.add(item_id)
