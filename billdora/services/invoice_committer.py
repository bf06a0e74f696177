"""Invoice committer.

Persists a computed billing selection as an invoice, its line items and the
ledger updates on the consumed records. The data store is only atomic per
statement, so every sub-step is recorded with its own status instead of
pretending the whole commit is transactional:

1. Re-validate the selected tasks (or the tasks the selected time is
   logged on) against their persisted state and the invoice ledger
2. Create the invoice header (failure here means nothing was written)
3. Task modes: add each task's billing with a compare-and-swap on its
   stored billed percentage and mode, then write its line item
4. Time & materials: claim each record with a compare-and-swap on
   ``invoice_id IS NULL``, write its line item, then lock tasks billed for
   the first time to time & materials

Records or tasks another invoice claimed first are reported as conflicts and the
invoice total is reduced accordingly. Other write failures are collected and
raised together as a CommitError carrying the invoice id, so the caller can
tell a partial invoice from no invoice at all.
"""

import datetime as dt
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from billdora.calculators.billing_calculator import (
    BillingCalculation,
    TaskBillingAmount,
)
from billdora.calculators.selection import BillingSelection
from billdora.models.expense import INVOICED_STATUS, Expense
from billdora.models.invoice import Invoice, InvoiceLineItem
from billdora.models.task import BillingMode, Task
from billdora.models.time_entry import TimeEntry
from billdora.services.billing_ledger import BillingLedger
from billdora.services.data_store import DataStore
from billdora.services.errors import CommitError
from billdora.utils.logging_utils import log_function_call
from billdora.utils.money_utils import HUNDRED, ZERO, quantize_money
from billdora.validators.billing_validators import BillingRuleValidators
from billdora.validators.validation_report import ValidationReport

logger = logging.getLogger(__name__)

INVOICES = "invoices"
LINE_ITEMS = "invoice_line_items"
TASKS = "tasks"
TIME_ENTRIES = "time_entries"
EXPENSES = "expenses"

TASK_UPDATE_ATTEMPTS = 3
UNSET_MODES = [None, "", BillingMode.UNSET.value]


class StepStatus(str, Enum):
    """Outcome of a single commit sub-step."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CONFLICT = "conflict"  # record already consumed by another invoice
    SKIPPED = "skipped"


@dataclass
class CommitStep:
    """Status of one write issued during a commit."""

    name: str
    status: StepStatus
    subject_id: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class CommitResult:
    """Outcome of a commit attempt.

    Attributes:
        invoice_id: Id of the created invoice, None if none was created
        invoice_number: Number of the created invoice
        steps: Status of every sub-step, in issue order
        warnings: User-facing warnings (e.g. records billed elsewhere)
        rejection: Business-rule reason the commit was refused
    """

    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    steps: List[CommitStep] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    rejection: Optional[str] = None

    @property
    def failed_steps(self) -> List[CommitStep]:
        return [s for s in self.steps if s.status == StepStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        """True when the invoice exists and no sub-step failed."""
        return (
            self.invoice_id is not None
            and self.rejection is None
            and not self.failed_steps
        )

    def record(
        self,
        name: str,
        status: StepStatus,
        subject_id: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        self.steps.append(CommitStep(name, status, subject_id, detail))


@dataclass(frozen=True)
class InvoiceDraft:
    """Invoice header fields supplied by the user at commit time.

    Attributes:
        project_id: Project being invoiced
        client_id: Client being invoiced
        tax_amount: Tax added on top of the computed subtotal
        due_date: Payment due date
        invoice_number: Explicit invoice number (generated when omitted)
    """

    project_id: str
    client_id: Optional[str] = None
    tax_amount: Decimal = ZERO
    due_date: Optional[dt.date] = None
    invoice_number: Optional[str] = None


def generate_invoice_number(prefix: str = "INV-") -> str:
    """Invoice number from the last six digits of the epoch milliseconds.

    Example:
        >>> generate_invoice_number("INV-").startswith("INV-")
        True
    """
    return f"{prefix}{str(int(time.time() * 1000))[-6:]}"


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class InvoiceCommitter:
    """
    Writes invoices for computed billing selections.

    Features:
    - Commit-time re-validation of billing mode locks and remaining budget
    - Parent invoice written before any line item referencing it
    - Compare-and-swap consumption of time entries, expenses and task budget
    - Per-step status reporting instead of silent partial writes
    """

    def __init__(
        self,
        store: DataStore,
        default_hourly_rate: Decimal = ZERO,
        invoice_number_prefix: str = "INV-",
        clock: Optional[Callable[[], dt.datetime]] = None,
        ledger: Optional[BillingLedger] = None,
    ):
        """
        Initialize the committer.

        Args:
            store: Data store receiving the writes
            default_hourly_rate: Rate for time entries without their own rate
            invoice_number_prefix: Prefix for generated invoice numbers
            clock: Source of invoice creation timestamps
            ledger: Billing ledger (built from ``store`` when omitted)
        """
        self.store = store
        self.default_hourly_rate = default_hourly_rate
        self.invoice_number_prefix = invoice_number_prefix
        self.clock = clock or _utc_now
        self.ledger = ledger or BillingLedger(store)

    @log_function_call(level="INFO")
    def commit(
        self,
        draft: InvoiceDraft,
        selection: BillingSelection,
        calculation: BillingCalculation,
        time_entries: Sequence[TimeEntry] = (),
        expenses: Sequence[Expense] = (),
    ) -> CommitResult:
        """
        Persist an invoice for ``calculation``.

        Args:
            draft: Invoice header fields
            selection: Selection the calculation was computed from
            calculation: Engine result to invoice
            time_entries: Loaded time entry candidates
            expenses: Loaded expense candidates

        Returns:
            CommitResult; ``rejection`` is set when a business rule refused
            the commit and nothing was written

        Raises:
            CommitError: If a store write failed. ``invoice_id`` is set when
                the invoice header had already been created.
        """
        result = CommitResult()
        mode = selection.billing_mode

        rejection = self._check_preconditions(selection, calculation)
        if rejection:
            result.rejection = rejection
            logger.info(f"Commit rejected: {rejection}")
            return result

        fresh_tasks: Dict[str, Task] = {}
        stored_rows: Dict[str, Dict[str, Any]] = {}
        report = ValidationReport()
        if mode.is_task_based:
            fresh_tasks, stored_rows = self._load_tasks(
                list(calculation.selected_tasks), draft.project_id, result
            )
            BillingRuleValidators.validate_mode_lock(
                mode, list(calculation.selected_tasks), fresh_tasks, report
            )
            BillingRuleValidators.validate_remaining_budget(
                {
                    task_id: amount.percentage_to_bill
                    for task_id, amount in calculation.selected_tasks.items()
                },
                fresh_tasks,
                report,
            )
        else:
            selected_entries = [
                e for e in time_entries if e.id in selection.selected_time_entries
            ]
            linked = list(
                OrderedDict.fromkeys(e.task_id for e in selected_entries if e.task_id)
            )
            if linked:
                fresh_tasks, stored_rows = self._load_tasks(
                    linked, draft.project_id, result
                )
                BillingRuleValidators.validate_time_entry_locks(
                    selected_entries, fresh_tasks, report
                )

        if not report.is_valid():
            result.rejection = report.first_error_message()
            logger.info(
                f"Commit rejected at re-validation ({report.summary()}): "
                f"{result.rejection}"
            )
            return result

        invoice = self._create_invoice(draft, calculation, result)

        if mode.is_task_based:
            self._bill_tasks(
                invoice, mode, calculation, fresh_tasks, stored_rows, result
            )
        else:
            self._bill_time_and_materials(
                invoice, selection, time_entries, expenses, fresh_tasks, result
            )

        failed = result.failed_steps
        if failed:
            names = ", ".join(step.name for step in failed)
            logger.error(
                f"Invoice {invoice.invoice_number} created with "
                f"{len(failed)} failed step(s): {names}"
            )
            raise CommitError(
                f"Invoice {invoice.invoice_number} was created, but "
                f"{len(failed)} step(s) failed: {names}",
                invoice_id=result.invoice_id,
                result=result,
            )

        logger.info(
            f"Committed invoice {invoice.invoice_number} "
            f"({mode.value}, subtotal {invoice.subtotal})"
        )
        return result

    def _check_preconditions(
        self, selection: BillingSelection, calculation: BillingCalculation
    ) -> Optional[str]:
        if calculation.billing_mode != selection.billing_mode:
            return "Billing calculation is out of date; recalculate before saving"
        if not calculation.is_valid:
            return calculation.validation_error or "Billing selection is not valid"
        if calculation.subtotal <= 0:
            return "Nothing to bill: the invoice subtotal must be greater than zero"
        return None

    def _read_tasks(
        self, task_ids: List[str], project_id: str
    ) -> Tuple[Dict[str, Task], Dict[str, Dict[str, Any]]]:
        """Read tasks as the billing engine sees them, plus their stored rows."""
        rows = self.store.query(TASKS, {"id": task_ids})
        tasks = self.ledger.apply_to_tasks(
            project_id, [Task.model_validate(row) for row in rows]
        )
        return {task.id: task for task in tasks}, {row["id"]: row for row in rows}

    def _load_tasks(
        self, task_ids: List[str], project_id: str, result: CommitResult
    ) -> Tuple[Dict[str, Task], Dict[str, Dict[str, Any]]]:
        try:
            return self._read_tasks(task_ids, project_id)
        except Exception as e:
            result.record("load_tasks", StepStatus.FAILED, detail=str(e))
            raise CommitError(
                f"Failed to load tasks for validation: {e}", result=result
            ) from e

    def _create_invoice(
        self,
        draft: InvoiceDraft,
        calculation: BillingCalculation,
        result: CommitResult,
    ) -> Invoice:
        tax = quantize_money(max(draft.tax_amount, ZERO))
        invoice = Invoice(
            project_id=draft.project_id,
            client_id=draft.client_id,
            invoice_number=draft.invoice_number
            or generate_invoice_number(self.invoice_number_prefix),
            subtotal=calculation.subtotal,
            tax_amount=tax,
            total=quantize_money(calculation.subtotal + tax),
            calculator_type=calculation.billing_mode,
            due_date=draft.due_date,
            created_at=self.clock(),
        )
        try:
            stored = self.store.insert(
                INVOICES, invoice.model_dump(mode="json", exclude_none=True)
            )
        except Exception as e:
            result.record("create_invoice", StepStatus.FAILED, detail=str(e))
            logger.error(f"Failed to create invoice: {e}")
            raise CommitError(f"Failed to create invoice: {e}", result=result) from e

        invoice.id = stored["id"]
        result.invoice_id = invoice.id
        result.invoice_number = invoice.invoice_number
        result.record("create_invoice", StepStatus.SUCCEEDED, subject_id=invoice.id)
        return invoice

    def _insert_line_item(
        self,
        item: InvoiceLineItem,
        step: str,
        subject_id: str,
        result: CommitResult,
    ) -> bool:
        try:
            self.store.insert(LINE_ITEMS, item.model_dump(mode="json", exclude_none=True))
        except Exception as e:
            logger.error(f"Failed to create line item for {subject_id}: {e}")
            result.record(step, StepStatus.FAILED, subject_id, str(e))
            return False
        result.record(step, StepStatus.SUCCEEDED, subject_id)
        return True

    def _bill_tasks(
        self,
        invoice: Invoice,
        mode: BillingMode,
        calculation: BillingCalculation,
        fresh_tasks: Dict[str, Task],
        stored_rows: Dict[str, Dict[str, Any]],
        result: CommitResult,
    ) -> None:
        unbilled = ZERO

        for task_id, billing in calculation.selected_tasks.items():
            if billing.percentage_to_bill <= 0:
                result.record(
                    "task_ledger", StepStatus.SKIPPED, task_id, "nothing left to bill"
                )
                continue

            status, task = self._update_task_billing(
                invoice.project_id,
                mode,
                billing,
                fresh_tasks[task_id],
                stored_rows[task_id],
                result,
            )
            if status == StepStatus.CONFLICT:
                unbilled += billing.amount_to_bill
                result.warnings.append(
                    f'Task "{task.name}" was billed on another invoice and was '
                    "left off this invoice"
                )
            if status != StepStatus.SUCCEEDED:
                result.record(
                    "task_line_item",
                    StepStatus.SKIPPED,
                    task_id,
                    "task billing was not updated",
                )
                continue

            estimate = task.estimated_hours or Decimal("1")
            item = InvoiceLineItem(
                invoice_id=invoice.id,
                description=task.name,
                quantity=(estimate * billing.percentage_to_bill / HUNDRED).quantize(
                    Decimal("0.01")
                ),
                unit_price=quantize_money(task.budget / estimate),
                amount=billing.amount_to_bill,
                item_type="task",
                billing_type=mode,
                task_id=task_id,
                billed_percentage=billing.percentage_to_bill,
                prior_billed_percentage=task.billed_percentage,
                task_total_budget=task.budget,
                unit="hr" if task.billing_unit == "hour" else "unit",
            )
            self._insert_line_item(item, "task_line_item", task_id, result)

        if unbilled > 0:
            self._adjust_invoice_total(invoice, unbilled, result)

    def _update_task_billing(
        self,
        project_id: str,
        mode: BillingMode,
        billing: TaskBillingAmount,
        task: Task,
        row: Dict[str, Any],
        result: CommitResult,
    ) -> Tuple[StepStatus, Task]:
        """Add this invoice's billing to a task with a compare-and-swap.

        The update only applies while the stored billed percentage and mode
        are still the ones validated against. When another invoice got there
        first, the task is re-read and re-validated, and billing that still
        fits is retried.

        Returns:
            The step status and the task state the billing was added to
        """
        for _ in range(TASK_UPDATE_ATTEMPTS):
            patch = {
                "billed_percentage": str(
                    task.billed_percentage + billing.percentage_to_bill
                ),
                "billed_amount": str(task.billed_amount + billing.amount_to_bill),
            }
            if task.billing_mode == BillingMode.UNSET:
                patch["billing_mode"] = mode.value
            expected = {
                "id": task.id,
                "billed_percentage": row.get("billed_percentage"),
                "billing_mode": row.get("billing_mode"),
            }
            try:
                updated = self.store.update(TASKS, patch, expected)
                if updated:
                    result.record("task_ledger", StepStatus.SUCCEEDED, task.id)
                    return StepStatus.SUCCEEDED, task

                logger.warning(f"Task {task.id} changed during commit; re-checking")
                tasks, rows = self._read_tasks([task.id], project_id)
            except Exception as e:
                logger.error(f"Failed to update task billing for {task.id}: {e}")
                result.record("task_ledger", StepStatus.FAILED, task.id, str(e))
                return StepStatus.FAILED, task

            report = ValidationReport()
            BillingRuleValidators.validate_mode_lock(mode, [task.id], tasks, report)
            BillingRuleValidators.validate_remaining_budget(
                {task.id: billing.percentage_to_bill}, tasks, report
            )
            if not report.is_valid():
                result.record(
                    "task_ledger",
                    StepStatus.CONFLICT,
                    task.id,
                    report.first_error_message(),
                )
                return StepStatus.CONFLICT, task
            task, row = tasks[task.id], rows[task.id]

        result.record(
            "task_ledger", StepStatus.CONFLICT, task.id, "task kept changing"
        )
        return StepStatus.CONFLICT, task

    def _claim(
        self,
        table: str,
        record_id: str,
        patch: dict,
        step: str,
        result: CommitResult,
    ) -> Optional[bool]:
        """Mark a record consumed if nobody else has.

        Returns True when claimed, False on conflict, None on failure.
        """
        try:
            updated = self.store.update(
                table, patch, {"id": record_id, "invoice_id": None}
            )
        except Exception as e:
            logger.error(f"Failed to link {table} record {record_id}: {e}")
            result.record(step, StepStatus.FAILED, record_id, str(e))
            return None
        if not updated:
            result.record(
                step, StepStatus.CONFLICT, record_id, "already on another invoice"
            )
            return False
        result.record(step, StepStatus.SUCCEEDED, record_id)
        return True

    def _bill_time_and_materials(
        self,
        invoice: Invoice,
        selection: BillingSelection,
        time_entries: Sequence[TimeEntry],
        expenses: Sequence[Expense],
        fresh_tasks: Dict[str, Task],
        result: CommitResult,
    ) -> None:
        unbilled = ZERO
        billed_task_ids: List[str] = []

        for entry in time_entries:
            if entry.id not in selection.selected_time_entries:
                continue
            amount = quantize_money(entry.amount(self.default_hourly_rate))
            claimed = self._claim(
                TIME_ENTRIES,
                entry.id,
                {"invoice_id": invoice.id},
                "link_time_entry",
                result,
            )
            if claimed is False:
                unbilled += amount
                result.warnings.append(
                    f"Time entry {entry.id} ({entry.hours}h on {entry.date}) was "
                    "already invoiced and was left off this invoice"
                )
            if not claimed:
                continue
            if entry.task_id:
                billed_task_ids.append(entry.task_id)
            item = InvoiceLineItem(
                invoice_id=invoice.id,
                description=f"{entry.staff_name or 'Team Member'} - Professional Services",
                quantity=entry.hours,
                unit_price=entry.rate(self.default_hourly_rate),
                amount=amount,
                item_type="time",
                billing_type=BillingMode.TIME_MATERIALS,
                task_id=entry.task_id,
                time_entry_id=entry.id,
                unit="hr",
            )
            self._insert_line_item(item, "time_line_item", entry.id, result)

        for expense in expenses:
            if expense.id not in selection.selected_expenses:
                continue
            claimed = self._claim(
                EXPENSES,
                expense.id,
                {"invoice_id": invoice.id, "status": INVOICED_STATUS},
                "link_expense",
                result,
            )
            if claimed is False:
                unbilled += expense.amount
                result.warnings.append(
                    f'Expense "{expense.label}" was already invoiced and was '
                    "left off this invoice"
                )
            if not claimed:
                continue
            item = InvoiceLineItem(
                invoice_id=invoice.id,
                description=expense.label,
                quantity=Decimal("1"),
                unit_price=expense.amount,
                amount=expense.amount,
                item_type="expense",
                billing_type=BillingMode.TIME_MATERIALS,
                expense_id=expense.id,
            )
            self._insert_line_item(item, "expense_line_item", expense.id, result)

        for task_id in OrderedDict.fromkeys(billed_task_ids):
            task = fresh_tasks.get(task_id)
            if task is not None and task.billing_mode == BillingMode.UNSET:
                self._lock_task(task_id, result)

        if unbilled > 0:
            self._adjust_invoice_total(invoice, unbilled, result)

    def _lock_task(self, task_id: str, result: CommitResult) -> None:
        """Lock a task billed for the first time to time & materials."""
        try:
            updated = self.store.update(
                TASKS,
                {"billing_mode": BillingMode.TIME_MATERIALS.value},
                {"id": task_id, "billing_mode": UNSET_MODES},
            )
        except Exception as e:
            logger.error(f"Failed to lock task {task_id}: {e}")
            result.record("lock_task", StepStatus.FAILED, task_id, str(e))
            return
        if updated:
            result.record("lock_task", StepStatus.SUCCEEDED, task_id)
        else:
            result.record(
                "lock_task",
                StepStatus.SKIPPED,
                task_id,
                "task was locked by another invoice",
            )

    def _adjust_invoice_total(
        self, invoice: Invoice, unbilled: Decimal, result: CommitResult
    ) -> None:
        subtotal = quantize_money(max(invoice.subtotal - unbilled, ZERO))
        total = quantize_money(subtotal + invoice.tax_amount)
        try:
            self.store.update(
                INVOICES,
                {"subtotal": str(subtotal), "total": str(total)},
                {"id": invoice.id},
            )
        except Exception as e:
            logger.error(f"Failed to adjust total of invoice {invoice.id}: {e}")
            result.record("adjust_invoice_total", StepStatus.FAILED, invoice.id, str(e))
            return
        invoice.subtotal = subtotal
        invoice.total = total
        result.record("adjust_invoice_total", StepStatus.SUCCEEDED, invoice.id)
