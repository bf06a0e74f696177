"""Billing session controller.

A BillingSession owns one invoice-creation attempt for one project: it loads
the unbilled candidates from the data store, holds the user's selection
across mode switches, recomputes the billing engine on demand and commits
the result through the InvoiceCommitter. Sessions are created per attempt
and discarded after commit or cancel.
"""

import datetime as dt
import logging
import threading
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import ValidationError

from billdora.calculators.billing_calculator import (
    BillingCalculation,
    calculate_billing,
)
from billdora.calculators.selection import (
    DEFAULT_PERCENTAGE_TO_BILL,
    BillingSelection,
)
from billdora.config.settings import BilldoraConfig
from billdora.models.base import BaseDataModel
from billdora.models.expense import Expense
from billdora.models.task import BillingMode, Task
from billdora.models.time_entry import TimeEntry
from billdora.services.billing_ledger import BillingLedger
from billdora.services.data_store import DataStore
from billdora.services.errors import CommitError, LoadError
from billdora.services.invoice_committer import (
    CommitResult,
    InvoiceCommitter,
    InvoiceDraft,
)
from billdora.utils.logging_utils import LogContext, generate_correlation_id
from billdora.utils.money_utils import ZERO

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseDataModel)
Candidates = Tuple[List[TimeEntry], List[Expense], List[Task]]


class SessionState(str, Enum):
    """Lifecycle of a billing session."""

    OPEN = "open"
    COMMITTING = "committing"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


def _parse_records(model: Type[ModelT], rows: Iterable[Dict[str, Any]]) -> List[ModelT]:
    """Validate store rows, skipping (and logging) malformed ones."""
    records = []
    for row in rows:
        try:
            records.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(
                f"Skipping malformed {model.__name__} record "
                f"{row.get('id', '?')}: {e.error_count()} validation error(s)"
            )
    return records


class BillingSession:
    """
    Load → select → commit lifecycle for one project's invoice.

    Features:
    - Fail-soft candidate loading (store errors degrade to no candidates)
    - Opt-out selection of every candidate on entering time & materials
    - Mode switches that never carry selections across modes
    - Guarded commit: no double submit, no selection changes mid-commit

    Example:
        >>> session = BillingSession(store, "proj-1",
        ...                          default_hourly_rate=Decimal("100"))
        >>> session.load_candidates()
        >>> session.calculate().subtotal
        Decimal('1250.00')
        >>> result = session.commit(client_id="client-1")
    """

    def __init__(
        self,
        store: DataStore,
        project_id: str,
        default_hourly_rate: Decimal = ZERO,
        default_percentage: Decimal = DEFAULT_PERCENTAGE_TO_BILL,
        invoice_number_prefix: str = "INV-",
        billing_mode: BillingMode = BillingMode.TIME_MATERIALS,
        committer: Optional[InvoiceCommitter] = None,
        ledger: Optional[BillingLedger] = None,
    ):
        """
        Initialize a billing session.

        Args:
            store: Data store holding the project's records
            project_id: Project being invoiced
            default_hourly_rate: Rate for time entries without their own rate
            default_percentage: Initial percentage for newly selected tasks
            invoice_number_prefix: Prefix for generated invoice numbers
            billing_mode: Initial billing mode
            committer: Invoice committer (built from ``store`` when omitted)
            ledger: Billing ledger (built from ``store`` when omitted)
        """
        self.store = store
        self.project_id = project_id
        self.default_hourly_rate = default_hourly_rate
        self.default_percentage = default_percentage
        self.session_id = generate_correlation_id()
        self.selection = BillingSelection(billing_mode=billing_mode)
        self.ledger = ledger or BillingLedger(store)
        self.committer = committer or InvoiceCommitter(
            store,
            default_hourly_rate=default_hourly_rate,
            invoice_number_prefix=invoice_number_prefix,
            ledger=self.ledger,
        )

        self.time_entries: List[TimeEntry] = []
        self.expenses: List[Expense] = []
        self.tasks: List[Task] = []
        self.state = SessionState.OPEN
        self.last_load_error: Optional[LoadError] = None

        self._commit_lock = threading.Lock()

    @classmethod
    def from_config(
        cls, store: DataStore, project_id: str, config: BilldoraConfig, **kwargs
    ) -> "BillingSession":
        """Build a session using the configured billing defaults."""
        return cls(
            store,
            project_id,
            default_hourly_rate=config.default_hourly_rate,
            default_percentage=config.default_percentage_to_bill,
            invoice_number_prefix=config.invoice_number_prefix,
            **kwargs,
        )

    def _log_context(self) -> LogContext:
        return LogContext(session_id=self.session_id, project_id=self.project_id)

    @property
    def billing_mode(self) -> BillingMode:
        return self.selection.billing_mode

    # Loading

    def _fetch_candidates(self) -> Candidates:
        """Fetch unbilled candidates and tasks for the project.

        Raises:
            LoadError: If any store read fails
        """
        try:
            time_rows = self.store.query(
                "time_entries",
                {
                    "project_id": self.project_id,
                    "approval_status": "approved",
                    "billable": True,
                    "invoice_id": None,
                },
            )
            expense_rows = self.store.query(
                "expenses",
                {
                    "project_id": self.project_id,
                    "approval_status": "approved",
                    "billable": True,
                },
            )
            task_rows = self.store.query("tasks", {"project_id": self.project_id})
            tasks = self.ledger.apply_to_tasks(
                self.project_id, _parse_records(Task, task_rows)
            )
        except Exception as e:
            raise LoadError(
                f"Failed to load billing candidates: {e}", project_id=self.project_id
            ) from e

        time_entries = _parse_records(TimeEntry, time_rows)
        expenses = [e for e in _parse_records(Expense, expense_rows) if e.is_candidate]
        return time_entries, expenses, tasks

    def load_candidates(self) -> None:
        """Load the project's unbilled time entries, expenses and tasks.

        In time & materials mode every loaded candidate starts selected.
        A store failure is logged and leaves the session with no candidates.
        """
        if not self._can_mutate("load candidates"):
            return

        with self._log_context():
            try:
                time_entries, expenses, tasks = self._fetch_candidates()
            except LoadError as e:
                logger.error(str(e))
                self.last_load_error = e
                time_entries, expenses, tasks = [], [], []
            else:
                self.last_load_error = None

            self.time_entries = time_entries
            self.expenses = expenses
            self.tasks = tasks
            self.selection.clear()
            if self.billing_mode == BillingMode.TIME_MATERIALS:
                self._select_all_candidates()

            logger.info(
                f"Loaded {len(time_entries)} time entries, {len(expenses)} "
                f"expenses and {len(tasks)} tasks"
            )

    def refresh_candidates(self) -> None:
        """Reload candidates without changing what the user chose.

        Records that appeared since the last load stay unselected; selected
        records that are gone (e.g. invoiced elsewhere) are dropped. On a
        store failure the current candidates are kept.
        """
        if not self._can_mutate("refresh candidates"):
            return

        with self._log_context():
            try:
                time_entries, expenses, tasks = self._fetch_candidates()
            except LoadError as e:
                logger.warning(f"{e}; keeping previously loaded candidates")
                self.last_load_error = e
                return

            self.last_load_error = None
            self.time_entries = time_entries
            self.expenses = expenses
            self.tasks = tasks

            self.selection.select_time_entries(
                self.selection.selected_time_entries & {e.id for e in time_entries}
            )
            self.selection.select_expenses(
                self.selection.selected_expenses & {e.id for e in expenses}
            )
            task_ids = {t.id for t in tasks}
            for task_id in list(self.selection.selected_tasks):
                if task_id not in task_ids:
                    del self.selection.selected_tasks[task_id]

    def _select_all_candidates(self) -> None:
        self.selection.select_time_entries(e.id for e in self.time_entries)
        self.selection.select_expenses(e.id for e in self.expenses)

    # Selection

    def _can_mutate(self, action: str) -> bool:
        if self.state == SessionState.OPEN:
            return True
        logger.warning(f"Ignoring request to {action}: session is {self.state.value}")
        return False

    def _find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        logger.warning(f"Task {task_id} is not part of project {self.project_id}")
        return None

    def switch_mode(self, mode: BillingMode) -> None:
        """Switch billing mode; entering time & materials selects all candidates."""
        if not self._can_mutate("switch billing mode") or mode == self.billing_mode:
            return
        self.selection.switch_mode(mode)
        if mode == BillingMode.TIME_MATERIALS:
            self._select_all_candidates()
        logger.debug(f"Switched billing mode to {mode.value}")

    def toggle_time_entry(self, entry_id: str) -> None:
        if self._can_mutate("toggle a time entry"):
            self.selection.toggle_time_entry(entry_id)

    def toggle_expense(self, expense_id: str) -> None:
        if self._can_mutate("toggle an expense"):
            self.selection.toggle_expense(expense_id)

    def toggle_task(self, task_id: str) -> None:
        if not self._can_mutate("toggle a task"):
            return
        task = self._find_task(task_id)
        if task is not None:
            self.selection.toggle_task(task, self.default_percentage)

    def set_task_percentage(self, task_id: str, percentage: Decimal) -> None:
        if not self._can_mutate("change a task percentage"):
            return
        task = self._find_task(task_id)
        if task is not None:
            self.selection.set_task_percentage(task, percentage)

    def select_all_tasks(self) -> None:
        if self._can_mutate("select all tasks"):
            self.selection.select_all_tasks(self.tasks, self.default_percentage)

    # Calculation and commit

    def calculate(self) -> BillingCalculation:
        """Run the billing engine on the current selection."""
        return calculate_billing(
            self.selection,
            self.time_entries,
            self.expenses,
            self.tasks,
            default_hourly_rate=self.default_hourly_rate,
        )

    def commit(
        self,
        client_id: Optional[str] = None,
        tax_amount: Decimal = ZERO,
        due_date: Optional[dt.date] = None,
        invoice_number: Optional[str] = None,
    ) -> CommitResult:
        """Create the invoice for the current selection.

        Only one commit may run at a time and a session commits at most one
        invoice; other attempts come back as rejected results.

        Args:
            client_id: Client being invoiced
            tax_amount: Tax added on top of the subtotal
            due_date: Payment due date
            invoice_number: Explicit invoice number

        Returns:
            CommitResult describing the created invoice or the rejection

        Raises:
            CommitError: If a store write failed (see ``invoice_id``)
        """
        if not self._commit_lock.acquire(blocking=False):
            logger.warning("Rejected commit: another commit is in progress")
            return CommitResult(
                rejection="An invoice is already being created for this session"
            )

        try:
            if self.state != SessionState.OPEN:
                return CommitResult(
                    rejection=f"This billing session is already {self.state.value}"
                )

            with self._log_context():
                self.state = SessionState.COMMITTING
                draft = InvoiceDraft(
                    project_id=self.project_id,
                    client_id=client_id,
                    tax_amount=tax_amount,
                    due_date=due_date,
                    invoice_number=invoice_number,
                )
                try:
                    result = self.committer.commit(
                        draft,
                        self.selection,
                        self.calculate(),
                        self.time_entries,
                        self.expenses,
                    )
                except CommitError as e:
                    self.state = (
                        SessionState.COMMITTED if e.invoice_id else SessionState.OPEN
                    )
                    raise

                self.state = (
                    SessionState.COMMITTED if result.invoice_id else SessionState.OPEN
                )
                for warning in result.warnings:
                    logger.warning(warning)
                return result
        finally:
            self._commit_lock.release()

    def cancel(self) -> None:
        """Discard the session. No data is written."""
        if self.state in (SessionState.COMMITTING, SessionState.COMMITTED):
            logger.warning(f"Cannot cancel a session that is {self.state.value}")
            return
        self.selection.clear()
        self.time_entries, self.expenses, self.tasks = [], [], []
        self.state = SessionState.CANCELLED
